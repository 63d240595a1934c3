"""Create and destroy docker-backed nodes."""

import logging

from actions.hooks import CastleWriteClusterFileHook, DestroyNodesOnFailureHook, write_cluster_file
from engine.action import Action, ActionId
from engine.lifecycle import ReturnCode, ShutdownHook

logger = logging.getLogger(__name__)

DOCKER_NODE = 'dockerNode'


class DestroyDockerInstancesShutdownHook(DestroyNodesOnFailureHook):

    def __init__(self, cluster):
        super().__init__('DestroyDockerInstancesShutdownHook', cluster)

    def nodes_to_destroy(self) -> list:
        return [node for node in self.cluster.nodes.values()
                if DOCKER_NODE in node.roles and node.roles[DOCKER_NODE].container_name]


class CleanupDockerNetworkIfNeededHook(ShutdownHook):
    """Remove the docker network once no docker node is reachable any more."""

    def __init__(self, cluster, node):
        super().__init__('CleanupDockerNetworkIfNeededHook')
        self.cluster = cluster
        self.node = node

    def run(self, return_code: ReturnCode) -> None:
        for node_name in self.cluster.nodes_with_role(DOCKER_NODE).values():
            if self.cluster.nodes[node_name].uplink.can_login():
                logger.debug(f"Keeping the docker network: {node_name} is still up")
                return
        self.node.uplink.cloud.cleanup_network(self.node)


class DockerInitAction(Action):
    TYPE = 'dockerInit'

    def __init__(self, scope: str, role):
        super().__init__(ActionId(self.TYPE, scope))
        self.role = role

    def call(self, cluster, node) -> None:
        path = cluster.env.cluster_output_path
        if path.exists():
            raise RuntimeError(f"Output cluster path {path} already exists.")
        if node.uplink.started():
            node.log.info(f"*** Skipping {self.TYPE}, because the node is already running.")
            return
        # Tear the container down again if the run does not succeed.
        cluster.shutdown_manager.add_hook_if_missing(DestroyDockerInstancesShutdownHook(cluster))
        node.uplink.startup()
        write_cluster_file(cluster)


class DockerDestroyAction(Action):
    TYPE = 'dockerDestroy'

    def __init__(self, scope: str, role):
        super().__init__(ActionId(self.TYPE, scope), comes_after=['stop'])
        self.role = role

    def call(self, cluster, node) -> None:
        if not node.uplink.started():
            node.log.info(f"*** Skipping {self.TYPE}, because the node is not running.")
            return
        node.uplink.shutdown().result()
        self.role.container_name = ''
        self.role.ssh_port = 0
        self.role.ssh_identity_path = ''
        cluster.shutdown_manager.add_hook_if_missing(CastleWriteClusterFileHook(cluster))
        cluster.shutdown_manager.add_hook_if_missing(CleanupDockerNetworkIfNeededHook(cluster, node))
