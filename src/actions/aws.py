"""Create and destroy EC2-backed nodes."""

import logging

from actions.hooks import CastleWriteClusterFileHook, DestroyNodesOnFailureHook, write_cluster_file
from engine.action import Action, ActionId

logger = logging.getLogger(__name__)

AWS_NODE = 'awsNode'


class DestroyAwsInstancesShutdownHook(DestroyNodesOnFailureHook):

    def __init__(self, cluster):
        super().__init__('DestroyAwsInstancesShutdownHook', cluster)

    def nodes_to_destroy(self) -> list:
        return [node for node in self.cluster.nodes.values()
                if AWS_NODE in node.roles and node.roles[AWS_NODE].instance_id]


class AwsInitAction(Action):
    TYPE = 'awsInit'

    def __init__(self, scope: str, role):
        super().__init__(ActionId(self.TYPE, scope))
        self.role = role

    def call(self, cluster, node) -> None:
        if node.uplink.started():
            node.log.info(f"*** Skipping {self.TYPE}, because the node is already running.")
            return
        path = cluster.env.cluster_output_path
        if path.exists():
            raise RuntimeError(f"Output cluster path {path} already exists.")
        # Terminate the instance again if the run does not succeed.
        cluster.shutdown_manager.add_hook_if_missing(DestroyAwsInstancesShutdownHook(cluster))
        node.uplink.startup()
        write_cluster_file(cluster)


class AwsDestroyAction(Action):
    TYPE = 'awsDestroy'

    def __init__(self, scope: str, role):
        super().__init__(ActionId(self.TYPE, scope), comes_after=['stop'])
        self.role = role

    def call(self, cluster, node) -> None:
        if not node.uplink.started():
            node.log.info(f"*** Skipping {self.TYPE}, because the node is not running.")
            return
        node.uplink.shutdown().result()
        self.role.instance_id = ''
        self.role.private_dns = ''
        self.role.public_dns = ''
        cluster.shutdown_manager.add_hook_if_missing(CastleWriteClusterFileHook(cluster))
