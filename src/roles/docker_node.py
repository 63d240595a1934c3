"""Node backed by a local docker container."""

from dataclasses import dataclass

from actions.docker import DockerDestroyAction, DockerInitAction
from actions.uplink import UplinkCheckAction
from cloud.docker import DockerCloud
from roles.base import ACTIONS, UPLINK, Role
from uplink.docker import DockerUplink

# All docker nodes of a cluster share one DockerCloud.
DOCKER_CLOUD_KEY = 'DockerCloud{}'


@dataclass
class DockerNodeRole(Role):
    """Container settings, plus the fields filled in once it is running.

    Attributes:
        image_id: Docker image to run
        docker_user: Login user inside the container
        ssh_port: Host port forwarded to the container's sshd; 0 when not running
        container_name: Set by startup, cleared by destroy
        ssh_identity_path: Private key copied out of the container
    """
    TYPE = 'dockerNode'
    CAPABILITIES = frozenset({ACTIONS, UPLINK})

    image_id: str = ''
    docker_user: str = ''
    ssh_port: int = 0
    container_name: str = ''
    ssh_identity_path: str = ''

    def __post_init__(self):
        if self.ssh_port < 0:
            self.ssh_port = 0

    def create_actions(self, node_name: str) -> list:
        return [
            DockerDestroyAction(node_name, self),
            DockerInitAction(node_name, self),
            UplinkCheckAction(node_name),
        ]

    def create_uplink(self, cluster, node) -> DockerUplink:
        cloud = cluster.cloud_cache.get_or_create(DOCKER_CLOUD_KEY, DockerCloud)
        return DockerUplink(self, cluster, node, cloud)
