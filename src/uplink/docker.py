"""Uplink to a local docker container."""

import logging
from concurrent.futures import Future

from command.ssh import SshCommand, Tunnel
from common import log_to_all
from uplink.base import Uplink, completed_future

logger = logging.getLogger(__name__)


class DockerUplink(Uplink):
    """Reaches a container through sshd on a host port of localhost."""

    def __init__(self, role, cluster, node, cloud):
        super().__init__(cluster, node)
        self.role = role
        self.cloud = cloud

    def command(self) -> SshCommand:
        return SshCommand(self.node, 'localhost', self.role.docker_user, self.role.ssh_port,
                          self.role.ssh_identity_path)

    def internal_dns(self) -> str:
        return self.role.container_name

    def started(self) -> bool:
        return bool(self.role.container_name)

    def can_login(self) -> bool:
        return self.role.ssh_port > 0

    def open_port(self, port: int) -> Tunnel:
        return self.command().tunnel(port)

    def startup(self) -> None:
        """Start the container ducker<NN> for node index NN.

        Raises:
            RuntimeError: If the role already records a container
        """
        name = self.node.node_name
        if self.role.container_name:
            raise RuntimeError(f"Can't start node {name} because there is already "
                               "a container name set.")
        if self.role.ssh_port > 0:
            raise RuntimeError(f"Can't start node {name} because there is already "
                               "an ssh port set.")
        if self.role.ssh_identity_path:
            raise RuntimeError(f"Can't start node {name} because there is already "
                               "an ssh identity path set.")
        container_name = f"ducker{self.node.node_index:02d}"
        self.node.log.info(f"*** Creating new docker container {container_name} "
                           f"with image ID {self.role.image_id}")
        container_id = self.cloud.startup(self.cluster, self.node, self.role, container_name)
        self.node.log.info(f"*** Created a new docker container {container_id}")
        self.role.container_name = container_name
        self.role.ssh_port = self.cloud.get_docker_port(self.node, container_name)
        self.role.ssh_identity_path = self.cloud.save_ssh_key_file(
            self.cluster, self.node, container_name, self.role.docker_user)

    def check(self) -> None:
        containers = self.cloud.list_containers(self.node)
        name = self.node.node_name
        self.node.log.info(f"*** Found container name(s): {', '.join(containers)}")
        if not self.role.container_name:
            log_to_all(f"*** {name}: No docker container name.", self.node.log, logger)
        elif self.role.container_name in containers:
            log_to_all(f"*** {name}: Found container name {self.role.container_name}.",
                       self.node.log, logger)
        else:
            log_to_all(f"*** {name}: Failed to find container name {self.role.container_name}.",
                       self.node.log, logger)

    def shutdown(self) -> Future:
        if self.role.container_name:
            self.cloud.shutdown(self.node, self.role.container_name)
            self.role.container_name = ''
        return completed_future()

    def shutdown_all(self) -> None:
        self.cloud.shutdown_all(self.cluster, self.node)
