"""Uplink to an AWS EC2 instance."""

import logging
from concurrent.futures import Future

from command.shell import CommandResultError
from command.ssh import SshCommand, Tunnel
from common import log_to_all, wait_for
from uplink.base import Uplink

logger = logging.getLogger(__name__)

DNS_POLL_DELAY_MS = 200
SSH_POLL_DELAY_MS = 200
STARTUP_MAX_WAIT_MS = 30 * 60 * 1000


class Ec2Uplink(Uplink):
    """Reaches an instance over ssh to its public DNS name."""

    def __init__(self, role, cluster, node, cloud):
        super().__init__(cluster, node)
        self.role = role
        self.cloud = cloud

    def command(self) -> SshCommand:
        return SshCommand(self.node, self.role.public_dns, self.role.ssh_user, self.role.ssh_port,
                          self.role.ssh_identity_file)

    def internal_dns(self) -> str:
        return self.role.private_dns

    def started(self) -> bool:
        return bool(self.role.instance_id)

    def can_login(self) -> bool:
        return bool(self.role.public_dns)

    def open_port(self, port: int) -> Tunnel:
        return self.command().tunnel(port)

    def startup(self) -> None:
        """Create the instance, then wait for its DNS names and for ssh."""
        self.node.log.info(f"*** Creating new instance with instance type "
                           f"{self.role.instance_type}, imageId {self.role.image_id}")
        self.role.instance_id = self.cloud.create_instance(
            self.role.instance_type, self.role.image_id).result()
        wait_for(DNS_POLL_DELAY_MS, STARTUP_MAX_WAIT_MS, self._check_dns)
        wait_for(SSH_POLL_DELAY_MS, STARTUP_MAX_WAIT_MS, self._check_ssh)

    def _check_dns(self) -> bool:
        info = self.cloud.describe_instance(self.role.instance_id).result()
        if not info.private_dns:
            self.node.log.info(f"*** Waiting for private DNS name for {self.role.instance_id}...")
            return False
        if not info.public_dns:
            self.node.log.info(f"*** Waiting for public DNS name for {self.role.instance_id}...")
            return False
        self.node.log.info(f"*** Got privateDnsName = {info.private_dns}, "
                           f"publicDnsName = {info.public_dns}")
        self.role.private_dns = info.private_dns
        self.role.public_dns = info.public_dns
        return True

    def _check_ssh(self) -> bool:
        try:
            self.command().args('-n', '--', 'echo').must_run()
        except CommandResultError as e:
            self.node.log.info(f"*** Unable to ssh to {self.node.node_name}: {e}")
            return False
        log_to_all(f"*** Successfully created an AWS node for {self.node.node_name}",
                   self.node.log, logger)
        return True

    def check(self) -> None:
        infos = self.cloud.describe_all_instances().result()
        found = False
        for info in infos:
            self.node.log.info(f"** Found {info}.")
            if info.instance_id == self.role.instance_id:
                found = True
        name = self.node.node_name
        if not self.role.instance_id:
            log_to_all(f"*** {name}: No AWS instanceID configured.", self.node.log, logger)
        elif found:
            log_to_all(f"*** {name}: Found instanceID {self.role.instance_id}.",
                       self.node.log, logger)
        else:
            log_to_all(f"*** {name}: Failed to find instanceID {self.role.instance_id}.",
                       self.node.log, logger)

    def shutdown(self) -> Future:
        return self.cloud.terminate_instance(self.role.instance_id)

    def shutdown_all(self) -> None:
        self.cloud.destroy_all(self.node)
