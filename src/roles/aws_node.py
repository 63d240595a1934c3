"""Node backed by an AWS EC2 instance."""

from dataclasses import dataclass

from actions.aws import AwsDestroyAction, AwsInitAction
from actions.uplink import UplinkCheckAction
from cloud.ec2 import Ec2Cloud, Ec2Settings
from roles.base import ACTIONS, UPLINK, Role
from uplink.ec2 import Ec2Uplink


@dataclass
class AwsNodeRole(Role):
    """EC2 instance settings.

    key_pair, security_group and region select the shared Ec2Cloud.
    instance_id and the DNS names are filled in once the instance runs.
    """
    TYPE = 'awsNode'
    CAPABILITIES = frozenset({ACTIONS, UPLINK})

    key_pair: str = ''
    security_group: str = ''
    region: str = ''
    instance_type: str = ''
    image_id: str = ''
    ssh_user: str = ''
    ssh_port: int = 0
    ssh_identity_file: str = ''
    instance_id: str = ''
    private_dns: str = ''
    public_dns: str = ''

    def settings(self) -> Ec2Settings:
        return Ec2Settings(self.key_pair, self.security_group, self.region)

    def create_actions(self, node_name: str) -> list:
        return [
            AwsDestroyAction(node_name, self),
            AwsInitAction(node_name, self),
            UplinkCheckAction(node_name),
        ]

    def create_uplink(self, cluster, node) -> Ec2Uplink:
        settings = self.settings()
        cloud = cluster.cloud_cache.get_or_create(str(settings), lambda: Ec2Cloud(settings))
        return Ec2Uplink(self, cluster, node, cloud)
