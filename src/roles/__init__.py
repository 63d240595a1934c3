"""Role kinds and lookup by kind name."""

from config import ConfigError
from roles.aws_node import AwsNodeRole
from roles.base import ACTIONS, UPLINK, Role
from roles.broker import BrokerRole
from roles.collectd import CollectdRole
from roles.docker_node import DockerNodeRole
from roles.jmx_dumper import JmxDumperRole
from roles.task import TaskRole
from roles.trogdor import TrogdorAgentRole, TrogdorCoordinatorRole
from roles.zookeeper import ZooKeeperRole

ROLE_TYPES: dict[str, type[Role]] = {
    role_class.TYPE: role_class for role_class in (
        AwsNodeRole,
        BrokerRole,
        CollectdRole,
        DockerNodeRole,
        JmxDumperRole,
        TaskRole,
        TrogdorAgentRole,
        TrogdorCoordinatorRole,
        ZooKeeperRole,
    )
}

__all__ = ['ACTIONS', 'ROLE_TYPES', 'UPLINK', 'Role', 'role_from_dict']


def role_from_dict(name: str, data: dict) -> Role:
    """Build the role called name from its JSON form.

    The kind comes from data['type'], or from the name itself when 'type'
    is absent, so a role named 'broker' needs no type key.

    Raises:
        ConfigError: If the kind is unknown or data has unknown fields
    """
    data = data or {}
    kind = data.get('type') or name
    role_class = ROLE_TYPES.get(kind)
    if role_class is None:
        raise ConfigError(f"Role {name} has unknown type {kind}. "
                          f"Known types: {', '.join(sorted(ROLE_TYPES))}")
    return role_class.from_dict(data)
