from dataclasses import dataclass

from actions.zookeeper import ZooKeeperStartAction, ZooKeeperStatusAction, ZooKeeperStopAction
from roles.base import Role


@dataclass
class ZooKeeperRole(Role):
    TYPE = 'zooKeeper'

    initial_delay_ms: int = 0

    def create_actions(self, node_name: str) -> list:
        return [
            ZooKeeperStartAction(node_name, self),
            ZooKeeperStatusAction(node_name),
            ZooKeeperStopAction(node_name, self),
        ]
