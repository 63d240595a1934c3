from dataclasses import dataclass

from actions.collectd import CollectdStartAction, CollectdStatusAction, CollectdStopAction
from roles.base import Role


@dataclass
class CollectdRole(Role):
    TYPE = 'collectd'

    initial_delay_ms: int = 0

    def create_actions(self, node_name: str) -> list:
        return [
            CollectdStartAction(node_name, self),
            CollectdStatusAction(node_name, self),
            CollectdStopAction(node_name, self),
        ]
