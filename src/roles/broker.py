from dataclasses import dataclass, field

from actions.broker import BrokerStartAction, BrokerStatusAction, BrokerStopAction
from roles.base import Role


@dataclass
class BrokerRole(Role):
    """A Kafka broker.

    Attributes:
        conf: Extra broker.properties entries; they win over the defaults
        jvm_options: Passed to the broker as KAFKA_OPTS
        additional_files: [{'local': ..., 'remote': ...}] synced before the broker starts
    """
    TYPE = 'broker'

    initial_delay_ms: int = 0
    conf: dict = field(default_factory=dict)
    jvm_options: str = ''
    additional_files: list = field(default_factory=list)

    def create_actions(self, node_name: str) -> list:
        return [
            BrokerStartAction(node_name, self),
            BrokerStatusAction(node_name),
            BrokerStopAction(node_name, self),
        ]
