from dataclasses import dataclass, field

from actions.jmx import JmxDumperStartAction, JmxDumperStatusAction, JmxDumperStopAction
from roles.base import Role


@dataclass
class JmxDumperRole(Role):
    """Periodically dumps JMX metrics; conf is written out as the dumper's JSON config."""
    TYPE = 'jmxDumper'

    initial_delay_ms: int = 0
    conf: dict = field(default_factory=dict)

    def create_actions(self, node_name: str) -> list:
        return [
            JmxDumperStartAction(node_name, self),
            JmxDumperStatusAction(node_name),
            JmxDumperStopAction(node_name, self),
        ]
