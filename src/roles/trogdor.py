"""Trogdor agent and coordinator roles."""

from dataclasses import dataclass

from actions.trogdor import TrogdorDaemon, TrogdorStartAction, TrogdorStatusAction, TrogdorStopAction
from roles.base import Role


def trogdor_actions(daemon: TrogdorDaemon, node_name: str, initial_delay_ms: int) -> list:
    return [
        TrogdorStartAction(daemon, node_name, initial_delay_ms),
        TrogdorStatusAction(daemon, node_name),
        TrogdorStopAction(daemon, node_name, initial_delay_ms),
    ]


@dataclass
class TrogdorAgentRole(Role):
    TYPE = TrogdorDaemon.AGENT.role_type

    initial_delay_ms: int = 0

    def create_actions(self, node_name: str) -> list:
        return trogdor_actions(TrogdorDaemon.AGENT, node_name, self.initial_delay_ms)


@dataclass
class TrogdorCoordinatorRole(Role):
    TYPE = TrogdorDaemon.COORDINATOR.role_type

    initial_delay_ms: int = 0

    def create_actions(self, node_name: str) -> list:
        return trogdor_actions(TrogdorDaemon.COORDINATOR, node_name, self.initial_delay_ms)
