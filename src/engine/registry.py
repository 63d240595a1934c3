"""Per-node stage actions.

Stages carry no work. Each one orders itself after the concrete actions of
its stage through comes_after, so requesting 'up' or 'down' pulls in the
whole closure of the node's role actions. comes_after only binds actions
present on the same node, so a node without e.g. a broker simply skips it.
"""

from typing import Iterable

from actions.logs import CleanAction, SaveLogsAction
from actions.uplink import DestroyNodesAction
from engine.action import Action, ActionId, StageAction, TargetId

# stage type -> (targets, comes_after)
STAGES: dict[str, tuple[list[TargetId], list[str]]] = {
    'init': ([], ['dockerInit', 'awsInit']),
    'setup': ([TargetId('init')], []),
    'daemonStart': ([], ['zooKeeperStart', 'brokerStart', 'trogdorAgentStart',
                         'trogdorCoordinatorStart', 'jmxStart', 'collectdStart']),
    'start': ([], ['daemonStart', 'taskStart']),
    'up': ([], ['start']),
    'daemonStatus': ([], ['brokerStatus', 'zooKeeperStatus', 'trogdorAgentStatus',
                          'trogdorCoordinatorStatus', 'jmxStatus', 'collectdStatus',
                          'uplinkCheck']),
    'status': ([], ['daemonStatus', 'taskStatus']),
    'daemonStop': ([], ['brokerStop', 'zooKeeperStop', 'trogdorAgentStop',
                        'trogdorCoordinatorStop', 'jmxStop', 'collectdStop']),
    'stop': ([], ['daemonStop', 'saveLogs']),
    'destroy': ([], ['stop', 'dockerDestroy', 'awsDestroy']),
    'down': ([], ['destroy']),
}


def stage_actions(node_name: str) -> list[Action]:
    """Stage actions plus the node-level utility actions for one node."""
    actions: list[Action] = [
        StageAction(ActionId(stage, node_name), targets=targets, comes_after=comes_after)
        for stage, (targets, comes_after) in STAGES.items()
    ]
    actions.append(DestroyNodesAction(node_name))
    actions.append(SaveLogsAction(node_name))
    actions.append(CleanAction(node_name))
    return actions


# Action types which bring a node's roles up.
BRING_UP_TYPES = frozenset(
    STAGES['init'][1] + STAGES['daemonStart'][1] + STAGES['start'][1])


def role_action(role_type: str, node_name: str, actions: Iterable[Action]) -> Action:
    """Grouping action named after a role, so the role name works as a target.

    It comes after the role's bring-up actions on the node, so targeting
    'trogdorAgent' starts every trogdor agent.
    """
    return StageAction(ActionId(role_type, node_name),
                       comes_after=sorted({action.id.type for action in actions
                                           if action.id.type in BRING_UP_TYPES}))


def all_stage_actions(node_names: Iterable[str]) -> list[Action]:
    actions: list[Action] = []
    for node_name in node_names:
        actions.extend(stage_actions(node_name))
    return actions
