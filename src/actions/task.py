"""Trogdor task actions: submit, report and stop a role's task specs."""

import logging

from actions.trogdor import TrogdorClient, TrogdorConnectionError, TrogdorDaemon
from common import full_stack_trace, get_java_process_status, log_to_all, wait_for
from config import map_substituter, transform
from engine.action import Action, ActionId, TargetId
from engine.lifecycle import ReturnCode

logger = logging.getLogger(__name__)

DONE = 'DONE'
STOP_POLL_MS = 5
STOP_WAIT_MS = 30000


def coordinator_node(cluster, node):
    """The node running the trogdor coordinator, or node itself if there is none."""
    coordinators = cluster.nodes_with_role(TrogdorDaemon.COORDINATOR.role_type)
    if coordinators:
        return cluster.nodes[next(iter(coordinators.values()))]
    return node


def transformed_task_specs(cluster, task_specs: dict) -> dict:
    """Substitute %{bootstrapServers} into every task spec."""
    substituter = map_substituter({'bootstrapServers': cluster.get_bootstrap_servers()})
    return {task_id: transform(spec, substituter) for task_id, spec in sorted(task_specs.items())}


class TaskStartAction(Action):
    TYPE = 'taskStart'

    def __init__(self, scope: str, role):
        super().__init__(ActionId(self.TYPE, scope),
                         targets=[TargetId('daemonStart')],
                         initial_delay_ms=role.initial_delay_ms)
        self.role = role

    def call(self, cluster, node) -> None:
        client = TrogdorClient(coordinator_node(cluster, node))
        for task_id, spec in transformed_task_specs(cluster, self.role.task_specs).items():
            node.log.info(f"*** Creating task {task_id}")
            client.create_task(task_id, spec)


class TaskStatusAction(Action):
    """Fold the state of each task into the return code.

    DONE without error is a success, DONE with an error or a missing task is
    CLUSTER_FAILED, and anything not yet DONE is IN_PROGRESS.
    """
    TYPE = 'taskStatus'

    def __init__(self, scope: str, role):
        super().__init__(ActionId(self.TYPE, scope), targets=[TargetId('daemonStatus')])
        self.role = role

    def call(self, cluster, node) -> None:
        manager = cluster.shutdown_manager
        coordinator = coordinator_node(cluster, node)
        if not coordinator.uplink.can_login():
            log_to_all(f"{node.node_name}: can't check task status because we cannot log in.",
                       node.log, logger)
            manager.change_return_code(ReturnCode.CLUSTER_FAILED)
            return
        try:
            tasks = TrogdorClient(coordinator).get_tasks()
        except TrogdorConnectionError:
            log_to_all(f"** {node.node_name}: Failed to connect to the Trogdor coordinator.",
                       node.log, logger)
            manager.change_return_code(ReturnCode.CLUSTER_FAILED)
            return
        except Exception as e:
            logger.error("Error getting trogdor tasks status: %s", full_stack_trace(e))
            manager.change_return_code(ReturnCode.TOOL_FAILED)
            return
        for task_id in sorted(self.role.task_specs):
            manager.change_return_code(self._task_return_code(node, task_id, tasks.get(task_id)))

    @staticmethod
    def _task_return_code(node, task_id: str, state) -> ReturnCode:
        name = node.node_name
        if state is None:
            log_to_all(f"** {name}: Unable to find task {task_id}", node.log, logger)
            return ReturnCode.CLUSTER_FAILED
        if 'state' not in state:
            log_to_all(f"** {name}: Unable to find 'state' field in JSON state data for "
                       f"{task_id}", node.log, logger)
            return ReturnCode.CLUSTER_FAILED
        status = state.get('status')
        if state['state'] != DONE:
            log_to_all(f"** {name}: Task {task_id} is in progress with status {status}",
                       node.log, logger)
            return ReturnCode.IN_PROGRESS
        error = (state.get('error') or '').strip()
        if error:
            log_to_all(f"** {name}: Task {task_id} failed with error '{error}'", node.log, logger)
            return ReturnCode.CLUSTER_FAILED
        log_to_all(f"** {name}: Task {task_id} succeeded with status {status}", node.log, logger)
        return ReturnCode.SUCCESS


class TaskStopAction(Action):
    TYPE = 'taskStop'

    def __init__(self, scope: str, role):
        super().__init__(ActionId(self.TYPE, scope), initial_delay_ms=role.initial_delay_ms)
        self.role = role

    def call(self, cluster, node) -> None:
        coordinator = coordinator_node(cluster, node)
        if not coordinator.uplink.started():
            node.log.info(f"*** Skipping {self.TYPE}, because the node is not running.")
            return
        if get_java_process_status(coordinator, TrogdorDaemon.COORDINATOR.class_name) \
                != ReturnCode.SUCCESS:
            node.log.info(f"*** Ignoring {self.TYPE} because the Trogdor coordinator process "
                          "does not appear to be running.")
            return
        try:
            client = TrogdorClient(coordinator)
            for task_id in sorted(self.role.task_specs):
                client.stop_task(task_id)
            wait_for(STOP_POLL_MS, STOP_WAIT_MS, lambda: self._all_done(client))
        except Exception as e:
            logger.error("Error stopping trogdor tasks: %s", full_stack_trace(e))
            cluster.shutdown_manager.change_return_code(ReturnCode.TOOL_FAILED)

    def _all_done(self, client: TrogdorClient) -> bool:
        tasks = client.get_tasks()
        for task_id in self.role.task_specs:
            state = tasks.get(task_id)
            if state is not None and state.get('state', DONE) != DONE:
                return False
        return True
