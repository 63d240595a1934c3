"""Concurrent execution of an action closure.

Each READY action gets its own daemon thread, so independent branches on
different nodes run in parallel while every dependency chain stays
serialized. Only the state map and the ready-set transition are guarded
by a lock; action work runs outside it.

On timeout no further actions are dispatched. Actions already running are
left to finish in the background (their threads are daemons, so they do
not keep the process alive) and the run is reported as a failure.
"""

import dataclasses
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Iterable, Optional

from common import full_stack_trace
from engine.action import Action, ActionId
from engine.graph import ActionDependencyGraph
from engine.lifecycle import ReturnCode
from engine.state import ActionState, ActionStatus

logger = logging.getLogger(__name__)


@dataclass
class SchedulerResult:
    """Outcome of await_completion()."""
    success: bool
    timed_out: bool
    return_code: ReturnCode
    statuses: dict[ActionId, ActionStatus]

    def ids_in_state(self, state: ActionState) -> list[ActionId]:
        return sorted(i for i, s in self.statuses.items() if s.state == state)

    @property
    def failed(self) -> list[ActionId]:
        return self.ids_in_state(ActionState.FAILED)

    @property
    def skipped(self) -> list[ActionId]:
        return self.ids_in_state(ActionState.SKIPPED)


class ActionScheduler:
    """Runs the closure of the requested targets over a cluster."""

    class Builder:
        """Collects target names and actions, then builds the graph and scheduler."""

        def __init__(self, cluster):
            self._cluster = cluster
            self._target_names: list[str] = []
            self._actions: list[Action] = []

        def add_target_names(self, target_names: Iterable[str]) -> 'ActionScheduler.Builder':
            self._target_names.extend(target_names)
            return self

        def add_actions(self, actions: Iterable[Action]) -> 'ActionScheduler.Builder':
            self._actions.extend(actions)
            return self

        def build(self) -> 'ActionScheduler':
            """Build the dependency graph and resolve the targets.

            Raises:
                ConfigError: On duplicate ids, cycles or unknown target names
            """
            graph = ActionDependencyGraph(self._actions)
            action_ids: set[ActionId] = set()
            for name in self._target_names:
                action_ids |= graph.resolve(name)
            return ActionScheduler(self._cluster, graph, action_ids)

    def __init__(self, cluster, graph: ActionDependencyGraph, action_ids: Iterable[ActionId]):
        self._cluster = cluster
        self._graph = graph
        self._ids = frozenset(action_ids)
        self._lock = threading.Lock()
        self._finished = threading.Event()
        self._statuses = {i: ActionStatus(i) for i in sorted(self._ids)}
        self._pending = {i: len(graph.predecessors_of(i) & self._ids) for i in self._ids}
        self._remaining = len(self._ids)
        self._threads: dict[ActionId, threading.Thread] = {}
        self._return_code = ReturnCode.SUCCESS
        self._started = False
        self._stopped = False
        if not self._ids:
            self._finished.set()

    @property
    def graph(self) -> ActionDependencyGraph:
        return self._graph

    @property
    def action_ids(self) -> list[ActionId]:
        return sorted(self._ids)

    @property
    def statuses(self) -> dict[ActionId, ActionStatus]:
        """Snapshot of every action's status."""
        with self._lock:
            return {i: dataclasses.replace(s) for i, s in self._statuses.items()}

    @property
    def return_code(self) -> ReturnCode:
        with self._lock:
            code = self._return_code
        manager = self._shutdown_manager()
        if manager is not None:
            code = max(code, manager.return_code)
        return ReturnCode(code)

    def _shutdown_manager(self):
        return getattr(self._cluster, 'shutdown_manager', None)

    def _raise_return_code(self, code: ReturnCode) -> None:
        with self._lock:
            self._return_code = max(self._return_code, code)
        manager = self._shutdown_manager()
        if manager is not None:
            manager.change_return_code(code)

    def _node_for(self, action_id: ActionId):
        nodes = getattr(self._cluster, 'nodes', None) or {}
        return nodes.get(action_id.scope)

    def start(self) -> None:
        """Dispatch every action with no pending predecessors. Idempotent."""
        with self._lock:
            if self._started or self._stopped:
                return
            self._started = True
            logger.debug(f"Starting {len(self._ids)} action(s)")
            for action_id in sorted(self._ids):
                if self._pending[action_id] == 0:
                    self._dispatch_locked(action_id)

    def _dispatch_locked(self, action_id: ActionId) -> None:
        status = self._statuses[action_id]
        status.ready()
        if self._stopped:
            return
        thread = threading.Thread(
            target=self._run_action,
            args=(action_id,),
            name=f"castle-{action_id}",
            daemon=True,
        )
        self._threads[action_id] = thread
        thread.start()

    def _run_action(self, action_id: ActionId) -> None:
        action = self._graph.get_action(action_id)
        node = self._node_for(action_id)
        if action.initial_delay_ms > 0:
            logger.debug(f"[{action_id}] Waiting {action.initial_delay_ms} ms before starting")
            time.sleep(action.initial_delay_ms / 1000)

        with self._lock:
            if self._stopped:
                return
            self._statuses[action_id].start()

        logger.debug(f"[{action_id}] Running")
        try:
            action.call(self._cluster, node)
        except BaseException as e:
            # SystemExit and KeyboardInterrupt fail the action too.
            self._on_failure(action_id, node, e)
        else:
            self._on_success(action_id)

    def _on_success(self, action_id: ActionId) -> None:
        with self._lock:
            status = self._statuses[action_id]
            status.complete()
            self._remaining -= 1
            for successor in sorted(self._graph.successors_of(action_id) & self._ids):
                self._pending[successor] -= 1
                if (self._pending[successor] == 0
                        and self._statuses[successor].state == ActionState.WAITING):
                    self._dispatch_locked(successor)
            if self._remaining == 0:
                self._finished.set()
        logger.debug(f"[{action_id}] Done in {status.duration or 0:.1f}s")

    def _on_failure(self, action_id: ActionId, node, exc: BaseException) -> None:
        trace = full_stack_trace(exc)
        logger.error("Action %s failed: %s", action_id, trace)
        if node is not None and getattr(node, 'log', None) is not None:
            node.log.error("*** Action %s failed: %s", action_id, trace)
        self._raise_return_code(ReturnCode.TOOL_FAILED)

        skipped: list[ActionId] = []
        with self._lock:
            self._statuses[action_id].fail(exc)
            self._remaining -= 1
            queue: deque[ActionId] = deque([action_id])
            while queue:
                current = queue.popleft()
                for successor in sorted(self._graph.successors_of(current) & self._ids):
                    status = self._statuses[successor]
                    if status.state == ActionState.WAITING:
                        status.skip(f"dependency {action_id} failed")
                        self._remaining -= 1
                        skipped.append(successor)
                        queue.append(successor)
            if self._remaining == 0:
                self._finished.set()
        if skipped:
            logger.warning("Skipping %d action(s) because %s failed: %s", len(skipped), action_id,
                           ", ".join(str(i) for i in skipped))

    def await_completion(self, timeout_seconds: Optional[float]) -> SchedulerResult:
        """Run the actions and block until they finish or the timeout elapses.

        A timeout is reported in the result (timed_out=True, TOOL_FAILED); it
        does not raise.
        """
        self.start()
        finished = self._finished.wait(timeout_seconds)
        if not finished:
            with self._lock:
                self._stopped = True
                unfinished = [i for i, s in self._statuses.items() if not s.state.is_terminal]
            logger.error("Timed out after %s second(s) with %d unfinished action(s): %s",
                         timeout_seconds, len(unfinished), ", ".join(str(i) for i in unfinished))
            self._raise_return_code(ReturnCode.TOOL_FAILED)

        statuses = self.statuses
        success = finished and all(s.state == ActionState.DONE for s in statuses.values())
        result = SchedulerResult(
            success=success,
            timed_out=not finished,
            return_code=self.return_code,
            statuses=statuses,
        )
        for action_id in result.failed:
            logger.error("%s: FAILED (%s)", action_id, statuses[action_id].error)
        for action_id in result.skipped:
            logger.warning("%s: SKIPPED (%s)", action_id, statuses[action_id].error)
        return result

    def close(self) -> None:
        """Stop dispatching. Safe at any point; never waits on running actions."""
        with self._lock:
            self._stopped = True
            in_flight = [i for i, t in self._threads.items() if t.is_alive()]
        if in_flight:
            logger.info("Leaving %d in-flight action(s) to finish: %s", len(in_flight),
                        ", ".join(str(i) for i in sorted(in_flight)))

    def __enter__(self) -> 'ActionScheduler':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
