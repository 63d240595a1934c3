"""Dependency graph over castle actions.

Edges run from a predecessor to the action that waits for it. They come
from two places:
- targets: every action anywhere whose id matches the TargetId
- comes_after: the action of that type on the same scope, if there is one

A target that matches nothing is legal (an optional role may be absent
from the cluster). Duplicate ids and cycles are configuration errors and
are reported before anything runs.
"""

import logging
from collections import deque
from typing import Iterable

from config import ConfigError
from engine.action import Action, ActionId, TargetId

logger = logging.getLogger(__name__)


class DuplicateActionError(ConfigError):
    """Two actions share one (type, scope) id."""


class ActionCycleError(ConfigError):
    """The dependency relation contains a cycle.

    Attributes:
        cycle: Action ids along the cycle, first id repeated at the end
    """

    def __init__(self, cycle: list[ActionId]):
        self.cycle = cycle
        super().__init__("Dependency cycle: " + " -> ".join(str(i) for i in cycle))


class UnknownTargetError(ConfigError):
    """A requested target name matches no action."""


class ActionDependencyGraph:
    """Directed acyclic graph of actions keyed by ActionId."""

    def __init__(self, actions: Iterable[Action]):
        """Index actions and resolve their dependencies.

        Raises:
            DuplicateActionError: If two actions share an id
            ActionCycleError: If the dependencies form a cycle
        """
        self._actions: dict[ActionId, Action] = {}
        for action in actions:
            if action.id in self._actions:
                raise DuplicateActionError(f"Duplicate action id {action.id}")
            self._actions[action.id] = action

        self._predecessors: dict[ActionId, set[ActionId]] = {i: set() for i in self._actions}
        self._successors: dict[ActionId, set[ActionId]] = {i: set() for i in self._actions}
        self._build_edges()
        self._check_acyclic()

    def _build_edges(self) -> None:
        by_type: dict[str, list[ActionId]] = {}
        for action_id in self._actions:
            by_type.setdefault(action_id.type, []).append(action_id)

        for action in self._actions.values():
            for target in action.targets:
                for candidate in by_type.get(target.type, []):
                    if target.matches(candidate):
                        self._add_edge(candidate, action.id)
            for action_type in action.comes_after:
                predecessor = ActionId(action_type, action.id.scope)
                if predecessor in self._actions:
                    self._add_edge(predecessor, action.id)

    def _add_edge(self, predecessor: ActionId, action_id: ActionId) -> None:
        if predecessor == action_id:
            raise ActionCycleError([action_id, action_id])
        self._predecessors[action_id].add(predecessor)
        self._successors[predecessor].add(action_id)

    def _check_acyclic(self) -> None:
        """Depth-first search over predecessors with an explicit stack.

        on_stack is the current path; each frame keeps an iterator over the
        predecessors still to visit.
        """
        visited: set[ActionId] = set()
        on_stack: list[ActionId] = []
        on_stack_set: set[ActionId] = set()

        for root in sorted(self._actions):
            if root in visited:
                continue
            visited.add(root)
            on_stack.append(root)
            on_stack_set.add(root)
            frames = [iter(sorted(self._predecessors[root]))]
            while frames:
                predecessor = next(frames[-1], None)
                if predecessor is None:
                    frames.pop()
                    on_stack_set.discard(on_stack.pop())
                    continue
                if predecessor in on_stack_set:
                    start = on_stack.index(predecessor)
                    raise ActionCycleError(on_stack[start:] + [predecessor])
                if predecessor not in visited:
                    visited.add(predecessor)
                    on_stack.append(predecessor)
                    on_stack_set.add(predecessor)
                    frames.append(iter(sorted(self._predecessors[predecessor])))

    def get_action(self, action_id: ActionId) -> Action:
        """Get an action by id.

        Raises:
            KeyError: If the id is not in the graph
        """
        return self._actions[action_id]

    def predecessors_of(self, action_id: ActionId) -> set[ActionId]:
        """Ids which must be DONE before action_id may start.

        Raises:
            KeyError: If the id is not in the graph
        """
        return set(self._predecessors[action_id])

    def successors_of(self, action_id: ActionId) -> set[ActionId]:
        """Ids which wait directly on action_id."""
        return set(self._successors[action_id])

    def all_ids(self) -> list[ActionId]:
        return sorted(self._actions)

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, action_id: ActionId) -> bool:
        return action_id in self._actions

    def matching(self, target_name: str) -> list[ActionId]:
        """Ids of the actions a target name ('type' or 'type:scope') selects.

        Raises:
            UnknownTargetError: If no action matches the name
        """
        target = TargetId.parse(target_name)
        seeds = [i for i in sorted(self._actions) if target.matches(i)]
        if not seeds:
            raise UnknownTargetError(f"Unable to find any actions matching target '{target_name}'")
        return seeds

    def resolve(self, target_name: str) -> set[ActionId]:
        """Expand a target name to its closure.

        The closure holds every matching action plus everything those
        actions transitively depend on.

        Raises:
            UnknownTargetError: If no action matches the name
        """
        seeds = self.matching(target_name)

        closure: set[ActionId] = set(seeds)
        queue: deque[ActionId] = deque(seeds)
        while queue:
            action_id = queue.popleft()
            for predecessor in self._predecessors[action_id]:
                if predecessor not in closure:
                    closure.add(predecessor)
                    queue.append(predecessor)
        logger.debug(f"Target {target_name} resolved to {len(closure)} action(s)")
        return closure
