"""Action identity, target selectors and the Action base class."""

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True, order=True)
class ActionId:
    """Unique key of an action: its type plus the node it is scoped to."""
    type: str
    scope: str

    @classmethod
    def parse(cls, text: str) -> 'ActionId':
        """Parse 'type:scope'."""
        action_type, _, scope = text.partition(':')
        return cls(action_type, scope)

    def __str__(self) -> str:
        return f"{self.type}:{self.scope}"


@dataclass(frozen=True, order=True)
class TargetId:
    """Selector over action ids. An empty scope matches every scope."""
    type: str
    scope: str = ''

    @classmethod
    def parse(cls, text: str) -> 'TargetId':
        """Parse 'type' or 'type:scope'."""
        target_type, _, scope = text.partition(':')
        return cls(target_type, scope)

    def matches(self, action_id: ActionId) -> bool:
        if self.type != action_id.type:
            return False
        return not self.scope or self.scope == action_id.scope

    def __str__(self) -> str:
        if self.scope:
            return f"{self.type}:{self.scope}"
        return self.type


class Action:
    """A unit of work scoped to one node.

    Subclasses implement call(cluster, node). Raising from call() marks the
    action failed; the scheduler never retries it.

    Attributes:
        id: (type, scope) identity, unique within one scheduler
        targets: Cross-node dependencies, resolved against every action id
        comes_after: Action types which must run first if present on the same node
        initial_delay_ms: Delay observed after dependencies finish, before call()
    """

    def __init__(self, action_id: ActionId, targets: Iterable[TargetId] = (),
                 comes_after: Iterable[str] = (), initial_delay_ms: int = 0):
        if initial_delay_ms < 0:
            raise ValueError(f"initial_delay_ms must be non-negative, got {initial_delay_ms}")
        self._id = action_id
        self._targets = tuple(targets)
        self._comes_after = tuple(comes_after)
        self._initial_delay_ms = initial_delay_ms

    @property
    def id(self) -> ActionId:
        return self._id

    @property
    def targets(self) -> tuple[TargetId, ...]:
        return self._targets

    @property
    def comes_after(self) -> tuple[str, ...]:
        return self._comes_after

    @property
    def initial_delay_ms(self) -> int:
        return self._initial_delay_ms

    def call(self, cluster, node) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._id})"


class StageAction(Action):
    """An action with no work of its own.

    Stages (up, down, start, ...) only group other actions through their
    dependencies, so that requesting the stage pulls in its closure.
    """

    def call(self, cluster, node) -> None:
        return None
