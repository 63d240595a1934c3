"""Per-action execution state for one scheduler run.

Tracks each action through WAITING -> READY -> RUNNING -> DONE/FAILED,
or straight to SKIPPED when something it depends on failed.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from engine.action import ActionId


class ActionState(Enum):
    WAITING = 'waiting'
    READY = 'ready'
    RUNNING = 'running'
    DONE = 'done'
    FAILED = 'failed'
    SKIPPED = 'skipped'

    @property
    def is_terminal(self) -> bool:
        return self in (ActionState.DONE, ActionState.FAILED, ActionState.SKIPPED)


@dataclass
class ActionStatus:
    """Execution state of one action.

    Attributes:
        action_id: The action being tracked
        state: Current ActionState
        started_at: Timestamp when call() began (after the initial delay)
        completed_at: Timestamp when the action reached a terminal state
        error: Failure or skip reason
    """
    action_id: ActionId
    state: ActionState = ActionState.WAITING
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    error: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, repr=False)

    def ready(self) -> None:
        self.state = ActionState.READY

    def start(self) -> None:
        self.state = ActionState.RUNNING
        self.started_at = time.time()

    def complete(self) -> None:
        self.state = ActionState.DONE
        self.completed_at = time.time()

    def fail(self, exception: BaseException) -> None:
        self.state = ActionState.FAILED
        self.completed_at = time.time()
        self.exception = exception
        self.error = f"{type(exception).__name__}: {exception}"

    def skip(self, reason: str) -> None:
        self.state = ActionState.SKIPPED
        self.completed_at = time.time()
        self.error = reason

    @property
    def duration(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return self.completed_at - self.started_at
        return None
