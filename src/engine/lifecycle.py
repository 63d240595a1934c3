"""Process return codes and the shutdown-hook registry.

The ShutdownManager is created by the top-level run and handed to the
cluster; actions register hooks on it (for example to tear down nodes if
the run fails) and report cluster conditions through change_return_code().
"""

import atexit
import logging
import threading
import traceback
from enum import IntEnum

logger = logging.getLogger(__name__)


class ReturnCode(IntEnum):
    """Process exit status, ordered by severity."""
    SUCCESS = 0
    IN_PROGRESS = 1
    CLUSTER_FAILED = 2
    TOOL_FAILED = 3


class ShutdownHook:
    """A named teardown step. Hooks are deduplicated by name."""

    def __init__(self, name: str):
        self.name = name

    def run(self, return_code: ReturnCode) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"ShutdownHook({self.name})"


class ShutdownManager:
    """Ordered, idempotent registry of shutdown hooks plus the worst return code."""

    def __init__(self):
        self._lock = threading.Lock()
        self._hooks: dict[str, ShutdownHook] = {}
        self._return_code = ReturnCode.SUCCESS
        self._shut_down = False
        self._installed = False

    def install(self) -> None:
        """Run the hooks at interpreter exit if shutdown_normally() never ran."""
        with self._lock:
            if self._installed:
                return
            self._installed = True
        atexit.register(self._run_at_exit)

    def _run_at_exit(self) -> None:
        with self._lock:
            if self._shut_down:
                return
        logger.warning("Running shutdown hooks after an abnormal exit")
        self.change_return_code(ReturnCode.TOOL_FAILED)
        self.shutdown_normally()

    def add_hook_if_missing(self, hook: ShutdownHook) -> bool:
        """Register hook unless one with the same name exists.

        Returns:
            True if the hook was added
        """
        with self._lock:
            if self._shut_down:
                raise RuntimeError(f"Cannot add {hook.name}: shutdown already ran")
            if hook.name in self._hooks:
                return False
            self._hooks[hook.name] = hook
            logger.debug(f"Registered shutdown hook {hook.name}")
            return True

    @property
    def hook_names(self) -> list[str]:
        with self._lock:
            return list(self._hooks)

    def change_return_code(self, return_code: ReturnCode) -> ReturnCode:
        """Raise the return code to return_code if it is more severe."""
        with self._lock:
            if return_code > self._return_code:
                self._return_code = ReturnCode(return_code)
            return self._return_code

    @property
    def return_code(self) -> ReturnCode:
        with self._lock:
            return self._return_code

    def shutdown_normally(self) -> ReturnCode:
        """Run every hook once, in registration order."""
        with self._lock:
            if self._shut_down:
                return self._return_code
            self._shut_down = True
            hooks = list(self._hooks.values())

        for hook in hooks:
            return_code = self.return_code
            logger.debug(f"Running shutdown hook {hook.name} with {return_code.name}")
            try:
                hook.run(return_code)
            except Exception as e:
                logger.error("Shutdown hook %s failed: %s", hook.name,
                             ''.join(traceback.format_exception(type(e), e, e.__traceback__)))
                self.change_return_code(ReturnCode.TOOL_FAILED)
        return self.return_code
