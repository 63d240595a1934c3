"""Common utilities shared by the cluster, command and action modules."""

import io
import logging
import subprocess
import time
import traceback
from pathlib import Path
from typing import Callable, Optional

from engine.lifecycle import ReturnCode

logger = logging.getLogger(__name__)


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: Optional[int] = None,
    capture: bool = True,
    env: Optional[dict] = None,
    stdin: Optional[bytes] = None,
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            input=stdin,
            timeout=timeout,
            env=env,
            check=False  # We handle return codes explicitly
        )
        stdout = result.stdout.decode('utf-8', errors='replace') if result.stdout else ''
        stderr = result.stderr.decode('utf-8', errors='replace') if result.stderr else ''
        return result.returncode, stdout, stderr
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except OSError as e:
        return -1, '', str(e)


def full_stack_trace(exc: BaseException) -> str:
    """Render an exception with every frame and its cause/context chain."""
    return ''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def log_to_all(message: str, *loggers: logging.Logger) -> None:
    """Write one message to several loggers (e.g. node log and cluster log)."""
    for log in loggers:
        if log is not None:
            log.info(message)


def wait_for(poll_interval_ms: int, max_wait_ms: int, condition: Callable[[], bool]) -> None:
    """Poll condition until it returns True.

    Raises:
        TimeoutError: If max_wait_ms elapses first
    """
    start = time.monotonic()
    while True:
        if condition():
            return
        if (time.monotonic() - start) * 1000 > max_wait_ms:
            raise TimeoutError(f"Timed out waiting for {condition}")
        time.sleep(poll_interval_ms / 1000)


def merge_config(map1: dict, map2: dict) -> dict:
    """Merge two config maps. Entries from the first map take priority."""
    results = dict(map1)
    for key, value in map2.items():
        results.setdefault(key, value)
    return results


def _bracket_first(pattern: str) -> str:
    # '[k]afka' matches 'kafka' but not the awk command line that contains it.
    return f'[{pattern[0]}]{pattern[1:]}'


def kill_process_args(process_pattern: str, signal_type: str = 'SIGTERM') -> list[str]:
    """Remote arguments which kill every process matching a pattern."""
    return [
        '-n', '--', 'ps', 'aux', '|', 'awk',
        f"'/{_bracket_first(process_pattern)}/ {{ print $2 }}'",
        '|', 'xargs', '-r', 'kill', '-s', signal_type, '--',
    ]


def kill_java_process_args(process_pattern: str, force: bool = False) -> list[str]:
    """Remote arguments which kill every java process matching a pattern."""
    args = [
        '-n', '--', 'jcmd', '|', 'awk', f"'/{process_pattern}/ {{ print $1 }}'",
        '|', 'xargs', '-r', 'kill',
    ]
    if force:
        args.append('-9')
    args.append('--')
    return args


def get_process_status(node, process_pattern: str, cluster_log=None) -> ReturnCode:
    """Check whether a process matching process_pattern runs on the node."""
    output = io.StringIO()
    rc = node.uplink.command().capture_output(output).args(
        '-n', '--', 'ps', 'aux', '|', 'awk',
        f"'/{_bracket_first(process_pattern)}/ {{ print $2 }}'").run()
    if rc != 0:
        log_to_all(f"{node.node_name}: Unable to determine if {process_pattern} is running.",
                   node.log, cluster_log or logger)
        return ReturnCode.TOOL_FAILED
    pids = output.getvalue().strip()
    if not pids:
        log_to_all(f"{node.node_name}: {process_pattern} is not running.",
                   node.log, cluster_log or logger)
        return ReturnCode.CLUSTER_FAILED
    log_to_all(f"{node.node_name}: {process_pattern} is running as pid {' '.join(pids.split())}",
               node.log, cluster_log or logger)
    return ReturnCode.SUCCESS


def get_java_process_status(node, process_pattern: str, cluster_log=None) -> ReturnCode:
    """Check whether a java process matching process_pattern runs on the node.

    jcmd | grep exits 1 when nothing matched and 255 when ssh itself failed.
    """
    output = io.StringIO()
    rc = node.uplink.command().capture_output(output).args(
        '-n', '--', 'jcmd', '|', 'grep', process_pattern).run()
    if rc == 1:
        log_to_all(f"{node.node_name}: {process_pattern} is not running.",
                   node.log, cluster_log or logger)
        return ReturnCode.CLUSTER_FAILED
    if rc != 0:
        log_to_all(f"{node.node_name}: Unable to determine if {process_pattern} is running.",
                   node.log, cluster_log or logger)
        return ReturnCode.TOOL_FAILED
    pid = output.getvalue().strip().split(' ', 1)[0]
    log_to_all(f"{node.node_name}: {process_pattern} is running as pid {pid}",
               node.log, cluster_log or logger)
    return ReturnCode.SUCCESS
