"""Shared steps for starting, checking and stopping node daemons.

Starting a daemon always follows the same sequence:
1. write its configuration files into the working directory
2. kill any copy that is already running
3. recreate its remote directories
4. rsync the configuration files over
5. launch it under nohup, detached from the ssh session

Subclasses fill in the daemon-specific parts.
"""

import io
import logging
from pathlib import Path
from typing import Iterable, Optional

from common import get_java_process_status, kill_java_process_args, kill_process_args, wait_for
from engine.action import Action, ActionId, TargetId
from engine.lifecycle import ReturnCode

logger = logging.getLogger(__name__)

STOP_POLL_MS = 200
STOP_WAIT_MS = 30000


def setup_paths_args(*paths: str) -> list[str]:
    """Remote arguments which recreate paths, empty and owned by the ssh user."""
    return ['-n', '--',
            'sudo', 'rm', '-rf', *paths, '&&',
            'sudo', 'mkdir', '-p', *paths, '&&',
            'sudo', 'chown', '`whoami`', *paths]


def run_daemon_args(command: list[str], log_dir: str,
                    env: Optional[dict[str, str]] = None) -> list[str]:
    """Remote arguments which run command in the background, output to log_dir."""
    prefix = [f"{k}='{v}'" for k, v in (env or {}).items()]
    return ['-n', '--', *prefix, 'nohup', *command,
            f'&>{log_dir}/stdout-stderr.txt', '</dev/null', '&']


def format_properties(props: dict) -> str:
    """Render a java properties file, keys sorted."""
    return ''.join(f"{k}={v}\n" for k, v in sorted(props.items()))


def java_process_running(node, class_name: str) -> bool:
    """True if jcmd lists class_name on the node.

    Raises:
        RuntimeError: If the check itself failed
    """
    rc = node.uplink.command().capture_output(io.StringIO()).args(
        '-n', '--', 'jcmd', '|', 'grep', class_name).run()
    if rc == 1:
        return False
    if rc != 0:
        raise RuntimeError(f"Unable to determine if {class_name} is running on "
                           f"{node.node_name} (exit status {rc})")
    return True


class DaemonStartAction(Action):
    """Start one daemon on a node."""
    TYPE = ''

    def __init__(self, scope: str, initial_delay_ms: int = 0,
                 targets: Iterable[TargetId] = (), comes_after: Iterable[str] = ('setup',)):
        super().__init__(ActionId(self.TYPE, scope), targets=targets,
                         comes_after=comes_after, initial_delay_ms=initial_delay_ms)

    def config_files(self, cluster, node) -> dict[str, str]:
        """Configuration text keyed by remote path."""
        return {}

    def remote_dirs(self) -> list[str]:
        raise NotImplementedError

    def kill(self, cluster, node) -> None:
        raise NotImplementedError

    def run_args(self, cluster, node) -> list[str]:
        raise NotImplementedError

    def after_sync(self, cluster, node) -> None:
        """Hook for extra uploads between the config sync and the launch."""

    def local_path(self, cluster, node, remote_path: str) -> Path:
        return Path(cluster.env.working_directory,
                    f"{self.TYPE}-{node.node_index}-{Path(remote_path).name}")

    def call(self, cluster, node) -> None:
        local_files: dict[Path, str] = {}
        try:
            for remote_path, text in self.config_files(cluster, node).items():
                local = self.local_path(cluster, node, remote_path)
                local.write_text(text, encoding='utf-8')
                local_files[local] = remote_path
            self.kill(cluster, node)
            node.uplink.command().args(*setup_paths_args(*self.remote_dirs())).must_run()
            for local, remote_path in local_files.items():
                node.uplink.command().sync_to(str(local), remote_path).must_run()
            self.after_sync(cluster, node)
            node.uplink.command().args(*self.run_args(cluster, node)).must_run()
        finally:
            for local in local_files:
                try:
                    local.unlink()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    node.log.warning(f"Unable to delete {local}: {e}")


class JavaDaemonStartAction(DaemonStartAction):
    CLASS_NAME = ''

    def kill(self, cluster, node) -> None:
        node.uplink.command().args(*kill_java_process_args(self.CLASS_NAME, force=True)).run()


class JavaDaemonStatusAction(Action):
    """Report whether a java daemon is running through the return code."""
    TYPE = ''
    CLASS_NAME = ''

    def __init__(self, scope: str):
        super().__init__(ActionId(self.TYPE, scope))

    def call(self, cluster, node) -> None:
        if not node.uplink.can_login():
            node.log.info(f"*** {node.node_name}: can't check {self.CLASS_NAME} because "
                          "we cannot log in.")
            cluster.shutdown_manager.change_return_code(ReturnCode.CLUSTER_FAILED)
            return
        cluster.shutdown_manager.change_return_code(
            get_java_process_status(node, self.CLASS_NAME))


class JavaDaemonStopAction(Action):
    """SIGTERM a java daemon, then SIGKILL it if it outlives STOP_WAIT_MS."""
    TYPE = ''
    CLASS_NAME = ''

    def __init__(self, scope: str, initial_delay_ms: int = 0,
                 targets: Iterable[TargetId] = ()):
        super().__init__(ActionId(self.TYPE, scope), targets=targets,
                         initial_delay_ms=initial_delay_ms)

    def call(self, cluster, node) -> None:
        if not node.uplink.can_login():
            node.log.info(f"*** Skipping {self.TYPE}, because the node is not accessible.")
            return
        node.uplink.command().args(*kill_java_process_args(self.CLASS_NAME)).run()
        try:
            wait_for(STOP_POLL_MS, STOP_WAIT_MS,
                     lambda: not java_process_running(node, self.CLASS_NAME))
        except TimeoutError:
            node.log.info(f"*** {self.CLASS_NAME} did not exit; sending SIGKILL.")
            node.uplink.command().args(*kill_java_process_args(self.CLASS_NAME, force=True)).run()


def kill_process(node, pattern: str, signal_type: str = 'SIGTERM') -> int:
    return node.uplink.command().args(*kill_process_args(pattern, signal_type)).run()
