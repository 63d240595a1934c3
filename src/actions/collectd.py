"""collectd metrics daemon actions."""

import time

from actions.daemon import DaemonStartAction, kill_process, run_daemon_args
from actions.paths import (
    COLLECTD,
    COLLECTD_LOGS,
    COLLECTD_PID_FILE,
    COLLECTD_PROPERTIES,
    COLLECTD_ROOT,
)
from common import get_process_status
from engine.action import Action, ActionId
from engine.lifecycle import ReturnCode

COLLECTD_STOP_DELAY_MS = 2000
COLLECTD_INTERVAL_SECONDS = 10


def collectd_conf(node) -> str:
    """Minimal config: system plugins, values written as CSV under the logs root."""
    return '\n'.join([
        f'Hostname "{node.node_name}"',
        f'Interval {COLLECTD_INTERVAL_SECONDS}',
        'LoadPlugin cpu',
        'LoadPlugin disk',
        'LoadPlugin interface',
        'LoadPlugin load',
        'LoadPlugin memory',
        'LoadPlugin csv',
        '<Plugin csv>',
        f'  DataDir "{COLLECTD_LOGS}"',
        '  StoreRates true',
        '</Plugin>',
        '',
    ])


class CollectdStartAction(DaemonStartAction):
    TYPE = 'collectdStart'

    def __init__(self, scope: str, role):
        super().__init__(scope, role.initial_delay_ms)

    def config_files(self, cluster, node) -> dict[str, str]:
        return {COLLECTD_PROPERTIES: collectd_conf(node)}

    def remote_dirs(self) -> list[str]:
        return [COLLECTD_ROOT, COLLECTD_LOGS]

    def kill(self, cluster, node) -> None:
        kill_process(node, COLLECTD, 'SIGKILL')

    def run_args(self, cluster, node) -> list[str]:
        return run_daemon_args(
            [COLLECTD, '-f', '-C', COLLECTD_PROPERTIES, '-P', COLLECTD_PID_FILE], COLLECTD_LOGS)


class CollectdStatusAction(Action):
    TYPE = 'collectdStatus'

    def __init__(self, scope: str, role):
        super().__init__(ActionId(self.TYPE, scope))

    def call(self, cluster, node) -> None:
        if not node.uplink.can_login():
            node.log.info(f"*** {node.node_name}: can't check {COLLECTD} because we cannot log in.")
            cluster.shutdown_manager.change_return_code(ReturnCode.CLUSTER_FAILED)
            return
        cluster.shutdown_manager.change_return_code(get_process_status(node, COLLECTD))


class CollectdStopAction(Action):
    TYPE = 'collectdStop'

    def __init__(self, scope: str, role):
        super().__init__(ActionId(self.TYPE, scope), initial_delay_ms=role.initial_delay_ms)

    def call(self, cluster, node) -> None:
        if not node.uplink.can_login():
            node.log.info(f"*** Skipping {self.TYPE}, because the node is not accessible.")
            return
        # SIGUSR1 flushes collectd's write cache before it exits.
        kill_process(node, COLLECTD, 'SIGUSR1')
        time.sleep(COLLECTD_STOP_DELAY_MS / 1000)
        kill_process(node, COLLECTD)
