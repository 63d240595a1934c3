"""Collect and wipe node-local state."""

from pathlib import Path

from actions.paths import LOGS_ROOT
from command.shell import CommandResultError
from engine.action import Action, ActionId, TargetId


class SaveLogsAction(Action):
    """Copy LOGS_ROOT from the node into <working_dir>/logs/<node>/."""
    TYPE = 'saveLogs'

    def __init__(self, scope: str):
        super().__init__(ActionId(self.TYPE, scope), targets=[TargetId('daemonStop', scope)])

    def call(self, cluster, node) -> None:
        if not node.uplink.started():
            node.log.info(f"*** Skipping {self.TYPE}, because the node is not running.")
            return
        local_dir = Path(cluster.env.working_directory, 'logs', node.node_name)
        local_dir.mkdir(parents=True, exist_ok=True)
        # ls exits 1 or 2 when the directory is missing.
        ls_status = node.uplink.command().args('ls', LOGS_ROOT).run()
        if ls_status == 0:
            node.uplink.command().sync_from(f"{LOGS_ROOT}/", f"{local_dir}/").must_run()
        elif ls_status in (1, 2):
            node.log.info(f"*** Skipping {self.TYPE}, because {LOGS_ROOT} was not found.")
        else:
            raise CommandResultError(['ls', LOGS_ROOT], ls_status)


class CleanAction(Action):
    TYPE = 'clean'

    def __init__(self, scope: str):
        super().__init__(ActionId(self.TYPE, scope), targets=[
            TargetId('daemonStop'),
            TargetId('saveLogs'),
            TargetId('stop'),
            TargetId('taskStop'),
        ])

    def call(self, cluster, node) -> None:
        if not node.uplink.can_login():
            node.log.info(f"*** Skipping {self.TYPE}, because we can't log into the node.")
            return
        node.uplink.command().args('sudo', 'rm', '-rf', '--', '/mnt/*').must_run()
