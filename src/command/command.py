"""Command builder shared by every uplink."""

from enum import Enum
from typing import Optional

from command.shell import CommandResultError, NodeShellRunner, join_args

__all__ = ['Command', 'CommandResultError', 'Operation', 'join_args']


class Operation(Enum):
    SSH = 'ssh'
    RSYNC_TO = 'rsync_to'
    RSYNC_FROM = 'rsync_from'


class Command:
    """Builder for one command against a node.

    args()/arg_list(), sync_to() and sync_from() are mutually exclusive;
    the last one called wins. Subclasses turn the builder state into a local
    command line through command_line().
    """

    def __init__(self, node):
        self.node = node
        self.operation = Operation.SSH
        self.arguments: Optional[list[str]] = None
        self.local: Optional[str] = None
        self.remote: Optional[str] = None
        self.output = None
        self.capture_stderr = True
        self.stdin: Optional[bytes] = None

    def args(self, *args: str) -> 'Command':
        return self.arg_list(args)

    def arg_list(self, args) -> 'Command':
        self.operation = Operation.SSH
        self.arguments = [str(a) for a in args]
        self.local = None
        self.remote = None
        return self

    def sync_to(self, local: str, remote: str) -> 'Command':
        """Copy local to remote on the node."""
        self.operation = Operation.RSYNC_TO
        self.arguments = None
        self.local = str(local)
        self.remote = str(remote)
        return self

    def sync_from(self, remote: str, local: str) -> 'Command':
        """Copy remote on the node to local."""
        self.operation = Operation.RSYNC_FROM
        self.arguments = None
        self.local = str(local)
        self.remote = str(remote)
        return self

    def capture_output(self, output) -> 'Command':
        """Write the command's output to output (anything with a write() method)."""
        self.output = output
        return self

    def set_capture_stderr(self, capture_stderr: bool) -> 'Command':
        self.capture_stderr = capture_stderr
        return self

    def set_stdin(self, stdin: Optional[bytes]) -> 'Command':
        self.stdin = bytes(stdin) if stdin is not None else None
        return self

    def command_line(self) -> list[str]:
        raise NotImplementedError

    def _runner(self) -> NodeShellRunner:
        return (NodeShellRunner(self.node, self.command_line())
                .capture_output(self.output)
                .set_capture_stderr(self.capture_stderr)
                .set_stdin(self.stdin))

    def run(self) -> int:
        """Run the command and return its exit status."""
        return self._runner().run()

    def must_run(self) -> None:
        """Run the command.

        Raises:
            CommandResultError: If it exits non-zero
        """
        self._runner().must_run()

    def exec(self) -> int:
        """Run the command attached to this process' stdin, stdout and stderr."""
        return self._runner().exec()
