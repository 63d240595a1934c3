"""Local process execution with per-node logging."""

import logging
from typing import Optional

from common import run_command

logger = logging.getLogger(__name__)


class CommandResultError(Exception):
    """A command exited with a non-zero status.

    Attributes:
        args_list: The command line that was run
        return_code: Its exit status
    """

    def __init__(self, args_list: list[str], return_code: int):
        self.args_list = list(args_list)
        self.return_code = return_code
        super().__init__(f"Command {join_args(args_list)} failed with exit status {return_code}")


def join_args(args) -> str:
    """Render a command line for logs, quoting arguments that contain a space."""
    return ' '.join(f'"{a}"' if ' ' in a else a for a in args)


class NodeShellRunner:
    """Run one local process on behalf of a node.

    The command line and its result are written to the node's log. Output
    goes to the node log and, when capture_output() was given a stream, to
    that stream as well.
    """

    def __init__(self, node, command_line: list[str]):
        self.node = node
        self.command_line = list(command_line)
        self._output = None
        self._capture_stderr = True
        self._stdin: Optional[bytes] = None

    def capture_output(self, output) -> 'NodeShellRunner':
        self._output = output
        return self

    def set_capture_stderr(self, capture_stderr: bool) -> 'NodeShellRunner':
        self._capture_stderr = capture_stderr
        return self

    def set_stdin(self, stdin: Optional[bytes]) -> 'NodeShellRunner':
        self._stdin = stdin
        return self

    @property
    def _log(self) -> logging.Logger:
        return getattr(self.node, 'log', None) or logger

    def run(self) -> int:
        """Run the process and return its exit status."""
        name = self.node.node_name
        joined = join_args(self.command_line)
        self._log.info(f"** {name}: RUNNING {joined}")
        rc, out, err = run_command(self.command_line, stdin=self._stdin)
        if out:
            self._log.info(out.rstrip('\n'))
        if err:
            self._log.info(err.rstrip('\n'))
        if self._output is not None:
            self._output.write(out)
            if self._capture_stderr:
                self._output.write(err)
        self._log.info(f"** {name}: FINISHED {joined} with RESULT {rc}")
        return rc

    def must_run(self) -> None:
        """Run the process.

        Raises:
            CommandResultError: If it exits non-zero
        """
        rc = self.run()
        if rc != 0:
            raise CommandResultError(self.command_line, rc)

    def exec(self) -> int:
        """Run the process with inherited stdio and return its exit status."""
        self._log.info(f"** {self.node.node_name}: SSH {join_args(self.command_line)}")
        rc, _, _ = run_command(self.command_line, capture=False)
        return rc
