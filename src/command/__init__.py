"""Local and remote command execution for castle nodes."""

from command.command import Command
from command.shell import CommandResultError, NodeShellRunner, join_args
from command.ssh import SshCommand, Tunnel

__all__ = [
    'Command',
    'CommandResultError',
    'join_args',
    'NodeShellRunner',
    'SshCommand',
    'Tunnel',
]
