"""ssh/rsync commands and ssh port-forwarding tunnels."""

import logging
import random
import subprocess
from typing import Optional

from command.command import Command, Operation
from command.shell import join_args

logger = logging.getLogger(__name__)

SSH_TUNNEL_ACTIVE = 'The ssh tunnel is now active.'


class SshCommand(Command):
    """A command run on a node over ssh, or an rsync to/from it."""

    def __init__(self, node, dns: str, ssh_user: str = '', ssh_port: int = 0,
                 ssh_identity_file: str = ''):
        super().__init__(node)
        self.dns = dns or ''
        self.ssh_user = ssh_user or ''
        self.ssh_port = ssh_port or 0
        self.ssh_identity_file = ssh_identity_file or ''

    def ssh_preamble(self) -> list[str]:
        """ssh [-i identity] [-l user] [-p port] -o StrictHostKeyChecking=no"""
        args = ['ssh']
        if self.ssh_identity_file:
            args += ['-i', self.ssh_identity_file]
        if self.ssh_user:
            args += ['-l', self.ssh_user]
        if self.ssh_port:
            args += ['-p', str(self.ssh_port)]
        # Nodes are recreated with fresh host keys.
        args += ['-o', 'StrictHostKeyChecking=no']
        return args

    def command_line(self) -> list[str]:
        """Build the local command line.

        Raises:
            ValueError: If the node has no DNS address or the builder is incomplete
        """
        if not self.dns:
            raise ValueError(f"No DNS address configured for {self.node.node_name}")
        if self.operation == Operation.SSH:
            if self.arguments is None:
                raise ValueError("You must supply ssh arguments.")
            return self.ssh_preamble() + [self.dns] + self.arguments
        if self.local is None or self.remote is None:
            raise ValueError("The local and remote paths must be set.")
        rsync = ['rsync', '-aqi', '--delete', '-e', ' '.join(self.ssh_preamble())]
        if self.operation == Operation.RSYNC_TO:
            return rsync + [self.local, f"{self.dns}:{self.remote}"]
        return rsync + [f"{self.dns}:{self.remote}", self.local]

    def tunnel(self, remote_port: int) -> 'Tunnel':
        return Tunnel(self, remote_port)


class Tunnel:
    """ssh -L forwarding from a random local port to remote_port on the node.

    Usable as a context manager; port is the local end.
    """
    MAX_TRIES = 10
    MIN_PORT = 32768
    MAX_PORT = 61000

    def __init__(self, command: SshCommand, remote_port: int):
        self._command = command
        self.remote_port = remote_port
        self.port = -1
        self._process: Optional[subprocess.Popen] = None
        tries = 0
        while self._process is None:
            local_port = random.randrange(self.MIN_PORT, self.MAX_PORT)
            try:
                self._process = self._try_create(local_port)
                self.port = local_port
            except (OSError, RuntimeError) as e:
                self._log.info(f"Unable to create ssh tunnel on local port {local_port}: {e}")
                tries += 1
                if tries >= self.MAX_TRIES:
                    raise

    @property
    def _log(self) -> logging.Logger:
        return getattr(self._command.node, 'log', None) or logger

    def _try_create(self, local_port: int) -> subprocess.Popen:
        if not self._command.dns:
            raise RuntimeError(f"No DNS address configured for {self._command.node.node_name}")
        args = self._command.ssh_preamble() + [
            '-L', f"{local_port}:localhost:{self.remote_port}",
            self._command.dns,
            '-o', 'ExitOnForwardFailure=yes',
            '-n', '--', 'echo', f'"{SSH_TUNNEL_ACTIVE}"', '&&', 'sleep', '1000000',
        ]
        name = self._command.node.node_name
        self._log.info(f"** {name}: CREATING SSH TUNNEL: {join_args(args)}")
        process = subprocess.Popen(args, stdout=subprocess.PIPE, stdin=subprocess.DEVNULL,
                                   text=True)
        line = process.stdout.readline().rstrip('\n')
        if line != SSH_TUNNEL_ACTIVE:
            process.terminate()
            process.wait()
            raise RuntimeError(f"Read unexpected line from ssh tunnel process: {line}")
        self._log.info(f"** {name}: TUNNEL ESTABLISHED: {join_args(args)}")
        return process

    def close(self) -> None:
        if self._process is not None:
            self._process.terminate()
            self._process.wait()
            if self._process.stdout is not None:
                self._process.stdout.close()
            self._process = None

    def __enter__(self) -> 'Tunnel':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
