"""The 'ssh' target: run a command on some nodes, or log in to one.

    castle-tool -w WORK ssh node0 node1 -- ls /mnt
    castle-tool -w WORK ssh 2
"""

import logging
from dataclasses import dataclass, field

from common import log_to_all
from config import ConfigError

logger = logging.getLogger(__name__)

SSH = 'ssh'


@dataclass
class SshArgs:
    node_names: list[str] = field(default_factory=list)
    command: list[str] = field(default_factory=list)


def parse(node_names, args: list[str]) -> SshArgs:
    """Split the words after 'ssh' into nodes and a command.

    Node names (or indices, or 'all') are read until the first word that is
    not one; everything from there on is the command. A leading '--' in
    the command is dropped.

    Raises:
        ConfigError: If there is no 'ssh' word or no node follows it
    """
    if SSH not in args:
        raise ConfigError("Ssh command not found.")
    node_names = list(node_names)
    rest = args[args.index(SSH) + 1:]
    result = SshArgs()
    i = 0
    while i < len(rest):
        word = rest[i]
        if word == 'all' or word in node_names or (word.isdigit() and int(word) < len(node_names)):
            result.node_names.append(word)
            i += 1
        else:
            break
    if not result.node_names:
        raise ConfigError("You must supply at least one node name or 'all' after ssh.")
    command = rest[i:]
    if command and command[0] == '--':
        command = command[1:]
    result.command = command
    return result


def run(cluster, ssh_args: SshArgs) -> int:
    """Run the command on each node in turn.

    With a single node and no command, open an interactive session instead.

    Returns:
        The worst exit status seen
    """
    names = cluster.get_nodes_by_names_or_indices(ssh_args.node_names)
    if len(names) == 1 and not ssh_args.command:
        node = cluster.nodes[names[0]]
        return node.uplink.command().arg_list([]).exec()
    if not ssh_args.command:
        raise ConfigError("You must supply a command to run on more than one node.")
    worst = 0
    for name in names:
        node = cluster.nodes[name]
        rc = node.uplink.command().arg_list(ssh_args.command).exec()
        if rc != 0:
            log_to_all(f"** {name}: command exited with status {rc}", node.log, logger)
        worst = max(worst, rc)
    return worst
