"""Shared pytest fixtures for castle-tool tests.

Nothing here touches docker, ssh or AWS: nodes get a FakeUplink whose
commands are recorded and answered by a responder function.
"""

import io
import logging
import sys
from concurrent.futures import Future
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from cluster.spec import CastleClusterConf
from command.shell import CommandResultError
from config import CastleEnvironment
from engine.lifecycle import ShutdownManager


class FakeCommand:
    """Records what an action asked to run on a node."""

    def __init__(self, uplink):
        self.uplink = uplink
        self.arguments = None
        self.sync = None
        self.output = None

    def args(self, *args):
        return self.arg_list(args)

    def arg_list(self, args):
        self.arguments = [str(a) for a in args]
        return self

    def sync_to(self, local, remote):
        self.sync = ('to', str(local), str(remote))
        return self

    def sync_from(self, remote, local):
        self.sync = ('from', str(remote), str(local))
        return self

    def capture_output(self, output):
        self.output = output
        return self

    def set_capture_stderr(self, capture_stderr):
        return self

    def set_stdin(self, stdin):
        return self

    @property
    def line(self) -> str:
        if self.sync is not None:
            return ' '.join(self.sync)
        return ' '.join(self.arguments or [])

    def run(self) -> int:
        self.uplink.commands.append(self)
        rc, out = self.uplink.responder(self)
        if self.output is not None:
            self.output.write(out)
        return rc

    def must_run(self) -> None:
        rc = self.run()
        if rc != 0:
            raise CommandResultError(self.line.split(), rc)

    def exec(self) -> int:
        return self.run()


class FakeTunnel:
    def __init__(self, port):
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return None


class FakeUplink:
    """In-memory uplink. responder(command) returns (exit status, output)."""

    def __init__(self, node, dns=None, started=True, can_login=True):
        self.node = node
        self.dns = dns or f'{node.node_name}.internal'
        self.is_started = started
        self.is_reachable = can_login
        self.commands: list[FakeCommand] = []
        self.responder = lambda command: (0, '')
        self.cloud = MagicMock()
        self.check = MagicMock()
        self.shutdown_all = MagicMock()
        self.startup = MagicMock()
        self.shutdown_calls = 0

    def command(self):
        return FakeCommand(self)

    def internal_dns(self):
        return self.dns

    def started(self):
        return self.is_started

    def can_login(self):
        return self.is_reachable

    def open_port(self, port):
        return FakeTunnel(40000 + port)

    def shutdown(self):
        self.shutdown_calls += 1
        future = Future()
        future.set_result(None)
        return future

    def close(self):
        return None

    @property
    def lines(self) -> list[str]:
        return [c.line for c in self.commands]


class FakeNode:
    def __init__(self, node_index, node_name, roles=None):
        self.node_index = node_index
        self.node_name = node_name
        self.log = logging.getLogger(f'test.castle.{node_name}')
        self.roles = dict(roles or {})
        self.role_names = list(self.roles)
        self.uplink = FakeUplink(self)


class FakeCluster:
    """Just enough of CastleCluster for actions and the scheduler."""

    def __init__(self, tmp_path, node_roles: dict):
        self.env = CastleEnvironment(tmp_path / 'cluster.json', tmp_path)
        self.conf = CastleClusterConf()
        self.shutdown_manager = ShutdownManager()
        self.nodes = {}
        for index, name in enumerate(sorted(node_roles)):
            self.nodes[name] = FakeNode(index, name, node_roles[name])
        self.spec = MagicMock()
        self.spec.to_dict.return_value = {'nodes': sorted(self.nodes)}

    def nodes_with_role(self, role_type):
        return {n.node_index: n.node_name for n in self.nodes.values() if role_type in n.roles}

    def get_bootstrap_servers(self):
        return ','.join(f"{self.nodes[n].uplink.internal_dns()}:9092"
                        for n in self.nodes_with_role('broker').values())

    def get_zookeeper_connect_string(self):
        return ','.join(f"{self.nodes[n].uplink.internal_dns()}:2181"
                        for n in self.nodes_with_role('zooKeeper').values())

    def to_spec(self):
        return self.spec


@pytest.fixture
def fake_cluster(tmp_path):
    """Factory: fake_cluster({'node0': {'broker': role}, ...})."""
    def _make(node_roles):
        return FakeCluster(tmp_path, node_roles)
    return _make


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def cluster_json():
    """A docker cluster: three brokers with trogdor agents, one zookeeper/coordinator."""
    return {
        'conf': {'kafkaPath': '/src/kafka', 'castlePath': '/src/castle', 'globalTimeout': 60},
        'nodes': {
            'node[0-2]': {'roleNames': ['broker', 'trogdorAgent', 'docker']},
            'node3': {'roleNames': ['zooKeeper', 'trogdorCoordinator', 'docker']},
        },
        'roles': {
            'broker': {'type': 'broker', 'conf': {'num.partitions': '3'}},
            'trogdorAgent': {},
            'zooKeeper': {},
            'trogdorCoordinator': {},
            'docker': {'type': 'dockerNode', 'imageId': 'ducker-ak', 'dockerUser': 'ducker'},
        },
    }
