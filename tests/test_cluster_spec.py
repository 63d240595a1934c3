"""Tests for cluster/spec.py - cluster file parsing and node expansion."""

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from cluster.spec import (
    CastleClusterConf,
    CastleClusterSpec,
    CastleNodeSpec,
    expand_node_names,
)
from config import ConfigError
from roles.broker import BrokerRole
from roles.docker_node import DockerNodeRole


class TestExpandNodeNames:
    """Test node[lo-hi] expansion."""

    def test_plain_name(self):
        assert expand_node_names('node3') == ['node3']

    def test_range(self):
        assert expand_node_names('node[0-2]') == ['node0', 'node1', 'node2']

    def test_zero_padded(self):
        assert expand_node_names('n[08-10]x') == ['n08x', 'n09x', 'n10x']

    def test_inverted_range(self):
        with pytest.raises(ConfigError, match='Invalid node range'):
            expand_node_names('node[3-1]')


class TestCastleClusterConf:
    """Test cluster-wide settings."""

    def test_defaults(self):
        conf = CastleClusterConf.from_dict(None)
        assert conf.global_timeout == 3600
        assert conf.to_dict() == {'globalTimeout': 3600}

    def test_non_positive_timeout_means_default(self):
        assert CastleClusterConf.from_dict({'globalTimeout': -5}).global_timeout == 3600

    def test_round_trip(self):
        data = {'kafkaPath': '/k', 'castlePath': '/c', 'globalTimeout': 10}
        assert CastleClusterConf.from_dict(data).to_dict() == data

    def test_validate_paths(self, tmp_path):
        conf = CastleClusterConf(kafka_path=str(tmp_path), castle_path=str(tmp_path / 'missing'))
        conf.validate_kafka_path()
        with pytest.raises(ConfigError, match='castlePath'):
            conf.validate_castle_path()


class TestCastleClusterSpec:
    """Test the whole-cluster spec."""

    def test_nodes_expanded_and_sorted(self, cluster_json):
        spec = CastleClusterSpec.from_dict(cluster_json)
        assert list(spec.nodes) == ['node0', 'node1', 'node2', 'node3']
        assert spec.nodes['node1'].role_names == ['broker', 'trogdorAgent', 'docker']

    def test_role_kind_from_type_or_name(self, cluster_json):
        spec = CastleClusterSpec.from_dict(cluster_json)
        assert isinstance(spec.roles['docker'], DockerNodeRole)
        assert spec.roles['zooKeeper'].TYPE == 'zooKeeper'

    def test_duplicate_node(self, cluster_json):
        cluster_json['nodes']['node2'] = {'roleNames': ['docker']}
        with pytest.raises(ConfigError, match='Node node2 was specified more than once'):
            CastleClusterSpec.from_dict(cluster_json)

    def test_unknown_role_name(self, cluster_json):
        cluster_json['nodes']['node9'] = {'roleNames': ['kafka']}
        with pytest.raises(ConfigError, match='unknown role kafka'):
            CastleClusterSpec.from_dict(cluster_json)

    def test_unknown_role_type(self, cluster_json):
        cluster_json['roles']['zooKeeper'] = {'type': 'etcd'}
        with pytest.raises(ConfigError, match='unknown type etcd'):
            CastleClusterSpec.from_dict(cluster_json)

    def test_nodes_to_roles_applies_patches(self, cluster_json):
        cluster_json['nodes']['node3']['rolePatches'] = {
            'docker': {'sshPort': 2222, 'containerName': 'ducker03'}}
        roles = CastleClusterSpec.from_dict(cluster_json).nodes_to_roles()
        assert list(roles['node3']) == ['zooKeeper', 'trogdorCoordinator', 'docker']
        assert roles['node3']['docker'].ssh_port == 2222
        assert roles['node3']['docker'].image_id == 'ducker-ak'
        assert roles['node0']['docker'].ssh_port == 0

    def test_nodes_to_roles_builds_fresh_objects(self, cluster_json):
        spec = CastleClusterSpec.from_dict(cluster_json)
        first = spec.nodes_to_roles()
        first['node0']['broker'].conf['x'] = 'y'
        assert 'x' not in spec.nodes_to_roles()['node0']['broker'].conf
        assert 'x' not in spec.roles['broker'].conf

    def test_round_trip(self, cluster_json):
        spec = CastleClusterSpec.from_dict(cluster_json)
        again = CastleClusterSpec.from_dict(json.loads(json.dumps(spec.to_dict())))
        assert again == spec

    def test_load_substitutes_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv('CASTLE_KAFKA', '/opt/kafka')
        path = tmp_path / 'cluster.json'
        path.write_text(
            '# a castle cluster\n'
            '{"conf": {"kafkaPath": "%{CASTLE_KAFKA}"},\n'
            ' "nodes": {"node0": {"roleNames": ["broker", "dockerNode"]}},\n'
            ' "roles": {"broker": {"conf": {"x": "%{bootstrapServers}"}}, "dockerNode": {}}}\n')
        spec = CastleClusterSpec.load(path)
        assert spec.conf.kafka_path == '/opt/kafka'
        assert spec.roles['broker'].conf == {'x': '%{bootstrapServers}'}

    def test_load_missing_environment(self, tmp_path, monkeypatch):
        monkeypatch.delenv('CASTLE_MISSING', raising=False)
        path = tmp_path / 'cluster.json'
        path.write_text('{"conf": {"kafkaPath": "%{CASTLE_MISSING}"}}')
        with pytest.raises(ConfigError, match='CASTLE_MISSING'):
            CastleClusterSpec.load(path)


class TestCastleNodeSpec:
    """Test node spec serialization."""

    def test_patches_omitted_when_empty(self):
        assert CastleNodeSpec(['broker']).to_dict() == {'roleNames': ['broker']}

    def test_from_dict(self):
        node = CastleNodeSpec.from_dict({'roleNames': ['b'], 'rolePatches': {'b': {'x': 1}}})
        assert node.role_patches == {'b': {'x': 1}}


class TestRoles:
    """Test role serialization and capabilities."""

    def test_to_dict_omits_empty_values(self):
        assert BrokerRole(initial_delay_ms=5).to_dict() == {'type': 'broker', 'initialDelayMs': 5}

    def test_unknown_field(self):
        with pytest.raises(ConfigError, match="Unknown field 'bogus'"):
            BrokerRole.from_dict({'bogus': 1})

    def test_negative_ssh_port_clamped(self):
        assert DockerNodeRole.from_dict({'sshPort': -1}).ssh_port == 0

    def test_capabilities(self):
        assert DockerNodeRole().has_capability('uplink')
        assert not BrokerRole().has_capability('uplink')
        assert BrokerRole().has_capability('actions')

    def test_non_uplink_role_cannot_create_uplink(self):
        with pytest.raises(ConfigError, match='cannot create an uplink'):
            BrokerRole().create_uplink(None, None)

    def test_broker_actions(self):
        ids = sorted(str(a.id) for a in BrokerRole().create_actions('node0'))
        assert ids == ['brokerStart:node0', 'brokerStatus:node0', 'brokerStop:node0']
