"""Tests for config.py - cluster file loading and the castle environment."""

import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from config import (
    CastleEnvironment,
    ConfigError,
    castle_substituter,
    load_config_file,
    map_substituter,
    strip_json_comments,
    transform,
)


class TestStripJsonComments:
    """Test '#' comment removal."""

    def test_trailing_comment(self):
        assert strip_json_comments('"a": 1, # the a').rstrip() == '"a": 1,'

    def test_hash_inside_string_kept(self):
        assert strip_json_comments('"a": "x#y"') == '"a": "x#y"'

    def test_escaped_quote(self):
        assert strip_json_comments(r'"a": "q\"#" # c').rstrip() == r'"a": "q\"#"'


class TestLoadConfigFile:
    """Test JSON and YAML loading."""

    def test_json_with_comments(self, tmp_path):
        path = tmp_path / 'c.json'
        path.write_text('# header\n{"a": 1}  # trailing\n')
        assert load_config_file(path) == {'a': 1}

    def test_yaml(self, tmp_path):
        path = tmp_path / 'c.yaml'
        path.write_text('conf:\n  globalTimeout: 10\n')
        assert load_config_file(path) == {'conf': {'globalTimeout': 10}}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match='Unable to locate'):
            load_config_file(tmp_path / 'missing.json')

    def test_empty_path(self):
        with pytest.raises(ConfigError, match='empty'):
            load_config_file('')

    def test_bad_json(self, tmp_path):
        path = tmp_path / 'c.json'
        path.write_text('{"a": }')
        with pytest.raises(ConfigError, match='Unable to parse'):
            load_config_file(path)


class TestSubstitution:
    """Test %{...} substitution."""

    def test_castle_variables(self, monkeypatch):
        monkeypatch.setenv('CASTLE_IMAGE', 'ducker-ak')
        data = {'a': ['%{CASTLE_IMAGE}:latest', 3], 'b': '%{other}'}
        assert transform(data, castle_substituter) == {'a': ['ducker-ak:latest', 3], 'b': '%{other}'}

    def test_unset_castle_variable(self, monkeypatch):
        monkeypatch.delenv('CASTLE_NOPE', raising=False)
        with pytest.raises(ConfigError, match='CASTLE_NOPE'):
            transform('%{CASTLE_NOPE}', castle_substituter)

    def test_map_substituter(self):
        sub = map_substituter({'bootstrapServers': 'a:9092'})
        assert transform({'s': '%{bootstrapServers}'}, sub) == {'s': 'a:9092'}


class TestCastleEnvironment:
    """Test working-directory paths and node logs."""

    def test_paths(self, tmp_path):
        env = CastleEnvironment('c.json', tmp_path)
        assert env.cluster_path.is_absolute()
        assert env.cluster_output_path == tmp_path / 'cluster.conf'
        assert env.logs_directory == tmp_path / 'logs'

    def test_node_log(self, tmp_path):
        env = CastleEnvironment('c.json', tmp_path)
        log = env.create_node_log('envnode0')
        try:
            assert not log.propagate
            log.info('hello node')
            for handler in log.handlers:
                handler.flush()
            assert 'hello node' in (tmp_path / 'logs' / 'envnode0.log').read_text()
        finally:
            for handler in list(log.handlers):
                log.removeHandler(handler)
                handler.close()
            assert isinstance(log, logging.Logger)
