"""Cluster file loading and the castle working environment.

Cluster files are JSON documents which may carry '#' comments, or YAML
documents when the file name ends in .yaml/.yml. String values may refer
to environment variables as %{CASTLE_NAME}; these are substituted at load
time. Other %{...} references are left alone so that later stages (task
specs) can fill them in.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Callable, Optional

import yaml

CLUSTER_FILE_NAME = 'cluster.conf'
CASTLE_PREFIX = 'CASTLE_'

_REFERENCE_RE = re.compile(r'%\{([^}]*)\}')


class ConfigError(Exception):
    """Configuration error."""


def strip_json_comments(line: str) -> str:
    """Remove a trailing '#' comment from one line of JSON.

    A '#' inside a double-quoted string is kept.
    """
    in_string = False
    escaped = False
    out = []
    for c in line:
        if c == '"':
            if not escaped:
                in_string = not in_string
            escaped = False
        elif c == '#':
            if not in_string:
                break
            escaped = False
        elif c == '\\':
            escaped = not escaped
            out.append(c)
            continue
        else:
            escaped = False
        out.append(c)
    return ''.join(out)


def load_json_config(path: Path) -> Any:
    """Parse a JSON file that may contain '#' comment lines."""
    cleaned = '\n'.join(strip_json_comments(line)
                        for line in path.read_text(encoding='utf-8').splitlines())
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Unable to parse {path}: {e}") from e


def load_config_file(path) -> Any:
    """Load a cluster file.

    Raises:
        ConfigError: If the path is empty, missing or unparseable
    """
    if path is None or str(path) == '':
        raise ConfigError("Invalid empty configuration file path.")
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Unable to locate configuration file {path}")

    if path.suffix in ('.yaml', '.yml'):
        try:
            with open(path, encoding='utf-8') as f:
                return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Unable to parse {path}: {e}") from e
    return load_json_config(path)


def castle_substituter(key: str) -> Optional[str]:
    """Resolve %{CASTLE_*} references from the process environment."""
    if not key.startswith(CASTLE_PREFIX):
        return None
    value = os.environ.get(key)
    if value is None:
        raise ConfigError(
            f"You must set the environment variable {key} to use this configuration file.")
    return value


def map_substituter(values: dict) -> Callable[[str], Optional[str]]:
    """Build a substituter which resolves references from a fixed map."""
    return values.get


def transform(data: Any, substituter: Callable[[str], Optional[str]]) -> Any:
    """Return a copy of data with %{...} references substituted in every string.

    References the substituter does not know (returns None for) are kept.
    """
    if isinstance(data, dict):
        return {k: transform(v, substituter) for k, v in data.items()}
    if isinstance(data, list):
        return [transform(v, substituter) for v in data]
    if isinstance(data, str):
        def _replace(match):
            value = substituter(match.group(1))
            return match.group(0) if value is None else value
        return _REFERENCE_RE.sub(_replace, data)
    return data


class CastleEnvironment:
    """Paths for one castle-tool invocation.

    Attributes:
        cluster_path: Absolute path of the input cluster file
        working_directory: Absolute path for logs, keys and the output cluster file
    """

    def __init__(self, cluster_path, working_directory):
        self.cluster_path = Path(cluster_path or '').absolute()
        self.working_directory = Path(working_directory or '').absolute()

    @property
    def cluster_output_path(self) -> Path:
        return self.working_directory / CLUSTER_FILE_NAME

    @property
    def logs_directory(self) -> Path:
        return self.working_directory / 'logs'

    def create_node_log(self, node_name: str) -> logging.Logger:
        """Create the per-node log, written to logs/<node>.log.

        The logger does not propagate to the console; callers that want a
        message in both places use common.log_to_all().
        """
        node_log = logging.getLogger(f'castle.{node_name}')
        node_log.setLevel(logging.DEBUG)
        node_log.propagate = False
        self.logs_directory.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(self.logs_directory / f'{node_name}.log', encoding='utf-8')
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        node_log.addHandler(handler)
        return node_log

    def __repr__(self) -> str:
        return f"CastleEnvironment({self.cluster_path}, {self.working_directory})"
