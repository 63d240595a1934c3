"""Declarative cluster description.

A cluster file looks like:

    {
      "conf": {"kafkaPath": "...", "castlePath": "...", "globalTimeout": 3600},
      "nodes": {
        "node[0-2]": {"roleNames": ["broker", "trogdorAgent", "dockerNode"]},
        "node3": {"roleNames": ["zooKeeper", "trogdorCoordinator", "dockerNode"],
                  "rolePatches": {"dockerNode": {"sshPort": 2222}}}
      },
      "roles": {"broker": {"type": "broker", ...}, ...}
    }

Node keys are expanded (node[0-2] -> node0, node1, node2). A role's kind
comes from its 'type' key, or from its name when 'type' is absent.
"""

import copy
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from config import ConfigError, castle_substituter, load_config_file, transform
from json_merger import merge
from roles import role_from_dict
from roles.base import Role

DEFAULT_GLOBAL_TIMEOUT = 3600

_RANGE_RE = re.compile(r'^(.*)\[(\d+)-(\d+)\](.*)$')


def expand_node_names(pattern: str) -> list[str]:
    """Expand 'prefix[lo-hi]suffix' into one name per number in the range.

    A low bound with a leading zero ('node[00-10]') pads every number to
    its width. Names without a range are returned unchanged.

    Raises:
        ConfigError: If the range is inverted
    """
    match = _RANGE_RE.match(pattern)
    if not match:
        return [pattern]
    prefix, lo_text, hi_text, suffix = match.groups()
    lo, hi = int(lo_text), int(hi_text)
    if hi < lo:
        raise ConfigError(f"Invalid node range in '{pattern}': {lo} > {hi}")
    width = len(lo_text) if lo_text.startswith('0') and len(lo_text) > 1 else 0
    return [f"{prefix}{str(i).zfill(width)}{suffix}" for i in range(lo, hi + 1)]


@dataclass
class CastleClusterConf:
    """Cluster-wide settings.

    Attributes:
        kafka_path: Local Kafka checkout, mounted or synced to nodes
        castle_path: Local castle checkout, mounted or synced to nodes
        global_timeout: Seconds to wait for all actions; <= 0 means the default
    """
    kafka_path: str = ''
    castle_path: str = ''
    global_timeout: int = DEFAULT_GLOBAL_TIMEOUT

    def __post_init__(self):
        self.kafka_path = self.kafka_path or ''
        self.castle_path = self.castle_path or ''
        if not self.global_timeout or self.global_timeout <= 0:
            self.global_timeout = DEFAULT_GLOBAL_TIMEOUT

    def validate_kafka_path(self) -> None:
        if not self.kafka_path or not Path(self.kafka_path).is_dir():
            raise ConfigError(f"The current value of kafkaPath ({self.kafka_path}) "
                              "does not point to a valid directory.")

    def validate_castle_path(self) -> None:
        if not self.castle_path or not Path(self.castle_path).is_dir():
            raise ConfigError(f"The current value of castlePath ({self.castle_path}) "
                              "does not point to a valid directory.")

    def to_dict(self) -> dict:
        d: dict[str, Any] = {'globalTimeout': self.global_timeout}
        if self.kafka_path:
            d['kafkaPath'] = self.kafka_path
        if self.castle_path:
            d['castlePath'] = self.castle_path
        return d

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'CastleClusterConf':
        data = data or {}
        return cls(
            kafka_path=data.get('kafkaPath', ''),
            castle_path=data.get('castlePath', ''),
            global_timeout=int(data.get('globalTimeout', 0) or 0),
        )


@dataclass
class CastleNodeSpec:
    """Roles of one node, in order, plus per-role JSON patches."""
    role_names: list[str] = field(default_factory=list)
    role_patches: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {'roleNames': list(self.role_names)}
        if self.role_patches:
            d['rolePatches'] = copy.deepcopy(dict(sorted(self.role_patches.items())))
        return d

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'CastleNodeSpec':
        data = data or {}
        return cls(
            role_names=list(data.get('roleNames') or []),
            role_patches=copy.deepcopy(dict(data.get('rolePatches') or {})),
        )


class CastleClusterSpec:
    """Immutable value describing a cluster: conf, expanded nodes and roles."""

    def __init__(self, conf: Optional[CastleClusterConf],
                 nodes: dict[str, CastleNodeSpec], roles: dict[str, Role]):
        """Expand node name patterns and check role references.

        Raises:
            ConfigError: On duplicate node names or unknown role names
        """
        self._conf = conf or CastleClusterConf()
        expanded: dict[str, CastleNodeSpec] = {}
        for pattern, node_spec in nodes.items():
            for node_name in expand_node_names(pattern):
                if node_name in expanded:
                    raise ConfigError(f"Node {node_name} was specified more than once.")
                expanded[node_name] = node_spec
        for node_name, node_spec in expanded.items():
            for role_name in node_spec.role_names:
                if role_name not in roles:
                    raise ConfigError(f"Node {node_name} uses unknown role {role_name}.")
        self._nodes = dict(sorted(expanded.items()))
        self._roles = dict(roles)

    @property
    def conf(self) -> CastleClusterConf:
        return self._conf

    @property
    def nodes(self) -> dict[str, CastleNodeSpec]:
        return dict(self._nodes)

    @property
    def roles(self) -> dict[str, Role]:
        return dict(self._roles)

    def nodes_to_roles(self) -> dict[str, dict[str, Role]]:
        """Build fresh role objects for every node, with its patches applied.

        Returns:
            node name -> role name -> Role, role names in node order
        """
        results: dict[str, dict[str, Role]] = {}
        for node_name, node_spec in self._nodes.items():
            node_roles: dict[str, Role] = {}
            for role_name in node_spec.role_names:
                role_data = self._roles[role_name].to_dict()
                patch = node_spec.role_patches.get(role_name)
                node_roles[role_name] = role_from_dict(role_name, merge(role_data, patch))
            results[node_name] = node_roles
        return results

    def to_dict(self) -> dict:
        return {
            'conf': self._conf.to_dict(),
            'nodes': {name: spec.to_dict() for name, spec in self._nodes.items()},
            'roles': {name: role.to_dict() for name, role in sorted(self._roles.items())},
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'CastleClusterSpec':
        if not isinstance(data, dict):
            raise ConfigError("A cluster file must contain an object")
        roles = {name: role_from_dict(name, role_data)
                 for name, role_data in (data.get('roles') or {}).items()}
        nodes = {pattern: CastleNodeSpec.from_dict(node_data)
                 for pattern, node_data in (data.get('nodes') or {}).items()}
        return cls(CastleClusterConf.from_dict(data.get('conf')), nodes, roles)

    @classmethod
    def load(cls, path) -> 'CastleClusterSpec':
        """Read a cluster file, substituting %{CASTLE_*} environment references."""
        return cls.from_dict(transform(load_config_file(path), castle_substituter))

    def __eq__(self, other) -> bool:
        if not isinstance(other, CastleClusterSpec):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"CastleClusterSpec(nodes={list(self._nodes)}, roles={list(self._roles)})"
