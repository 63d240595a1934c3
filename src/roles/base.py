"""Role base class and JSON (de)serialization shared by every role.

Roles are dataclasses. Their JSON form uses camelCase keys derived from the
field names, plus a 'type' key naming the role kind. Empty values (None,
'', [], {}) are omitted when serializing so that deltas stay small.

Calling code asks a role what it can do through has_capability() rather
than checking its class:
- ACTIONS: create_actions(node_name) returns the node's actions
- UPLINK: create_uplink(cluster, node) returns the node's remote channel
"""

import copy
from dataclasses import fields
from typing import Any

from config import ConfigError

ACTIONS = 'actions'
UPLINK = 'uplink'


def camel_case(name: str) -> str:
    """initial_delay_ms -> initialDelayMs"""
    head, *rest = name.split('_')
    return head + ''.join(part[:1].upper() + part[1:] for part in rest)


class Role:
    """Capability bundle attached to a node. Subclasses are dataclasses."""
    TYPE = ''
    CAPABILITIES: frozenset = frozenset({ACTIONS})

    def has_capability(self, capability: str) -> bool:
        return capability in self.CAPABILITIES

    def create_actions(self, node_name: str) -> list:
        return []

    def create_uplink(self, cluster, node):
        raise ConfigError(f"Role {self.TYPE} cannot create an uplink")

    def to_dict(self) -> dict:
        d: dict[str, Any] = {'type': self.TYPE}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None or value == '' or value == [] or value == {}:
                continue
            d[camel_case(f.name)] = copy.deepcopy(value)
        return d

    @classmethod
    def from_dict(cls, data: dict) -> 'Role':
        """Build a role from its JSON form.

        Raises:
            ConfigError: If data contains a field the role does not have
        """
        known = {camel_case(f.name): f.name for f in fields(cls) if f.init}
        kwargs = {}
        for key, value in (data or {}).items():
            if key == 'type' or value is None:
                continue
            if key not in known:
                raise ConfigError(f"Unknown field '{key}' for role type {cls.TYPE}")
            kwargs[known[key]] = copy.deepcopy(value)
        return cls(**kwargs)
