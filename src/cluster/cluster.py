"""The live cluster: nodes, their roles and uplinks, built from a spec."""

import logging
from typing import Iterable

from cloud.cache import CloudCache
from cluster.spec import CastleClusterSpec, CastleNodeSpec
from config import CastleEnvironment, ConfigError
from engine.action import Action
from engine.lifecycle import ShutdownManager
from engine.registry import role_action
from engine.scheduler import ActionScheduler
from json_merger import JSON_NULL, delta
from roles.base import ACTIONS, UPLINK, Role

logger = logging.getLogger(__name__)

BROKER = 'broker'
ZOOKEEPER = 'zooKeeper'
BROKER_PORT = 9092
ZOOKEEPER_PORT = 2181


class CastleNode:
    """One node of the cluster.

    Attributes:
        node_index: Position of the node in name order
        node_name: Resolved node name, e.g. node3
        log: Per-node logger writing to logs/<node_name>.log
        roles: Role kind -> Role
        role_names: Role names from the spec, in node order
        uplink: Remote channel, set once after construction
    """

    def __init__(self, node_index: int, node_name: str, log: logging.Logger,
                 roles: dict[str, Role], role_names: list[str]):
        self.node_index = node_index
        self.node_name = node_name
        self.log = log
        self.roles = roles
        self.role_names = role_names
        self.uplink = None

    def close(self) -> None:
        if self.uplink is not None:
            self.uplink.close()
        for handler in list(self.log.handlers):
            self.log.removeHandler(handler)
            handler.close()

    def __repr__(self) -> str:
        return f"CastleNode({self.node_index}, {self.node_name})"


class CastleCluster:
    """Owns every node of a cluster and the backend clients they share."""

    def __init__(self, env: CastleEnvironment, shutdown_manager: ShutdownManager,
                 spec: CastleClusterSpec):
        """Build the nodes and their uplinks.

        Raises:
            ConfigError: If a node has two roles of one kind, or does not
                have exactly one uplink role
        """
        self.env = env
        self.shutdown_manager = shutdown_manager
        self.conf = spec.conf
        self.cloud_cache = CloudCache()
        self.nodes: dict[str, CastleNode] = {}
        self._role_names_to_spec_roles = spec.roles
        try:
            for index, (node_name, node_roles) in enumerate(sorted(spec.nodes_to_roles().items())):
                roles: dict[str, Role] = {}
                for role_name, role in node_roles.items():
                    if role.TYPE in roles:
                        raise ConfigError(f"Node {node_name} has more than one role of "
                                          f"type {role.TYPE}.")
                    roles[role.TYPE] = role
                self.nodes[node_name] = CastleNode(index, node_name, env.create_node_log(node_name),
                                                   roles, list(node_roles))
            for node in self.nodes.values():
                node.uplink = self._uplink_role(node).create_uplink(self, node)
        except Exception:
            self.close()
            raise

    @staticmethod
    def _uplink_role(node: CastleNode) -> Role:
        uplink_roles = [role for role in node.roles.values() if role.has_capability(UPLINK)]
        if not uplink_roles:
            raise ConfigError(f"Node {node.node_name} has no uplink role, such as "
                              "dockerNode or awsNode.")
        if len(uplink_roles) > 1:
            raise ConfigError(f"Node {node.node_name} has more than one uplink role: "
                              f"{', '.join(role.TYPE for role in uplink_roles)}.")
        return uplink_roles[0]

    def nodes_with_role(self, role_type: str) -> dict[int, str]:
        """Index -> name of every node with a role of the given kind."""
        return {node.node_index: node.node_name for node in self.nodes.values()
                if role_type in node.roles}

    def _connect_string(self, role_type: str, port: int) -> str:
        return ','.join(f"{self.nodes[name].uplink.internal_dns()}:{port}"
                        for name in self.nodes_with_role(role_type).values())

    def get_bootstrap_servers(self) -> str:
        return self._connect_string(BROKER, BROKER_PORT)

    def get_zookeeper_connect_string(self) -> str:
        return self._connect_string(ZOOKEEPER, ZOOKEEPER_PORT)

    def get_node_by_name_or_index(self, arg: str) -> CastleNode:
        """Look up a node by name, or by index if arg is a number.

        Raises:
            ConfigError: If there is no such node
        """
        node = self.nodes.get(arg)
        if node is not None:
            return node
        if arg.isdigit():
            index = int(arg)
            for candidate in self.nodes.values():
                if candidate.node_index == index:
                    return candidate
        raise ConfigError(f"Unknown node {arg}")

    def get_nodes_by_names_or_indices(self, args: Iterable[str]) -> list[str]:
        """Resolve node names or indices; 'all' alone means every node.

        Raises:
            ConfigError: If 'all' is combined with other nodes, or a node is unknown
        """
        args = list(args)
        if 'all' in args:
            if len(args) != 1:
                raise ConfigError("Can't specify both 'all' and other node name(s).")
            return list(self.nodes)
        names: list[str] = []
        for arg in args:
            name = self.get_node_by_name_or_index(arg).node_name
            if name not in names:
                names.append(name)
        return names

    def to_spec(self) -> CastleClusterSpec:
        """Snapshot the live role state as a spec.

        Each node keeps its role names in order; changes a role picked up
        since the spec was loaded become that node's role patches.
        """
        nodes: dict[str, CastleNodeSpec] = {}
        for node_name, node in self.nodes.items():
            patches = {}
            for role_name in node.role_names:
                spec_role = self._role_names_to_spec_roles[role_name]
                patch = delta(spec_role.to_dict(), node.roles[spec_role.TYPE].to_dict())
                if patch is JSON_NULL:
                    patch = None
                if patch is not None:
                    patches[role_name] = patch
            nodes[node_name] = CastleNodeSpec(list(node.role_names), patches)
        return CastleClusterSpec(self.conf, nodes, self._role_names_to_spec_roles)

    def all_actions(self) -> list[Action]:
        """Every role's actions, plus one action per role named after its type."""
        actions: list[Action] = []
        for node in self.nodes.values():
            for role in node.roles.values():
                if role.has_capability(ACTIONS):
                    role_actions = role.create_actions(node.node_name)
                    actions.extend(role_actions)
                    actions.append(role_action(role.TYPE, node.node_name, role_actions))
        return actions

    def create_scheduler(self, target_names: Iterable[str],
                         additional_actions: Iterable[Action] = ()) -> ActionScheduler:
        """Build a scheduler over every role action plus additional_actions.

        Raises:
            ConfigError: On duplicate ids, cycles or unknown target names
        """
        return ActionScheduler.Builder(self) \
            .add_target_names(target_names) \
            .add_actions(self.all_actions()) \
            .add_actions(additional_actions) \
            .build()

    def close(self) -> None:
        try:
            self.cloud_cache.close()
        finally:
            for node in self.nodes.values():
                node.close()

    def __enter__(self) -> 'CastleCluster':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"CastleCluster({self.env}, nodes={list(self.nodes)})"

