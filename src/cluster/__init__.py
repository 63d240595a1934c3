"""Cluster model: the declarative spec and the live cluster built from it."""

from cluster.cluster import CastleCluster, CastleNode
from cluster.spec import CastleClusterConf, CastleClusterSpec, CastleNodeSpec, expand_node_names

__all__ = [
    'CastleCluster',
    'CastleClusterConf',
    'CastleClusterSpec',
    'CastleNode',
    'CastleNodeSpec',
    'expand_node_names',
]
