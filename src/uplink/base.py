"""Uplink interface.

An uplink is how castle reaches one node: it runs commands there, opens
port tunnels to it, and starts or destroys the machine behind it. Uplinks
hold a weak reference to their cluster so that the cluster, which owns the
nodes, is never kept alive by them.
"""

import weakref
from concurrent.futures import Future

from command.command import Command


class Uplink:
    """Base class for node uplinks."""

    def __init__(self, cluster, node):
        self._cluster_ref = weakref.ref(cluster)
        self.node = node

    @property
    def cluster(self):
        """The owning cluster.

        Raises:
            RuntimeError: If the cluster has been garbage collected
        """
        cluster = self._cluster_ref()
        if cluster is None:
            raise RuntimeError(f"The cluster of {self.node.node_name} is gone.")
        return cluster

    def command(self) -> Command:
        """Create a new command that will run on the node."""
        raise NotImplementedError

    def internal_dns(self) -> str:
        """Address other nodes use to reach this one."""
        raise NotImplementedError

    def started(self) -> bool:
        raise NotImplementedError

    def can_login(self) -> bool:
        raise NotImplementedError

    def open_port(self, port: int):
        """Tunnel to port on the node. The result is a context manager with .port."""
        raise NotImplementedError

    def startup(self) -> None:
        """Create the machine behind the node and record it in the role."""
        raise NotImplementedError

    def check(self) -> None:
        raise NotImplementedError

    def shutdown(self) -> Future:
        """Destroy the machine behind the node."""
        raise NotImplementedError

    def shutdown_all(self) -> None:
        """Destroy every machine reachable through this uplink's backend."""
        raise NotImplementedError

    def close(self) -> None:
        return None


def completed_future(result=None) -> Future:
    future: Future = Future()
    future.set_result(result)
    return future
