"""Shutdown hooks and the cluster-file writer shared by the node actions."""

import json
import logging
from pathlib import Path

from engine.lifecycle import ReturnCode, ShutdownHook

logger = logging.getLogger(__name__)


def write_cluster_file(cluster) -> Path:
    """Write the cluster's current spec to <working_dir>/cluster.conf."""
    path = Path(cluster.env.cluster_output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cluster.to_spec().to_dict(), indent=2) + '\n', encoding='utf-8')
    return path


class CastleWriteClusterFileHook(ShutdownHook):
    """Record the cluster's final state, whatever the outcome."""

    def __init__(self, cluster):
        super().__init__('CastleWriteClusterFileHook')
        self.cluster = cluster

    def run(self, return_code: ReturnCode) -> None:
        path = write_cluster_file(self.cluster)
        logger.info(f"*** Wrote new cluster file to {path}")


class DestroyNodesOnFailureHook(ShutdownHook):
    """Write the cluster file after a successful run; otherwise tear down nodes.

    Subclasses pick which nodes to tear down. If writing the file fails the
    nodes are torn down too, since nothing else would record them.
    """

    def __init__(self, name: str, cluster):
        super().__init__(name)
        self.cluster = cluster

    def nodes_to_destroy(self) -> list:
        raise NotImplementedError

    def run(self, return_code: ReturnCode) -> None:
        if return_code != ReturnCode.SUCCESS:
            self.destroy_nodes()
            return
        path = self.cluster.env.cluster_output_path
        try:
            write_cluster_file(self.cluster)
            logger.info(f"*** Wrote new cluster file to {path}")
        except Exception as e:
            logger.error("*** Failed to write cluster file to %s: %s", path, e)
            self.destroy_nodes()
            raise

    def destroy_nodes(self) -> None:
        futures = [node.uplink.shutdown() for node in self.nodes_to_destroy()]
        for future in futures:
            future.result()
        if futures:
            logger.info(f"*** {self.name}: shut down {len(futures)} node(s).")
