"""ZooKeeper daemon actions."""

from actions.daemon import (
    JavaDaemonStartAction,
    JavaDaemonStatusAction,
    JavaDaemonStopAction,
    format_properties,
    run_daemon_args,
)
from actions.paths import ZK_DATA, ZK_LOGS, ZK_PROPERTIES, ZK_ROOT, ZK_START_SCRIPT
from engine.action import TargetId

ZOOKEEPER_CLASS_NAME = 'org.apache.zookeeper.server.quorum.QuorumPeerMain'
ZOOKEEPER_PORT = 2181


def zookeeper_properties(cluster) -> dict:
    props = {
        'dataDir': ZK_DATA,
        'clientPort': str(ZOOKEEPER_PORT),
        'maxClientCnxns': '0',
        'admin.enableServer': 'false',
    }
    zk_nodes = cluster.nodes_with_role('zooKeeper')
    if len(zk_nodes) > 1:
        props.update({'tickTime': '2000', 'initLimit': '10', 'syncLimit': '5'})
        for index, name in zk_nodes.items():
            props[f'server.{index}'] = f"{cluster.nodes[name].uplink.internal_dns()}:2888:3888"
    return props


class ZooKeeperStartAction(JavaDaemonStartAction):
    TYPE = 'zooKeeperStart'
    CLASS_NAME = ZOOKEEPER_CLASS_NAME

    def __init__(self, scope: str, role):
        super().__init__(scope, role.initial_delay_ms)

    def config_files(self, cluster, node) -> dict[str, str]:
        files = {ZK_PROPERTIES: format_properties(zookeeper_properties(cluster))}
        if len(cluster.nodes_with_role('zooKeeper')) > 1:
            files[f'{ZK_DATA}/myid'] = f"{node.node_index}\n"
        return files

    def remote_dirs(self) -> list[str]:
        return [ZK_ROOT, ZK_DATA, ZK_LOGS]

    def run_args(self, cluster, node) -> list[str]:
        return run_daemon_args([ZK_START_SCRIPT, ZK_PROPERTIES], ZK_LOGS, {'LOG_DIR': ZK_LOGS})


class ZooKeeperStatusAction(JavaDaemonStatusAction):
    TYPE = 'zooKeeperStatus'
    CLASS_NAME = ZOOKEEPER_CLASS_NAME


class ZooKeeperStopAction(JavaDaemonStopAction):
    TYPE = 'zooKeeperStop'
    CLASS_NAME = ZOOKEEPER_CLASS_NAME

    def __init__(self, scope: str, role):
        super().__init__(scope, role.initial_delay_ms, targets=[TargetId('brokerStop')])
