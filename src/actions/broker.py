"""Kafka broker daemon actions."""

from actions.daemon import (
    JavaDaemonStartAction,
    JavaDaemonStatusAction,
    JavaDaemonStopAction,
    format_properties,
    run_daemon_args,
)
from actions.paths import (
    KAFKA_BROKER_PROPERTIES,
    KAFKA_DATA,
    KAFKA_LOGS,
    KAFKA_ROOT,
    KAFKA_START_SCRIPT,
)
from common import merge_config
from engine.action import TargetId

BROKER_CLASS_NAME = 'kafka.Kafka'
BROKER_PORT = 9092


def broker_properties(cluster, node, role) -> dict:
    """The role's conf, with the settings castle manages filled in where unset."""
    defaults = {
        'broker.id': str(node.node_index),
        'listeners': f'PLAINTEXT://:{BROKER_PORT}',
        'advertised.listeners': f'PLAINTEXT://{node.uplink.internal_dns()}:{BROKER_PORT}',
        'log.dirs': KAFKA_DATA,
        'zookeeper.connect': cluster.get_zookeeper_connect_string(),
    }
    return merge_config({k: str(v) for k, v in role.conf.items()}, defaults)


class BrokerStartAction(JavaDaemonStartAction):
    TYPE = 'brokerStart'
    CLASS_NAME = BROKER_CLASS_NAME

    def __init__(self, scope: str, role):
        super().__init__(scope, role.initial_delay_ms, targets=[TargetId('zooKeeperStart')])
        self.role = role

    def config_files(self, cluster, node) -> dict[str, str]:
        return {KAFKA_BROKER_PROPERTIES: format_properties(broker_properties(cluster, node, self.role))}

    def remote_dirs(self) -> list[str]:
        return [KAFKA_ROOT, KAFKA_LOGS]

    def after_sync(self, cluster, node) -> None:
        for additional in self.role.additional_files:
            node.uplink.command().sync_to(additional['local'], additional['remote']).must_run()

    def run_args(self, cluster, node) -> list[str]:
        env = {'LOG_DIR': KAFKA_LOGS}
        if self.role.jvm_options:
            env['KAFKA_OPTS'] = self.role.jvm_options
        return run_daemon_args([KAFKA_START_SCRIPT, KAFKA_BROKER_PROPERTIES], KAFKA_LOGS, env)


class BrokerStatusAction(JavaDaemonStatusAction):
    TYPE = 'brokerStatus'
    CLASS_NAME = BROKER_CLASS_NAME


class BrokerStopAction(JavaDaemonStopAction):
    TYPE = 'brokerStop'
    CLASS_NAME = BROKER_CLASS_NAME

    def __init__(self, scope: str, role):
        super().__init__(scope, role.initial_delay_ms, targets=[TargetId('taskStop')])
