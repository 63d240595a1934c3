"""JMX dumper daemon actions."""

import json

from actions.daemon import (
    JavaDaemonStartAction,
    JavaDaemonStatusAction,
    JavaDaemonStopAction,
    run_daemon_args,
)
from actions.paths import (
    JMX_DUMPER_LOGS,
    JMX_DUMPER_PROPERTIES,
    JMX_DUMPER_ROOT,
    JMX_DUMPER_START_SCRIPT,
)
from engine.action import TargetId

JMX_DUMPER_CLASS_NAME = 'io.confluent.castle.jmx.JmxDumper'


class JmxDumperStartAction(JavaDaemonStartAction):
    TYPE = 'jmxStart'
    CLASS_NAME = JMX_DUMPER_CLASS_NAME

    def __init__(self, scope: str, role):
        super().__init__(scope, role.initial_delay_ms, targets=[TargetId('brokerStart')])
        self.role = role

    def config_files(self, cluster, node) -> dict[str, str]:
        return {JMX_DUMPER_PROPERTIES: json.dumps(self.role.conf, indent=2, sort_keys=True) + '\n'}

    def remote_dirs(self) -> list[str]:
        return [JMX_DUMPER_ROOT, JMX_DUMPER_LOGS]

    def run_args(self, cluster, node) -> list[str]:
        return run_daemon_args([JMX_DUMPER_START_SCRIPT, JMX_DUMPER_PROPERTIES], JMX_DUMPER_LOGS)


class JmxDumperStatusAction(JavaDaemonStatusAction):
    TYPE = 'jmxStatus'
    CLASS_NAME = JMX_DUMPER_CLASS_NAME


class JmxDumperStopAction(JavaDaemonStopAction):
    TYPE = 'jmxStop'
    CLASS_NAME = JMX_DUMPER_CLASS_NAME

    def __init__(self, scope: str, role):
        super().__init__(scope, role.initial_delay_ms)
