"""Well-known paths on castle nodes."""

CASTLE_SRC = '/opt/castle'
KAFKA_SRC = '/opt/kafka-dev'
LOGS_ROOT = '/mnt/logs'

KAFKA_ROOT = '/mnt/kafka'
KAFKA_DATA = f'{KAFKA_ROOT}/data'
KAFKA_LOGS = f'{LOGS_ROOT}/kafka'
KAFKA_BROKER_PROPERTIES = f'{KAFKA_ROOT}/broker.properties'
KAFKA_START_SCRIPT = f'{KAFKA_SRC}/bin/kafka-server-start.sh'

ZK_ROOT = '/mnt/zookeeper'
ZK_DATA = f'{ZK_ROOT}/data'
ZK_LOGS = f'{LOGS_ROOT}/zookeeper'
ZK_PROPERTIES = f'{ZK_ROOT}/zookeeper.properties'
ZK_START_SCRIPT = f'{KAFKA_SRC}/bin/zookeeper-server-start.sh'

TROGDOR_ROOT = '/mnt/trogdor'
TROGDOR_CONF = f'{TROGDOR_ROOT}/trogdor.conf'
TROGDOR_START_SCRIPT = f'{KAFKA_SRC}/bin/trogdor.sh'

JMX_DUMPER_ROOT = '/mnt/jmx'
JMX_DUMPER_LOGS = f'{LOGS_ROOT}/jmx'
JMX_DUMPER_PROPERTIES = f'{JMX_DUMPER_ROOT}/jmx-dumper.conf'
JMX_DUMPER_START_SCRIPT = f'{CASTLE_SRC}/bin/jmx-dumper.sh'

COLLECTD = 'collectd'
COLLECTD_ROOT = '/mnt/collectd'
COLLECTD_LOGS = f'{LOGS_ROOT}/collectd'
COLLECTD_PROPERTIES = f'{COLLECTD_ROOT}/collectd.conf'
COLLECTD_PID_FILE = f'{COLLECTD_ROOT}/collectd.pid'
