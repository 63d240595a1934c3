"""Local docker backend.

Every container joins the 'ducknet' bridge network, which is created on
first use. Containers expose sshd on a host port and ship their own key,
which is copied into the working directory.
"""

import io
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from actions.paths import CASTLE_SRC, KAFKA_SRC, LOGS_ROOT
from command.shell import NodeShellRunner
from common import log_to_all

logger = logging.getLogger(__name__)

NETWORK_NAME = 'ducknet'


class DockerCloudError(Exception):
    """A docker command failed."""


class DockerCloud:
    """Runs docker commands for the docker nodes of one cluster."""

    def __init__(self):
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='DockerCloudThread')
        self._network_check: Future = None
        self._shutdown_all_invoked = False

    def __repr__(self) -> str:
        return 'DockerCloud{}'

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def network_check_future(self, node) -> Future:
        """Inspect, and if needed create, the docker network. Runs once."""
        with self._lock:
            if self._network_check is None:
                self._network_check = self._executor.submit(self._check_network, node)
            return self._network_check

    @staticmethod
    def _check_network(node) -> None:
        if NodeShellRunner(node, ['docker', 'network', 'inspect', NETWORK_NAME]).run() == 0:
            node.log.info(f"** {NETWORK_NAME} is running.")
            return
        node.log.info(f"** starting {NETWORK_NAME}.")
        if NodeShellRunner(node, ['docker', 'network', 'create', NETWORK_NAME]).run() == 0:
            node.log.info(f"** successfully created {NETWORK_NAME}.")
            return
        raise DockerCloudError(f"Failed to create {NETWORK_NAME}.")

    def run_command_line(self, cluster, node, role, container_name: str) -> list[str]:
        args = [
            'docker', 'run', '-d', '--privileged', '--memory=3G', '--memory-swappiness=1',
            '--name', container_name, '-h', container_name, f'--network={NETWORK_NAME}',
        ]
        if role.ssh_port > 0:
            args += ['-p', f'{role.ssh_port}:22']
        if cluster.conf.castle_path:
            args += ['-v', f'{cluster.conf.castle_path}:{CASTLE_SRC}']
        if cluster.conf.kafka_path:
            args += ['-v', f'{cluster.conf.kafka_path}:{KAFKA_SRC}']
        log_dir = Path(cluster.env.working_directory, 'logs', node.node_name).absolute()
        args += ['-v', f'{log_dir}:{LOGS_ROOT}']
        args += ['--', role.image_id]
        return args

    def startup(self, cluster, node, role, container_name: str) -> str:
        """Start a container.

        Returns:
            The new container id

        Raises:
            ConfigError: If a configured checkout to mount is not a directory
        """
        if cluster.conf.castle_path:
            cluster.conf.validate_castle_path()
        if cluster.conf.kafka_path:
            cluster.conf.validate_kafka_path()
        self.network_check_future(node).result()
        output = io.StringIO()
        NodeShellRunner(node, self.run_command_line(cluster, node, role, container_name)) \
            .capture_output(output).set_capture_stderr(False).must_run()
        return output.getvalue().strip()

    def get_docker_port(self, node, container_name: str) -> int:
        """Find the host port mapped to the container's sshd."""
        output = io.StringIO()
        NodeShellRunner(node, ['docker', 'port', container_name, '22']) \
            .capture_output(output).set_capture_stderr(False).must_run()
        # 0.0.0.0:32768
        for line in output.getvalue().splitlines():
            host_port = line.strip().rpartition(':')[2]
            if host_port.isdigit():
                return int(host_port)
        raise DockerCloudError(f"Unable to find the ssh port for {container_name}: "
                               f"{output.getvalue().strip()}")

    def save_ssh_key_file(self, cluster, node, container_name: str, docker_user: str) -> str:
        """Copy the container's private key to <working_dir>/<container>.id_rsa.

        Returns:
            The absolute key path
        """
        self.network_check_future(node).result()
        args = ['docker', 'exec']
        if docker_user:
            args += ['--user', docker_user]
        args += [container_name, 'bash', '-c', 'cat ~/.ssh/id_rsa']
        output = io.StringIO()
        if NodeShellRunner(node, args).capture_output(output).set_capture_stderr(False).run() != 0:
            raise DockerCloudError(f"Failed to get the ssh key file for {container_name}")
        key_path = Path(cluster.env.working_directory, f'{container_name}.id_rsa').absolute()
        key_path.write_text(output.getvalue(), encoding='utf-8')
        NodeShellRunner(node, ['chmod', '0600', str(key_path)]).must_run()
        return str(key_path)

    def list_containers(self, node) -> list[str]:
        """Names of the running containers on the castle network, sorted."""
        self.network_check_future(node).result()
        output = io.StringIO()
        NodeShellRunner(node, ['docker', 'ps', f'-f=network={NETWORK_NAME}', '-q',
                               '--format', '{{.Names}}']) \
            .capture_output(output).set_capture_stderr(False).must_run()
        return sorted(line.strip() for line in output.getvalue().splitlines() if line.strip())

    def shutdown(self, node, container_name: str) -> None:
        NodeShellRunner(node, ['docker', 'kill', container_name]).run()
        NodeShellRunner(node, ['docker', 'rm', container_name]).run()

    def shutdown_all(self, cluster, node) -> None:
        """Remove every container on the castle network. Runs once per cloud."""
        with self._lock:
            if self._shutdown_all_invoked:
                return
            self._shutdown_all_invoked = True
        containers = self.list_containers(node)
        if not containers:
            log_to_all(f"*** {node.node_name}: No docker containers found.", node.log, logger)
        else:
            log_to_all(f"*** {node.node_name}: Removing docker container(s): "
                       f"{', '.join(containers)}.", node.log, logger)
            for container_name in containers:
                self.shutdown(node, container_name)
        self.cleanup_network(node)

    def cleanup_network(self, node) -> None:
        if NodeShellRunner(node, ['docker', 'network', 'rm', NETWORK_NAME]).run() == 0:
            log_to_all(f"*** Removed {NETWORK_NAME}.", node.log, logger)
        with self._lock:
            self._network_check = None
