"""Trogdor agent/coordinator daemons and the coordinator REST client."""

import json
import logging
import time
from enum import Enum
from typing import Any, Optional

import requests

from actions.daemon import (
    JavaDaemonStartAction,
    JavaDaemonStatusAction,
    JavaDaemonStopAction,
    run_daemon_args,
)
from actions.paths import LOGS_ROOT, TROGDOR_CONF, TROGDOR_ROOT, TROGDOR_START_SCRIPT
from engine.action import TargetId

logger = logging.getLogger(__name__)

AGENT_PORT = 8888
COORDINATOR_PORT = 8889
BASIC_PLATFORM = 'org.apache.kafka.trogdor.basic.BasicPlatform'


class TrogdorDaemon(Enum):
    """The two trogdor processes. Values are the trogdor.sh sub-commands."""
    AGENT = 'agent'
    COORDINATOR = 'coordinator'

    @property
    def role_type(self) -> str:
        return f'trogdor{self.value.capitalize()}'

    @property
    def class_name(self) -> str:
        if self == TrogdorDaemon.AGENT:
            return 'org.apache.kafka.trogdor.agent.Agent'
        return 'org.apache.kafka.trogdor.coordinator.Coordinator'

    @property
    def log_dir(self) -> str:
        return f'{LOGS_ROOT}/trogdor-{self.value}'


def trogdor_config(cluster) -> dict:
    """BasicPlatform config listing every agent and coordinator node."""
    nodes: dict[str, dict[str, Any]] = {}
    for daemon, port_key, port in (
            (TrogdorDaemon.AGENT, 'trogdor.agent.port', AGENT_PORT),
            (TrogdorDaemon.COORDINATOR, 'trogdor.coordinator.port', COORDINATOR_PORT)):
        for name in cluster.nodes_with_role(daemon.role_type).values():
            entry = nodes.setdefault(name, {
                'hostname': cluster.nodes[name].uplink.internal_dns(),
            })
            entry[port_key] = port
    return {'platform': BASIC_PLATFORM, 'nodes': nodes}


class TrogdorStartAction(JavaDaemonStartAction):

    def __init__(self, daemon: TrogdorDaemon, scope: str, initial_delay_ms: int = 0):
        self.TYPE = f'{daemon.role_type}Start'
        self.CLASS_NAME = daemon.class_name
        self.daemon = daemon
        comes_after = ['setup']
        if daemon == TrogdorDaemon.COORDINATOR:
            # Both daemons share TROGDOR_ROOT on a node.
            comes_after.append(f'{TrogdorDaemon.AGENT.role_type}Start')
        super().__init__(scope, initial_delay_ms, comes_after=comes_after)

    def config_files(self, cluster, node) -> dict[str, str]:
        return {TROGDOR_CONF: json.dumps(trogdor_config(cluster), indent=2) + '\n'}

    def remote_dirs(self) -> list[str]:
        return [TROGDOR_ROOT, self.daemon.log_dir]

    def run_args(self, cluster, node) -> list[str]:
        return run_daemon_args(
            [TROGDOR_START_SCRIPT, self.daemon.value, '-c', TROGDOR_CONF, '-n', node.node_name],
            self.daemon.log_dir, {'LOG_DIR': self.daemon.log_dir})


class TrogdorStatusAction(JavaDaemonStatusAction):

    def __init__(self, daemon: TrogdorDaemon, scope: str):
        self.TYPE = f'{daemon.role_type}Status'
        self.CLASS_NAME = daemon.class_name
        super().__init__(scope)


class TrogdorStopAction(JavaDaemonStopAction):

    def __init__(self, daemon: TrogdorDaemon, scope: str, initial_delay_ms: int = 0):
        self.TYPE = f'{daemon.role_type}Stop'
        self.CLASS_NAME = daemon.class_name
        super().__init__(scope, initial_delay_ms, targets=[TargetId('taskStop')])


class TrogdorClientError(Exception):
    """The coordinator rejected a request or sent an unreadable reply."""


class TrogdorConnectionError(TrogdorClientError):
    """The coordinator could not be reached."""


class TrogdorClient:
    """REST client for the coordinator, reached through an ssh tunnel.

    Every request opens its own tunnel to COORDINATOR_PORT on the node.
    """

    def __init__(self, node, retries: int = 3, timeout: int = 30, retry_delay: float = 1.0):
        self.node = node
        self.retries = retries
        self.timeout = timeout
        self.retry_delay = retry_delay

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.retries + 1):
            try:
                with self.node.uplink.open_port(COORDINATOR_PORT) as tunnel:
                    resp = requests.request(method, f"http://localhost:{tunnel.port}{path}",
                                            json=payload, timeout=self.timeout)
                    if resp.status_code >= 400:
                        raise TrogdorClientError(
                            f"{method} {path} failed: {resp.status_code} - {resp.text[:200]}")
                    if not resp.content:
                        return None
                    return resp.json()
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                last_error = e
                logger.debug(f"{self.node.node_name}: {method} {path} attempt {attempt} "
                             f"failed: {e}")
                if attempt < self.retries:
                    time.sleep(self.retry_delay)
            except ValueError as e:
                raise TrogdorClientError(f"Unable to parse the reply to {method} {path}: {e}") from e
        raise TrogdorConnectionError(
            f"Failed to connect to the Trogdor coordinator on {self.node.node_name}: "
            f"{last_error}") from last_error

    def create_task(self, task_id: str, spec: dict) -> None:
        self._request('POST', '/coordinator/task/create', {'id': task_id, 'spec': spec})

    def get_tasks(self) -> dict[str, dict]:
        """Task id -> state object ('state', 'status', 'error', ...)."""
        reply = self._request('GET', '/coordinator/tasks') or {}
        return reply.get('tasks') or {}

    def stop_task(self, task_id: str) -> None:
        self._request('PUT', '/coordinator/task/stop', {'id': task_id})
