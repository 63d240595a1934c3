"""AWS EC2 backend.

All EC2 calls go through one consumer thread. Callers enqueue requests and
get a concurrent.futures.Future back. The thread waits COALESCE_DELAY_MS
after the newest request so that requests arriving together share one API
call, and leaves at least CALL_DELAY_MS between API calls.

Creates are batched per (instance type, image id) into one run_instances
call. Describes and terminates are batched by instance id.
"""

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Optional

import boto3

from common import log_to_all

logger = logging.getLogger(__name__)

COALESCE_DELAY_MS = 20
CALL_DELAY_MS = 500
CASTLE_TAG = {'Key': 'CastleNodeVersion', 'Value': '1'}


class Ec2CloudError(Exception):
    """An EC2 request could not be completed."""


@dataclass(frozen=True)
class Ec2Settings:
    """Account-level settings; one Ec2Cloud exists per distinct value."""
    key_pair: str = ''
    security_group: str = ''
    region: str = ''

    def __str__(self) -> str:
        return (f"Ec2Settings(keyPair={self.key_pair}, securityGroup={self.security_group}, "
                f"region={self.region})")


@dataclass(frozen=True)
class Ec2InstanceInfo:
    instance_id: str = ''
    private_dns: str = ''
    public_dns: str = ''
    state: str = ''

    @classmethod
    def from_instance(cls, instance: dict) -> 'Ec2InstanceInfo':
        return cls(
            instance_id=instance.get('InstanceId', ''),
            private_dns=instance.get('PrivateDnsName', '') or '',
            public_dns=instance.get('PublicDnsName', '') or '',
            state=(instance.get('State') or {}).get('Name', ''),
        )


@dataclass
class _CreateOp:
    instance_type: str
    image_id: str
    future: Future = field(default_factory=Future)


@dataclass
class _DescribeOp:
    instance_id: str
    future: Future = field(default_factory=Future)


@dataclass
class _DescribeAllOp:
    future: Future = field(default_factory=Future)


@dataclass
class _TerminateOp:
    instance_id: str
    future: Future = field(default_factory=Future)


class Ec2Cloud:
    """Batched, rate-limited EC2 client shared by the AWS nodes of a cluster."""

    def __init__(self, settings: Ec2Settings, client=None):
        """Start the consumer thread.

        Args:
            settings: Account settings
            client: boto3 EC2 client; one is built for settings.region if None
        """
        self.settings = settings
        if client is None:
            client = boto3.client('ec2', region_name=settings.region or None)
        self._ec2 = client
        self._cond = threading.Condition()
        self._creates: list[_CreateOp] = []
        self._describes: list[_DescribeOp] = []
        self._describe_alls: list[_DescribeAllOp] = []
        self._terminates: list[_TerminateOp] = []
        self._should_exit = False
        self._destroy_all_invoked = False
        self._next_call_time = 0.0
        self._thread = threading.Thread(target=self._run, name='Ec2CloudThread', daemon=True)
        self._thread.start()

    def __repr__(self) -> str:
        return str(self.settings)

    def _has_work(self) -> bool:
        return bool(self._creates or self._describes or self._describe_alls or self._terminates)

    def _update_next_call_time(self, min_delay_ms: int) -> None:
        self._next_call_time = max(self._next_call_time, time.monotonic() + min_delay_ms / 1000)

    def _run(self) -> None:
        try:
            while True:
                with self._cond:
                    while not self._should_exit:
                        if not self._has_work():
                            self._cond.wait()
                            continue
                        delay = self._next_call_time - time.monotonic()
                        if delay <= 0:
                            break
                        self._cond.wait(delay)
                    if self._should_exit:
                        break
                    batch = self._take_batch()
                self._make_call(*batch)
                with self._cond:
                    self._update_next_call_time(CALL_DELAY_MS)
            logger.debug("Ec2Cloud thread exiting")
        except Exception as e:
            logger.warning("Ec2Cloud thread exiting with error: %s", e)
            raise
        finally:
            self._fail_pending(Ec2CloudError("Ec2Cloud is shutting down."))

    def _take_batch(self) -> tuple:
        """Remove the next batch of same-shaped requests. Caller holds the lock."""
        if self._creates:
            key = (self._creates[0].instance_type, self._creates[0].image_id)
            batch = [op for op in self._creates if (op.instance_type, op.image_id) == key]
            self._creates = [op for op in self._creates if (op.instance_type, op.image_id) != key]
            return 'create', batch
        if self._describes:
            batch, self._describes = self._describes, []
            return 'describe', batch
        if self._describe_alls:
            batch, self._describe_alls = self._describe_alls, []
            return 'describe_all', batch
        batch, self._terminates = self._terminates, []
        return 'terminate', batch

    def _make_call(self, kind: str, batch: list) -> None:
        logger.debug(f"Ec2Cloud: {kind} batch of {len(batch)}")
        if kind == 'create':
            self._create_instances(batch)
        elif kind == 'describe':
            self._describe_instances(batch)
        elif kind == 'describe_all':
            self._describe_all_instances(batch)
        else:
            self._terminate_instances(batch)

    def _create_instances(self, batch: list[_CreateOp]) -> None:
        first = batch[0]
        failure: Exception = Ec2CloudError("Unable to create instance")
        created = 0
        try:
            if not self.settings.key_pair:
                raise Ec2CloudError("You must specify a keyPair in order to create a new AWS instance.")
            if not self.settings.security_group:
                raise Ec2CloudError(
                    "You must specify a securityGroup in order to create a new AWS instance.")
            logger.info(f"Ec2Cloud: creating {len(batch)} instance(s), imageId={first.image_id}, "
                        f"keyName={self.settings.key_pair}, "
                        f"securityGroups={self.settings.security_group}")
            result = self._ec2.run_instances(
                InstanceType=first.instance_type,
                ImageId=first.image_id,
                MinCount=len(batch),
                MaxCount=len(batch),
                KeyName=self.settings.key_pair,
                SecurityGroups=[self.settings.security_group],
                TagSpecifications=[{'ResourceType': 'instance', 'Tags': [CASTLE_TAG]}],
            )
            for op, instance in zip(batch, result.get('Instances', [])):
                op.future.set_result(instance['InstanceId'])
                created += 1
        except Exception as e:
            failure = e
        for op in batch[created:]:
            op.future.set_exception(failure)

    def _describe_instances(self, batch: list[_DescribeOp]) -> None:
        by_id: dict[str, list[_DescribeOp]] = {}
        for op in batch:
            by_id.setdefault(op.instance_id, []).append(op)
        failure: Exception = Ec2CloudError("Result did not include the instance id.")
        try:
            result = self._ec2.describe_instances(InstanceIds=sorted(by_id))
            for reservation in result.get('Reservations', []):
                for instance in reservation.get('Instances', []):
                    info = Ec2InstanceInfo.from_instance(instance)
                    for op in by_id.pop(info.instance_id, []):
                        op.future.set_result(info)
        except Exception as e:
            failure = e
        for ops in by_id.values():
            for op in ops:
                op.future.set_exception(failure)

    def _describe_all_instances(self, batch: list[_DescribeAllOp]) -> None:
        try:
            if not self.settings.key_pair:
                raise Ec2CloudError(
                    "You must specify a keyPair in order to describe all AWS instances.")
            result = self._ec2.describe_instances(Filters=[
                {'Name': 'key-name', 'Values': [self.settings.key_pair]},
                {'Name': f"tag:{CASTLE_TAG['Key']}", 'Values': [CASTLE_TAG['Value']]},
            ])
            infos = [Ec2InstanceInfo.from_instance(instance)
                     for reservation in result.get('Reservations', [])
                     for instance in reservation.get('Instances', [])]
        except Exception as e:
            for op in batch:
                op.future.set_exception(e)
            return
        for op in batch:
            op.future.set_result(list(infos))

    def _terminate_instances(self, batch: list[_TerminateOp]) -> None:
        try:
            self._ec2.terminate_instances(InstanceIds=sorted({op.instance_id for op in batch}))
        except Exception as e:
            for op in batch:
                op.future.set_exception(e)
            return
        for op in batch:
            op.future.set_result(None)

    def _enqueue(self, queue: list, op):
        with self._cond:
            if self._should_exit:
                op.future.set_exception(Ec2CloudError("Ec2Cloud is shutting down."))
                return op.future
            queue.append(op)
            self._update_next_call_time(COALESCE_DELAY_MS)
            self._cond.notify_all()
        return op.future

    def create_instance(self, instance_type: str, image_id: str) -> Future:
        """Future resolving to the new instance id."""
        return self._enqueue(self._creates, _CreateOp(instance_type, image_id))

    def describe_instance(self, instance_id: str) -> Future:
        """Future resolving to an Ec2InstanceInfo."""
        return self._enqueue(self._describes, _DescribeOp(instance_id))

    def describe_all_instances(self) -> Future:
        """Future resolving to every castle instance under this key pair."""
        return self._enqueue(self._describe_alls, _DescribeAllOp())

    def terminate_instance(self, instance_id: str) -> Future:
        return self._enqueue(self._terminates, _TerminateOp(instance_id))

    def destroy_all(self, node, cluster_log: Optional[logging.Logger] = None) -> None:
        """Terminate every castle instance under this key pair. Runs once per cloud."""
        with self._cond:
            if self._destroy_all_invoked:
                return
            self._destroy_all_invoked = True
        infos = self.describe_all_instances().result()
        if not infos:
            log_to_all(f"*** {node.node_name}: No EC2 instances found.", node.log,
                       cluster_log or logger)
            return
        log_to_all(f"*** {node.node_name}: Terminating EC2 instance(s): "
                   f"{', '.join(sorted(i.instance_id for i in infos))}.",
                   node.log, cluster_log or logger)
        futures = [self.terminate_instance(info.instance_id) for info in infos]
        for future in futures:
            future.result()

    def _fail_pending(self, error: Exception) -> None:
        with self._cond:
            pending = self._creates + self._describes + self._describe_alls + self._terminates
            self._creates, self._describes, self._describe_alls, self._terminates = [], [], [], []
        for op in pending:
            if not op.future.done():
                op.future.set_exception(error)

    def close(self) -> None:
        """Stop the consumer thread and fail anything still queued."""
        with self._cond:
            self._should_exit = True
            self._cond.notify_all()
        self._thread.join()
        self._fail_pending(Ec2CloudError("Ec2Cloud is shutting down."))
        close_client = getattr(self._ec2, 'close', None)
        if close_client is not None:
            close_client()
