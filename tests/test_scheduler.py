"""Tests for engine/scheduler.py - concurrent dispatch, failure and timeout policy."""

import sys
import threading
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from engine.action import Action, ActionId, TargetId
from engine.graph import UnknownTargetError
from engine.lifecycle import ReturnCode
from engine.scheduler import ActionScheduler
from engine.state import ActionState


class RecordingAction(Action):
    """Appends its id to a shared log; optionally sleeps, blocks or fails."""

    def __init__(self, text, log, targets=(), comes_after=(), delay=0.0, fail=False,
                 event=None, initial_delay_ms=0):
        super().__init__(ActionId.parse(text), targets=[TargetId.parse(t) for t in targets],
                         comes_after=comes_after, initial_delay_ms=initial_delay_ms)
        self.log = log
        self.delay = delay
        self.fail = fail
        self.event = event
        self.calls = 0
        self.nodes_seen = []

    def call(self, cluster, node):
        self.calls += 1
        self.nodes_seen.append(node)
        if self.event is not None:
            self.event.wait(5)
        if self.delay:
            time.sleep(self.delay)
        self.log.append(str(self.id))
        if self.fail:
            raise RuntimeError(f"{self.id} failed")


@pytest.fixture
def cluster(fake_cluster):
    return fake_cluster({'node0': {}, 'node1': {}})


def build(cluster, targets, actions):
    return ActionScheduler.Builder(cluster).add_target_names(targets).add_actions(actions).build()


class TestScheduling:
    """Test ordering and dispatch."""

    def test_dependencies_run_first(self, cluster):
        log = []
        actions = [
            RecordingAction('brokerStart:node0', log, targets=['zooKeeperStart'], comes_after=['setup']),
            RecordingAction('setup:node0', log, delay=0.02),
            RecordingAction('zooKeeperStart:node1', log, delay=0.02),
        ]
        result = build(cluster, ['brokerStart'], actions).await_completion(5)
        assert result.success
        assert result.return_code == ReturnCode.SUCCESS
        assert log[-1] == 'brokerStart:node0'
        assert set(log) == {'brokerStart:node0', 'setup:node0', 'zooKeeperStart:node1'}

    def test_only_the_closure_runs(self, cluster):
        log = []
        actions = [RecordingAction('a:node0', log), RecordingAction('b:node0', log)]
        scheduler = build(cluster, ['a'], actions)
        assert scheduler.action_ids == [ActionId('a', 'node0')]
        scheduler.await_completion(5)
        assert log == ['a:node0']

    def test_independent_actions_run_in_parallel(self, cluster):
        barrier = threading.Barrier(2, timeout=5)

        class BarrierAction(Action):
            def call(self, cluster, node):
                barrier.wait()

        actions = [BarrierAction(ActionId('x', 'node0')), BarrierAction(ActionId('x', 'node1'))]
        result = build(cluster, ['x'], actions).await_completion(5)
        assert result.success

    def test_each_action_called_once_with_its_node(self, cluster):
        log = []
        shared = RecordingAction('init:node0', log)
        actions = [shared,
                   RecordingAction('setup:node0', log, targets=['init']),
                   RecordingAction('setup:node1', log, targets=['init'])]
        build(cluster, ['setup'], actions).await_completion(5)
        assert shared.calls == 1
        assert shared.nodes_seen == [cluster.nodes['node0']]

    def test_initial_delay_applies_after_dependencies(self, cluster):
        log = []
        actions = [RecordingAction('a:node0', log),
                   RecordingAction('b:node0', log, comes_after=['a'], initial_delay_ms=50)]
        scheduler = build(cluster, ['b'], actions)
        result = scheduler.await_completion(5)
        status_a = result.statuses[ActionId('a', 'node0')]
        status_b = result.statuses[ActionId('b', 'node0')]
        assert status_b.started_at - status_a.completed_at >= 0.04

    def test_empty_closure_completes(self, cluster):
        scheduler = ActionScheduler(cluster, build(cluster, ['a'], [RecordingAction('a:node0', [])]).graph, [])
        result = scheduler.await_completion(1)
        assert result.success
        assert result.statuses == {}

    def test_start_is_idempotent(self, cluster):
        log = []
        action = RecordingAction('a:node0', log)
        scheduler = build(cluster, ['a'], [action])
        scheduler.start()
        scheduler.start()
        scheduler.await_completion(5)
        assert action.calls == 1

    def test_unknown_target(self, cluster):
        with pytest.raises(UnknownTargetError):
            build(cluster, ['nope'], [RecordingAction('a:node0', [])])


class TestFailures:
    """Test failure propagation."""

    def test_failure_skips_dependents(self, cluster):
        log = []
        actions = [
            RecordingAction('setup:node0', log, fail=True),
            RecordingAction('brokerStart:node0', log, comes_after=['setup']),
            RecordingAction('up:node0', log, comes_after=['brokerStart']),
            RecordingAction('setup:node1', log),
            RecordingAction('up:node1', log, comes_after=['setup']),
        ]
        result = build(cluster, ['up'], actions).await_completion(5)
        assert not result.success
        assert result.failed == [ActionId('setup', 'node0')]
        assert result.skipped == [ActionId('brokerStart', 'node0'), ActionId('up', 'node0')]
        assert result.statuses[ActionId('up', 'node1')].state == ActionState.DONE
        assert 'up:node0' not in log
        assert 'failed' in result.statuses[ActionId('setup', 'node0')].error

    def test_failure_skips_dependents_across_nodes(self, fake_cluster):
        cluster = fake_cluster({'node0': {}, 'node1': {}, 'node2': {}})
        log = []
        actions = [
            RecordingAction('x:node1', log, fail=True),
            RecordingAction('y:node1', log, comes_after=['x']),
            RecordingAction('z:node0', log, targets=['y:node1']),
            RecordingAction('w:node2', log, targets=['z']),
            RecordingAction('ind:node2', log),
        ]
        result = build(cluster, ['w', 'ind'], actions).await_completion(5)
        assert result.failed == [ActionId('x', 'node1')]
        assert result.skipped == [ActionId('w', 'node2'), ActionId('y', 'node1'),
                                  ActionId('z', 'node0')]
        assert result.statuses[ActionId('ind', 'node2')].state == ActionState.DONE
        assert sorted(log) == ['ind:node2', 'x:node1']

    @pytest.mark.parametrize('exc_type', [SystemExit, KeyboardInterrupt])
    def test_interrupted_action_fails(self, cluster, exc_type):
        class InterruptedAction(Action):
            def call(self, cluster, node):
                raise exc_type()

        actions = [InterruptedAction(ActionId('a', 'node0')),
                   RecordingAction('b:node0', [], comes_after=['a'])]
        result = build(cluster, ['b'], actions).await_completion(5)
        assert not result.timed_out
        assert result.failed == [ActionId('a', 'node0')]
        assert result.skipped == [ActionId('b', 'node0')]
        assert result.return_code == ReturnCode.TOOL_FAILED

    def test_failure_raises_return_code(self, cluster):
        result = build(cluster, ['a'], [RecordingAction('a:node0', [], fail=True)]).await_completion(5)
        assert result.return_code == ReturnCode.TOOL_FAILED
        assert cluster.shutdown_manager.return_code == ReturnCode.TOOL_FAILED

    def test_return_code_reported_by_actions(self, cluster):
        class StatusAction(Action):
            def call(self, cluster, node):
                cluster.shutdown_manager.change_return_code(ReturnCode.CLUSTER_FAILED)

        result = build(cluster, ['status'], [StatusAction(ActionId('status', 'node0'))]) \
            .await_completion(5)
        assert result.success
        assert result.return_code == ReturnCode.CLUSTER_FAILED


class TestTimeout:
    """Test the global timeout policy."""

    def test_timeout_stops_dispatch(self, cluster):
        log = []
        release = threading.Event()
        actions = [RecordingAction('slow:node0', log, event=release),
                   RecordingAction('after:node0', log, comes_after=['slow'])]
        with build(cluster, ['after'], actions) as scheduler:
            result = scheduler.await_completion(0.1)
            release.set()
        assert result.timed_out
        assert not result.success
        assert result.return_code == ReturnCode.TOOL_FAILED
        assert result.statuses[ActionId('after', 'node0')].state == ActionState.WAITING
        time.sleep(0.1)
        assert 'after:node0' not in log
