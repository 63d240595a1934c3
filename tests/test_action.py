"""Tests for engine/action.py - action ids, target selectors and the Action base."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from engine.action import Action, ActionId, StageAction, TargetId


class TestActionId:
    """Test ActionId parsing and formatting."""

    def test_parse(self):
        assert ActionId.parse('brokerStart:node0') == ActionId('brokerStart', 'node0')

    def test_str(self):
        assert str(ActionId('brokerStart', 'node0')) == 'brokerStart:node0'

    def test_ordering_is_type_then_scope(self):
        ids = [ActionId('b', 'node1'), ActionId('a', 'node2'), ActionId('b', 'node0')]
        assert sorted(ids) == [ActionId('a', 'node2'), ActionId('b', 'node0'),
                               ActionId('b', 'node1')]

    def test_hashable(self):
        assert len({ActionId('up', 'node0'), ActionId('up', 'node0')}) == 1


class TestTargetId:
    """Test TargetId parsing and matching."""

    def test_parse_bare_type(self):
        target = TargetId.parse('daemonStart')
        assert target.type == 'daemonStart'
        assert target.scope == ''
        assert str(target) == 'daemonStart'

    def test_parse_scoped(self):
        target = TargetId.parse('brokerStop:node2')
        assert target == TargetId('brokerStop', 'node2')
        assert str(target) == 'brokerStop:node2'

    def test_empty_scope_matches_every_scope(self):
        target = TargetId('brokerStart')
        assert target.matches(ActionId('brokerStart', 'node0'))
        assert target.matches(ActionId('brokerStart', 'node7'))

    def test_scoped_matches_only_that_scope(self):
        target = TargetId('brokerStart', 'node1')
        assert target.matches(ActionId('brokerStart', 'node1'))
        assert not target.matches(ActionId('brokerStart', 'node0'))

    def test_type_must_match(self):
        assert not TargetId('brokerStart').matches(ActionId('brokerStop', 'node0'))


class TestAction:
    """Test the Action base class."""

    def test_properties(self):
        action = Action(ActionId('saveLogs', 'node0'), targets=[TargetId('daemonStop', 'node0')],
                        comes_after=['stop'], initial_delay_ms=10)
        assert action.id == ActionId('saveLogs', 'node0')
        assert action.targets == (TargetId('daemonStop', 'node0'),)
        assert action.comes_after == ('stop',)
        assert action.initial_delay_ms == 10

    def test_negative_delay_rejected(self):
        with pytest.raises(ValueError, match='non-negative'):
            Action(ActionId('x', 'node0'), initial_delay_ms=-1)

    def test_call_is_abstract(self):
        with pytest.raises(NotImplementedError):
            Action(ActionId('x', 'node0')).call(None, None)

    def test_stage_action_does_nothing(self):
        stage = StageAction(ActionId('up', 'node0'), comes_after=['start'])
        assert stage.call(None, None) is None
        assert 'up:node0' in repr(stage)
