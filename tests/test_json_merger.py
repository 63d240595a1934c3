"""Tests for json_merger.py - merge and delta over JSON values."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import copy

import pytest
from json_merger import JSON_NULL, REMOVED_KEYS, delta, merge


class TestMerge:
    """Test applying deltas."""

    def test_adds_and_overrides_keys(self):
        assert merge({'a': 1, 'b': 2}, {'b': 3, 'c': 4}) == {'a': 1, 'b': 3, 'c': 4}

    def test_removed_keys_are_dropped(self):
        assert merge({'a': 1, 'b': 2}, {REMOVED_KEYS: ['b']}) == {'a': 1}

    def test_null_is_a_value(self):
        assert merge({'a': 1, 'b': 2}, {'b': None}) == {'a': 1, 'b': None}

    def test_nested_objects_merge(self):
        assert merge({'conf': {'x': '1', 'y': '2'}}, {'conf': {'y': '3'}}) == {
            'conf': {'x': '1', 'y': '3'}}

    def test_lists_are_replaced(self):
        assert merge({'l': [1, 2]}, {'l': [3]}) == {'l': [3]}

    def test_none_delta_is_a_copy(self):
        value = {'a': {'b': 1}}
        merged = merge(value, None)
        assert merged == value
        merged['a']['b'] = 2
        assert value['a']['b'] == 1

    def test_json_null_erases(self):
        assert merge({'a': 1}, JSON_NULL) is None

    def test_inputs_not_modified(self):
        value, d = {'a': {'b': 1}}, {'a': {'c': 2}}
        merge(value, d)
        assert value == {'a': {'b': 1}}
        assert d == {'a': {'c': 2}}


class TestDelta:
    """Test computing deltas."""

    def test_equal_values_have_no_delta(self):
        assert delta({'a': 1}, {'a': 1}) is None
        assert delta(3, 3) is None

    def test_changed_and_added_keys(self):
        assert delta({'a': 1, 'b': 2}, {'a': 1, 'b': 5, 'c': 6}) == {'b': 5, 'c': 6}

    def test_removed_key_is_listed(self):
        assert delta({'a': 1, 'b': 2, 'c': 3}, {'a': 1}) == {REMOVED_KEYS: ['b', 'c']}

    def test_null_value_is_kept(self):
        assert delta({'a': 1}, {'a': None}) == {'a': None}
        assert delta({}, {'a': None}) == {'a': None}
        assert delta({'a': None}, {'a': None}) is None

    def test_erased_value(self):
        assert delta({'a': 1}, None) is JSON_NULL
        assert delta(None, None) is None

    def test_json_null_survives_copy(self):
        assert copy.deepcopy(JSON_NULL) is JSON_NULL

    @pytest.mark.parametrize('a,b', [
        ({'type': 'dockerNode', 'imageId': 'x'},
         {'type': 'dockerNode', 'imageId': 'x', 'containerName': 'ducker00', 'sshPort': 32768}),
        ({'conf': {'a': '1', 'b': '2'}, 'jvmOptions': '-Xmx1g'}, {'conf': {'a': '1', 'c': '3'}}),
        ({'x': [1, 2], 'y': {'z': {'w': 1}}}, {'x': [1], 'y': {'z': {}}}),
        ({}, {'new': True}),
        ({}, {'x': None}),
        ({'x': 1}, {'x': None}),
        ({'x': None}, {'x': 1}),
        ({'c': {'k': 1}}, {'c': {'k': None}}),
        ({'c': {'k': 1}}, {'c': None}),
        ({'c': {'k': 1, 'j': 2}}, {'c': {}}),
    ])
    def test_merge_inverts_delta(self, a, b):
        assert merge(a, delta(a, b)) == b
