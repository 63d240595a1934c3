"""Merge and delta over JSON values (dicts, lists, scalars).

Node specs store per-node role patches as deltas against the shared role,
so merge() and delta() are inverses for object values:

    merge(a, delta(a, b)) == b

Inside an object delta, None is an ordinary JSON null value. Keys to remove
are listed under the reserved REMOVED_KEYS key, which keeps deltas writable
to a cluster file. At the top level None means "no delta", so erasing a
whole value is expressed with the JSON_NULL sentinel instead.
"""

import copy
from typing import Any

REMOVED_KEYS = '$removed'


class _JsonNull:
    """Top-level delta meaning 'erase the value'."""

    def __repr__(self) -> str:
        return 'JSON_NULL'

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


JSON_NULL = _JsonNull()

# Nested delta result for equal values; None is a real value there.
_UNCHANGED = object()


def merge(value: Any, delta: Any) -> Any:
    """Apply delta to value.

    Neither argument is modified; the result is a deep copy.

    Args:
        value: Input JSON value, or None
        delta: Delta to apply, or None for no change

    Returns:
        The merged value
    """
    if delta is JSON_NULL:
        return None
    if value is None:
        return copy.deepcopy(delta)
    if delta is None:
        return copy.deepcopy(value)
    return _merge(value, delta)


def _merge(value: Any, delta: Any) -> Any:
    if not isinstance(value, dict) or not isinstance(delta, dict):
        # Lists and scalars are replaced whole.
        return copy.deepcopy(delta)
    removed = set(delta.get(REMOVED_KEYS) or ())
    merged = {}
    for key, item in value.items():
        if key in removed:
            continue
        if key in delta:
            merged[key] = _merge(item, delta[key])
        else:
            merged[key] = copy.deepcopy(item)
    for key, item in delta.items():
        if key != REMOVED_KEYS and key not in value:
            merged[key] = copy.deepcopy(item)
    return merged


def delta(a: Any, b: Any) -> Any:
    """Compute the delta which turns a into b.

    Returns:
        None if a and b are equal, JSON_NULL if a should be erased,
        otherwise the delta value
    """
    if b is None:
        return None if a is None else JSON_NULL
    if a is None:
        return copy.deepcopy(b)
    d = _delta(a, b)
    return None if d is _UNCHANGED else d


def _delta(a: Any, b: Any) -> Any:
    if not isinstance(a, dict) or not isinstance(b, dict):
        if type(a) is type(b) and a == b:
            return _UNCHANGED
        return copy.deepcopy(b)

    result = {}
    for key, b_item in b.items():
        if key not in a:
            result[key] = copy.deepcopy(b_item)
            continue
        d = _delta(a[key], b_item)
        if d is not _UNCHANGED:
            result[key] = d
    removed = sorted(key for key in a if key not in b)
    if removed:
        result[REMOVED_KEYS] = removed
    return result if result else _UNCHANGED
