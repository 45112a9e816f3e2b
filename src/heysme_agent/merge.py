"""Merge helpers for ``collectedData``.

Stage results are merged additively: nothing already collected is lost
unless the stage names the field as superseded.  Interactions declare
their own policy (``replace`` / ``append``) and use the explicit helpers.
"""

import copy
from typing import Any, Iterable


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _extend_unique(current: list, extra: Iterable) -> list:
    merged = list(current)
    for item in extra:
        if item not in merged:
            merged.append(item)
    return merged


def merge_additive(
    current: dict[str, Any],
    updates: dict[str, Any],
    superseded: Iterable[str] = (),
) -> dict[str, Any]:
    """Fold ``updates`` into ``current`` without losing collected values.

    - new keys are added
    - lists are extended (duplicates skipped)
    - nested dicts are merged recursively
    - an existing scalar is kept, unless it is empty or its key is in
      ``superseded``

    Returns a new dict; neither argument is mutated.
    """
    superseded = set(superseded)
    merged = copy.deepcopy(current)
    for key, value in updates.items():
        if key in superseded or key not in merged:
            merged[key] = copy.deepcopy(value)
            continue
        existing = merged[key]
        if isinstance(existing, list) and isinstance(value, list):
            merged[key] = _extend_unique(existing, value)
        elif isinstance(existing, dict) and isinstance(value, dict):
            merged[key] = merge_additive(existing, value)
        elif _is_empty(existing):
            merged[key] = copy.deepcopy(value)
        # otherwise: keep the collected value
    return merged


def merge_replace(current: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """Overwrite each updated key with the submitted value."""
    merged = copy.deepcopy(current)
    merged.update(copy.deepcopy(updates))
    return merged


def merge_append(current: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """Append each submitted value to a list under its key.

    A scalar already stored under the key is promoted to a one-item list.
    Submitted lists are appended element by element.
    """
    merged = copy.deepcopy(current)
    for key, value in updates.items():
        existing = merged.get(key)
        if existing is None:
            items: list = []
        elif isinstance(existing, list):
            items = existing
        else:
            items = [existing]
        if isinstance(value, list):
            items.extend(copy.deepcopy(value))
        else:
            items.append(copy.deepcopy(value))
        merged[key] = items
    return merged
