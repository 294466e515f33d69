"""Change detection between two merged snapshots."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ChangeAction(str, Enum):
    """What happened to a key between two loads."""

    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ConfigChange:
    """A single key change produced by Config.load()."""

    key: str
    old_value: Any
    new_value: Any
    source: str  # Source that supplied new_value (old_value for deletes)
    action: ChangeAction


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality that also compares types.

    Plain ``==`` treats ``1``, ``1.0`` and ``True`` as equal; a change of
    stored type must still be reported.
    """
    if type(a) is not type(b):
        return False
    if isinstance(a, dict):
        return a.keys() == b.keys() and all(deep_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)):
        return len(a) == len(b) and all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, float) and math.isnan(a) and math.isnan(b):
        return True
    return bool(a == b)


def detect_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    new_origins: dict[str, str] | None = None,
    old_origins: dict[str, str] | None = None,
) -> dict[str, ConfigChange]:
    """Compare two snapshots key by key.

    Args:
        old: Previous merged snapshot.
        new: Freshly merged snapshot.
        new_origins: Key -> source name for the new snapshot.
        old_origins: Key -> source name for the old snapshot.

    Returns:
        Changes keyed by dotted key; empty when nothing differs.
    """
    new_origins = new_origins or {}
    old_origins = old_origins or {}
    changes: dict[str, ConfigChange] = {}

    for key, new_value in new.items():
        source = new_origins.get(key, "merged")
        if key not in old:
            changes[key] = ConfigChange(key, None, new_value, source, ChangeAction.ADD)
        elif not deep_equal(old[key], new_value):
            changes[key] = ConfigChange(key, old[key], new_value, source, ChangeAction.UPDATE)

    for key, old_value in old.items():
        if key not in new:
            source = old_origins.get(key, "merged")
            changes[key] = ConfigChange(key, old_value, None, source, ChangeAction.DELETE)

    return changes
