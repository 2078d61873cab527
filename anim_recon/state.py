"""
Snapshot comparison utilities.

A renderer that redraws only what changed between frames can use
`diff_snapshots` to find the entities (and camera fields) whose reconciled
values moved between two snapshots.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Optional, Tuple

from .models import AnimationSnapshot, EntityState

TOLERANCE = 1e-9


def _plain(value: Any) -> Any:
    return value.to_list() if hasattr(value, "to_list") else value


def values_differ(old: Any, new: Any, tolerance: float = TOLERANCE) -> bool:
    """Compare scalars, vectors and rotations (as flat lists) within `tolerance`."""
    old, new = _plain(old), _plain(new)
    if isinstance(old, list) and isinstance(new, list):
        if len(old) != len(new):
            return True
        return any(values_differ(a, b, tolerance) for a, b in zip(old, new))
    if isinstance(old, (int, float)) and isinstance(new, (int, float)):
        if math.isnan(old) or math.isnan(new):
            return not (math.isnan(old) and math.isnan(new))
        return abs(new - old) > tolerance
    return old != new


def diff_entity_states(
    new: EntityState,
    old: Optional[EntityState],
    tolerance: float = TOLERANCE,
) -> Dict[str, Tuple[Any, Any]]:
    """Return `{field: (old, new)}` for every field of `new` that differs from `old`."""
    new_fields = new.to_dict()
    old_fields = old.to_dict() if old is not None else {}
    changes: Dict[str, Tuple[Any, Any]] = {}

    for name, new_val in new_fields.items():
        if name == "properties":
            continue
        old_val = old_fields.get(name)
        if old_val is None or values_differ(old_val, new_val, tolerance):
            changes[name] = (old_val, new_val)

    old_props = old_fields.get("properties", {})
    for prop, new_val in new_fields["properties"].items():
        old_val = old_props.get(prop)
        if old_val is None or values_differ(old_val, new_val, tolerance):
            changes[f"properties.{prop}"] = (old_val, new_val)

    return changes


def diff_snapshots(
    new: AnimationSnapshot,
    old: AnimationSnapshot,
    tolerance: float = TOLERANCE,
) -> Dict[str, Any]:
    """Return differences from `old` → `new`.

    Returns dict with keys:
    - entity_updates: Dict[entity_id, Dict[field, (from, to)]]
    - removed_entities: List of entity IDs present only in `old`
    - camera_updates: Dict[field, (from, to)]
    """
    entity_updates: Dict[str, Dict[str, Tuple[Any, Any]]] = {}
    for entity_id, state in new.entity_states.items():
        changes = diff_entity_states(state, old.entity_states.get(entity_id), tolerance)
        if changes:
            entity_updates[entity_id] = changes

    removed = [eid for eid in old.entity_states if eid not in new.entity_states]

    camera_updates: Dict[str, Tuple[Any, Any]] = {}
    new_camera, old_camera = new.camera.to_dict(), old.camera.to_dict()
    for name, new_val in new_camera.items():
        old_val = old_camera.get(name)
        if old_val is None or values_differ(old_val, new_val, tolerance):
            camera_updates[name] = (old_val, new_val)

    return {
        "entity_updates": entity_updates,
        "removed_entities": removed,
        "camera_updates": camera_updates,
    }
