"""
Time resolution for keyframe batches.

Two pipeline stages live here:

1. Time Resolver (`resolve_times`): validates the batch and converts every
   keyframe's time specification into an absolute window. Absolute keyframes
   resolve immediately; relative and multiple-anchor keyframes resolve in
   repeated passes once their parents are known.
2. Time Extender (`extend_windows`): guarantees `end_time >= start_time` and
   replaces non-finite bounds, recording what it corrected.

Model and camera keyframes are resolved together because relative references
may cross between the two.
"""

from __future__ import annotations

import logging
import math
from dataclasses import fields
from numbers import Real
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .config import ReconcilerConfig
from .enums import DiagnosticKind, Side
from .errors import (
    CircularTimeDependencyError,
    Diagnostics,
    DuplicateKeyframeIDError,
    KeyframeValidationError,
    UnresolvedTimeDependencyError,
)
from .graph import find_cycles
from .models import (
    AbsolutePosition,
    AbsoluteRotation,
    AbsoluteTime,
    CameraKeyframe,
    CameraPose2D,
    CameraPose3D,
    Keyframe,
    Marker,
    MarkerPosition,
    ModelKeyframe,
    MultipleTime,
    RelativePosition,
    RelativeRotation,
    RelativeTime,
    ResolvedWindow,
    SceneObject,
    TimedKeyframe,
    WorldSpaceRotation,
    time_dependencies,
)
from .space import Space
from .vectors import Vector2, Vector3

logger = logging.getLogger(__name__)


def _is_finite_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def _validate_relative(kf_id: str, ref, label: str) -> None:
    if not isinstance(ref, RelativeTime):
        raise KeyframeValidationError(kf_id, f"{label} entry is not a relative time reference")
    if not isinstance(ref.parent_id, str) or not ref.parent_id:
        raise KeyframeValidationError(kf_id, f"{label} keyframe is missing a valid parent ID")
    if not _is_finite_number(ref.offset):
        raise KeyframeValidationError(kf_id, f"{label} keyframe has invalid offset {ref.offset!r}")
    if not isinstance(ref.side, Side):
        raise KeyframeValidationError(
            kf_id, f"{label} keyframe has invalid side {ref.side!r} (must be Side.START or Side.END)"
        )


def _validate_scalar(kf_id: str, value, label: str) -> None:
    if value is not None and not _is_finite_number(value):
        raise KeyframeValidationError(kf_id, f"invalid {label} {value!r}")


def _validate_vector(kf_id: str, value, space: Space, label: str) -> None:
    try:
        vector = space.vector(value)
    except (TypeError, ValueError, KeyError) as exc:
        raise KeyframeValidationError(kf_id, f"{label} {value!r} is not a {space.name} vector") from exc
    if not vector.is_finite():
        raise KeyframeValidationError(kf_id, f"{label} {value!r} has non-finite components")


def _validate_rotation(kf_id: str, value, space: Space, label: str) -> None:
    try:
        rotation = space.rotation(value)
    except (TypeError, ValueError, KeyError) as exc:
        raise KeyframeValidationError(kf_id, f"{label} {value!r} is not a {space.name} rotation") from exc
    finite = math.isfinite(rotation) if isinstance(rotation, Real) else rotation.is_finite()
    if not finite:
        raise KeyframeValidationError(kf_id, f"{label} {value!r} has non-finite components")


def _validate_model_targets(keyframe: ModelKeyframe, space: Optional[Space]) -> None:
    kf_id = keyframe.id
    if not isinstance(keyframe.entity, SceneObject):
        raise KeyframeValidationError(kf_id, f"keyframe entity {keyframe.entity!r} is not a scene object")

    _validate_scalar(kf_id, keyframe.opacity, "opacity")
    _validate_scalar(kf_id, keyframe.scale, "scale")

    if not isinstance(keyframe.properties, Mapping):
        raise KeyframeValidationError(kf_id, f"properties {keyframe.properties!r} are not a mapping")
    for name, value in keyframe.properties.items():
        if not isinstance(name, str):
            raise KeyframeValidationError(kf_id, f"property name {name!r} is not a string")
        if not _is_finite_number(value):
            raise KeyframeValidationError(kf_id, f"invalid property {name!r} value {value!r}")

    position = keyframe.position
    if isinstance(position, MarkerPosition):
        marker = position.marker
        if not isinstance(marker, Marker) or not isinstance(marker.parent, SceneObject):
            raise KeyframeValidationError(kf_id, f"marker {marker!r} is not bound to a scene object")
        if space is not None:
            _validate_vector(kf_id, marker.position, space, f"marker {marker.name!r} position")
            _validate_rotation(kf_id, marker.rotation, space, f"marker {marker.name!r} rotation")
    elif isinstance(position, AbsolutePosition):
        if space is not None:
            _validate_vector(kf_id, position.value, space, "absolute position")
    elif isinstance(position, RelativePosition):
        if space is not None:
            _validate_vector(kf_id, position.delta, space, "relative position")
    elif position is not None:
        raise KeyframeValidationError(kf_id, f"unknown position specification {position!r}")

    rotation = keyframe.rotation
    if isinstance(rotation, WorldSpaceRotation):
        if space is not None and not space.supports_world_space:
            raise KeyframeValidationError(kf_id, f"world-space rotation is not supported in {space.name} scenes")
        value, label = rotation.value, "world-space rotation"
    elif isinstance(rotation, AbsoluteRotation):
        value, label = rotation.value, "absolute rotation"
    elif isinstance(rotation, RelativeRotation):
        value, label = rotation.delta, "relative rotation"
    elif rotation is None:
        return
    else:
        raise KeyframeValidationError(kf_id, f"unknown rotation specification {rotation!r}")
    if space is not None:
        _validate_rotation(kf_id, value, space, label)


def _validate_camera_pose(keyframe: CameraKeyframe, space: Optional[Space]) -> None:
    kf_id, pose = keyframe.id, keyframe.pose
    if not isinstance(pose, (CameraPose2D, CameraPose3D)):
        raise KeyframeValidationError(kf_id, f"unknown camera pose {pose!r}")
    if space is not None and not isinstance(pose, type(space.default_camera())):
        raise KeyframeValidationError(kf_id, f"camera pose {pose!r} does not belong to a {space.name} scene")

    for pose_field in fields(pose):
        value = getattr(pose, pose_field.name)
        if isinstance(value, (Vector2, Vector3)):
            valid = value.is_finite()
        else:
            valid = _is_finite_number(value)
        if not valid:
            raise KeyframeValidationError(kf_id, f"invalid camera {pose_field.name} {value!r}")


def validate_keyframe(keyframe: Keyframe, space: Optional[Space] = None) -> None:
    """
    Check a single keyframe for structural problems.

    Args:
        keyframe: Keyframe to check
        space: Space the scene is animated in; enables space-specific checks

    Raises:
        KeyframeValidationError: If the keyframe cannot take part in reconciliation
    """
    kf_id = getattr(keyframe, "id", None)
    if not isinstance(keyframe, (ModelKeyframe, CameraKeyframe)):
        raise KeyframeValidationError(kf_id, f"unsupported keyframe type {type(keyframe).__name__}")

    if not isinstance(kf_id, str) or not kf_id:
        raise KeyframeValidationError(kf_id, "keyframe is missing a valid ID")

    duration = keyframe.duration
    if not _is_finite_number(duration):
        raise KeyframeValidationError(kf_id, f"invalid duration {duration!r}")
    if duration < 0:
        raise KeyframeValidationError(kf_id, f"negative duration {duration!r}")

    spec = keyframe.time
    if isinstance(spec, AbsoluteTime):
        if not _is_finite_number(spec.value):
            raise KeyframeValidationError(kf_id, f"absolute keyframe has invalid time value {spec.value!r}")
    elif isinstance(spec, RelativeTime):
        _validate_relative(kf_id, spec, "relative")
    elif isinstance(spec, MultipleTime):
        if not spec.refs:
            raise KeyframeValidationError(kf_id, "multiple keyframe has no time references")
        for ref in spec.refs:
            _validate_relative(kf_id, ref, "multiple")
    elif spec is None:
        raise KeyframeValidationError(kf_id, "keyframe is missing its time specification")
    else:
        raise KeyframeValidationError(kf_id, f"unknown time specification {spec!r}")

    if isinstance(keyframe, CameraKeyframe):
        _validate_camera_pose(keyframe, space)
    else:
        _validate_model_targets(keyframe, space)


def find_duplicate_ids(keyframes: Iterable[Keyframe]) -> List[str]:
    """Return each ID that occurs more than once, in order of its second occurrence."""
    seen = set()
    duplicates: List[str] = []
    for kf in keyframes:
        kf_id = getattr(kf, "id", None)
        if kf_id in seen and kf_id not in duplicates:
            duplicates.append(kf_id)
        seen.add(kf_id)
    return duplicates


def validate_keyframes(
    keyframes: Sequence[Keyframe],
    diagnostics: Optional[Diagnostics] = None,
    space: Optional[Space] = None,
    config: Optional[ReconcilerConfig] = None,
) -> List[TimedKeyframe]:
    """
    Validate a batch, dropping malformed entries.

    Returns placeholder `TimedKeyframe`s (window not yet resolved) carrying
    the ingestion index of every keyframe that passed.

    Raises:
        DuplicateKeyframeIDError: If any ID appears more than once
    """
    config = config or ReconcilerConfig()
    if diagnostics is None:
        diagnostics = Diagnostics()

    duplicates = find_duplicate_ids(keyframes)
    if duplicates:
        raise DuplicateKeyframeIDError(duplicates)

    valid: List[TimedKeyframe] = []
    for order, kf in enumerate(keyframes):
        try:
            validate_keyframe(kf, space)
        except KeyframeValidationError as exc:
            diagnostics.add(
                DiagnosticKind.VALIDATION,
                exc.keyframe_id,
                str(exc),
                logger if config.log_diagnostics else None,
            )
            continue
        valid.append(TimedKeyframe(kf, ResolvedWindow(math.nan, math.nan), order=order))

    dropped = len(keyframes) - len(valid)
    if dropped:
        logger.info("Filtered out %d invalid keyframes", dropped)
    return valid


def _anchor_time(ref: RelativeTime, parent: TimedKeyframe) -> float:
    if ref.side is Side.START:
        return parent.reconciled.start_time + ref.offset
    return parent.reconciled.end_time + ref.offset


def try_resolve_start(keyframe: Keyframe, resolved: Dict[str, TimedKeyframe]) -> Optional[float]:
    """
    Compute the start time of `keyframe` from already-resolved parents.

    Returns None while any referenced parent is still unresolved. With several
    anchors the latest one wins.
    """
    spec = keyframe.time
    if isinstance(spec, AbsoluteTime):
        return spec.value
    if isinstance(spec, RelativeTime):
        parent = resolved.get(spec.parent_id)
        if parent is None:
            return None
        return _anchor_time(spec, parent)
    if isinstance(spec, MultipleTime):
        latest = -math.inf
        for ref in spec.refs:
            parent = resolved.get(ref.parent_id)
            if parent is None:
                return None
            latest = max(latest, _anchor_time(ref, parent))
        return latest
    raise TypeError(f"Unknown time specification: {spec!r}")


def resolve_times(
    keyframes: Sequence[Keyframe],
    config: Optional[ReconcilerConfig] = None,
    diagnostics: Optional[Diagnostics] = None,
    space: Optional[Space] = None,
) -> List[TimedKeyframe]:
    """
    Resolve every keyframe's absolute `[start_time, end_time)` window.

    Args:
        keyframes: Flat list of model and camera keyframes
        config: Iteration bound and logging policy
        diagnostics: Accumulator for dropped keyframes
        space: Space of the scene, for space-specific validation

    Returns:
        Timed keyframes with `reconciled` windows: absolute keyframes first,
        then dependent keyframes in the order they resolved

    Raises:
        DuplicateKeyframeIDError: If keyframe IDs are not unique
        CircularTimeDependencyError: If unresolved keyframes reference each other in a loop
        UnresolvedTimeDependencyError: If any keyframe's parents never resolve
    """
    config = config or ReconcilerConfig()
    if diagnostics is None:
        diagnostics = Diagnostics()

    pending = validate_keyframes(keyframes, diagnostics, space, config)
    if not pending:
        return []

    resolved: Dict[str, TimedKeyframe] = {}
    result: List[TimedKeyframe] = []

    def _resolve(item: TimedKeyframe, start: float) -> None:
        timed = TimedKeyframe(
            item.keyframe,
            ResolvedWindow(start, start + item.keyframe.duration),
            order=item.order,
        )
        resolved[timed.id] = timed
        result.append(timed)

    unresolved: List[TimedKeyframe] = []
    for item in pending:
        if isinstance(item.keyframe.time, AbsoluteTime):
            _resolve(item, item.keyframe.time.value)
        else:
            unresolved.append(item)

    passes = 0
    while unresolved and passes < config.max_time_iterations:
        passes += 1
        still_unresolved: List[TimedKeyframe] = []
        for item in unresolved:
            start = try_resolve_start(item.keyframe, resolved)
            if start is None:
                still_unresolved.append(item)
            else:
                _resolve(item, start)

        made_progress = len(still_unresolved) < len(unresolved)
        unresolved = still_unresolved
        if not made_progress:
            break

    if unresolved:
        if passes >= config.max_time_iterations:
            logger.warning(
                "Time resolution stopped after %d passes with %d keyframes unresolved; "
                "increase max_time_iterations for deeper reference chains",
                passes,
                len(unresolved),
            )
        missing = {
            item.id: [p for p in time_dependencies(item.keyframe.time) if p not in resolved]
            for item in unresolved
        }
        cycles = find_cycles({kf_id: parents for kf_id, parents in missing.items()})
        if cycles:
            raise CircularTimeDependencyError(missing, cycles)
        raise UnresolvedTimeDependencyError(missing)

    logger.debug("Resolved %d keyframe windows in %d passes", len(result), passes)
    return result


def extend_window(
    window: ResolvedWindow,
    keyframe_id: str,
    diagnostics: Diagnostics,
    config: Optional[ReconcilerConfig] = None,
) -> ResolvedWindow:
    """Return a window with finite bounds and `end_time >= start_time`."""
    config = config or ReconcilerConfig()
    log = logger if config.log_diagnostics else None
    start, end = window.start_time, window.end_time

    if not (math.isfinite(start) and math.isfinite(end)):
        safe_start = start if math.isfinite(start) else 0.0
        safe_end = end if math.isfinite(end) else max(safe_start, 0.0)
        diagnostics.add(
            DiagnosticKind.INVALID_TIME_VALUE,
            keyframe_id,
            f"Keyframe {keyframe_id} has invalid time values: start_time={start}, end_time={end}",
            log,
        )
        return ResolvedWindow(safe_start, safe_end)

    if end < start:
        diagnostics.add(
            DiagnosticKind.TIME_WINDOW_CORRECTED,
            keyframe_id,
            f"Keyframe {keyframe_id} has end_time ({end}) before start_time ({start}). "
            "Adjusting end_time to match start_time.",
            log,
        )
        return ResolvedWindow(start, start)

    return ResolvedWindow(start, end)


def extend_windows(
    timed: Sequence[TimedKeyframe],
    config: Optional[ReconcilerConfig] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> List[TimedKeyframe]:
    """Attach an `extended` window to every resolved keyframe."""
    if diagnostics is None:
        diagnostics = Diagnostics()
    return [
        TimedKeyframe(
            item.keyframe,
            item.reconciled,
            extend_window(item.reconciled, item.id, diagnostics, config),
            item.order,
        )
        for item in timed
    ]
