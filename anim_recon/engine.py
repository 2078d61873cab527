"""
State reconciler: interpolated scene state at a query time.

Given keyframes ordered by the dependency sorter, the reconciler replays each
entity's keyframes in order and builds up its state:

1. Progression: where the query time falls inside the keyframe window,
   clamped to [0, 1] (instantaneous windows count as complete)
2. Scalars (opacity, scale, named properties): linear interpolation
3. Rotation: absolute, relative (local axes) or world-space targets,
   interpolated along the shortest arc
4. Position: absolute or relative targets, or a marker on another entity
   whose state has already been computed for the same query time

Each keyframe interpolates from wherever the previous keyframe of the same
entity left off (progressive chaining), so a keyframe's start state is the
accumulated result of everything before it.

The camera is reconciled independently: it blends from the previous camera
keyframe's target pose to the current one over the current keyframe's window.

Everything here is a pure function of its inputs. State maps are built fresh
on every call and discarded afterwards.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, Optional, Sequence, Tuple

from .config import ReconcilerConfig
from .errors import MissingParentStateError
from .models import (
    AbsolutePosition,
    AbsoluteRotation,
    AnimationSnapshot,
    EntityState,
    Marker,
    MarkerPosition,
    ModelKeyframe,
    RelativePosition,
    RelativeRotation,
    RotationSpec,
    SortedKeyframes,
    TimedKeyframe,
    WorldSpaceRotation,
)
from .space import SPACE_3D, Space


def lerp(start: float, end: float, t: float) -> float:
    return start + (end - start) * t


def progression(start: float, end: float, query_time: float, epsilon: float = 1e-6) -> float:
    """
    Normalized position of `query_time` in `[start, end]`, clamped to [0, 1].

    Windows no longer than `epsilon` are instantaneous and always complete.
    """
    duration = end - start
    p = 1.0 if duration <= epsilon else (query_time - start) / duration
    return min(max(p, 0.0), 1.0)


def apply_rotation(
    spec: RotationSpec,
    rotation,
    cumulative,
    t: float,
    space: Space,
) -> Tuple[object, object]:
    """
    Advance visual and cumulative rotation toward a keyframe's rotation target.

    Returns:
        Tuple of (next visual rotation, next cumulative rotation)
    """
    if isinstance(spec, AbsoluteRotation):
        target = space.rotation(spec.value)
        return (
            space.interpolate_rotation(rotation, target, t),
            space.interpolate_rotation(cumulative, target, t),
        )
    if isinstance(spec, RelativeRotation):
        delta = space.rotation(spec.delta)
        return (
            space.interpolate_rotation(rotation, space.compose(rotation, delta), t),
            space.interpolate_rotation(cumulative, space.compose(cumulative, delta), t),
        )
    if isinstance(spec, WorldSpaceRotation):
        world = space.rotation(spec.value)
        # Cumulative rotation is left as-is: children on markers follow the
        # settled orientation only, not this visual-only world-axis turn.
        return space.interpolate_rotation(rotation, space.compose(world, rotation), t), cumulative
    raise TypeError(f"Unknown rotation specification: {spec!r}")


def apply_position(spec, position, t: float, space: Space):
    """Advance an absolute or relative position target; markers are handled separately."""
    if isinstance(spec, AbsolutePosition):
        return position.lerp(space.vector(spec.value), t)
    if isinstance(spec, RelativePosition):
        return position.lerp(position.add(space.vector(spec.delta)), t)
    raise TypeError(f"Unknown position specification: {spec!r}")


def marker_transform(
    marker: Marker,
    parent_state: EntityState,
    state: EntityState,
    t: float,
    space: Space,
) -> EntityState:
    """
    Move `state` toward the world pose of `marker` on its parent.

    The parent's marker basis rotation carries the marker's local offset into
    world space. The child cannot be more visible than its parent.
    """
    basis = space.marker_basis(parent_state)
    target_position = parent_state.position.add(space.marker_offset(basis, marker.position))
    target_rotation = space.compose(basis, space.rotation(marker.rotation))

    return replace(
        state,
        position=state.position.lerp(target_position, t),
        rotation=space.interpolate_rotation(state.rotation, target_rotation, t),
        cumulative_rotation=space.interpolate_rotation(state.cumulative_rotation, target_rotation, t),
        opacity=min(state.opacity, parent_state.opacity),
    )


def apply_keyframe(
    item: TimedKeyframe,
    state: EntityState,
    states: Dict[str, EntityState],
    query_time: float,
    space: Space,
    config: ReconcilerConfig,
) -> EntityState:
    """Return the state of the keyframe's entity after replaying `item` at `query_time`."""
    kf: ModelKeyframe = item.keyframe
    t = progression(item.start_time, item.end_time, query_time, config.epsilon)

    opacity = state.opacity if kf.opacity is None else lerp(state.opacity, kf.opacity, t)
    scale = state.scale if kf.scale is None else lerp(state.scale, kf.scale, t)

    properties = state.properties
    if kf.properties:
        properties = dict(state.properties)
        for name, target in kf.properties.items():
            properties[name] = lerp(properties.get(name, 0.0), target, t)

    rotation, cumulative = state.rotation, state.cumulative_rotation
    if kf.rotation is not None:
        rotation, cumulative = apply_rotation(kf.rotation, rotation, cumulative, t, space)

    next_state = EntityState(
        opacity=opacity,
        position=state.position,
        rotation=rotation,
        cumulative_rotation=cumulative,
        scale=scale,
        properties=properties,
    )

    if kf.position is None:
        return next_state

    if isinstance(kf.position, MarkerPosition):
        marker = kf.position.marker
        parent_state = states.get(marker.parent_id)
        if parent_state is None:
            raise MissingParentStateError(kf.id, kf.entity_id, marker.parent_id)
        # Marker placement replaces this keyframe's own rotation; it starts
        # from the pre-keyframe transform.
        base = replace(
            next_state,
            rotation=state.rotation,
            cumulative_rotation=state.cumulative_rotation,
        )
        return marker_transform(marker, parent_state, base, t, space)

    return replace(next_state, position=apply_position(kf.position, state.position, t, space))


def reconcile_entities(
    keyframes: Sequence[TimedKeyframe],
    query_time: float,
    space: Space = SPACE_3D,
    config: Optional[ReconcilerConfig] = None,
) -> Dict[str, EntityState]:
    """
    Replay ordered model keyframes and return the state of every entity.

    Raises:
        MissingParentStateError: If a marker's parent entity has no state
    """
    config = config or ReconcilerConfig()
    states: Dict[str, EntityState] = {}

    for item in keyframes:
        entity_id = item.keyframe.entity_id
        if entity_id not in states:
            states[entity_id] = space.default_state()

    for item in keyframes:
        entity_id = item.keyframe.entity_id
        states[entity_id] = apply_keyframe(item, states[entity_id], states, query_time, space, config)

    return states


def reconcile_camera(
    keyframes: Sequence[TimedKeyframe],
    query_time: float,
    space: Space = SPACE_3D,
    config: Optional[ReconcilerConfig] = None,
):
    """
    Camera pose at `query_time`.

    Before the first keyframe the default pose is returned. Inside a
    keyframe's window the pose blends from the previous keyframe's target to
    this keyframe's target. Between windows and after the last keyframe the
    most recent target pose is held.
    """
    config = config or ReconcilerConfig()
    eps = config.epsilon
    ordered = sorted(keyframes, key=lambda item: (item.start_time, item.order))
    default = space.default_camera()

    if not ordered or query_time < ordered[0].start_time:
        return default

    for i, current in enumerate(ordered):
        previous = default if i == 0 else ordered[i - 1].keyframe.pose
        target = current.keyframe.pose
        start, end = current.start_time, current.end_time

        if start <= query_time <= end + eps:
            denom = max(end - start, eps)
            t = min(max((query_time - start) / denom, 0.0), 1.0)
            return previous.interpolate(target, t)

        if i + 1 < len(ordered) and query_time < ordered[i + 1].start_time:
            return target

    return ordered[-1].keyframe.pose


def reconcile_state(
    ordered: SortedKeyframes,
    query_time: float,
    space: Space = SPACE_3D,
    config: Optional[ReconcilerConfig] = None,
) -> AnimationSnapshot:
    """
    Compute the full scene snapshot at `query_time`.

    Args:
        ordered: Output of the dependency sorter
        query_time: Time in seconds
        space: Position/rotation representation of the scene
        config: Numeric tolerances

    Returns:
        A new `AnimationSnapshot`; calling again with the same inputs yields
        an identical snapshot
    """
    entity_states = reconcile_entities(ordered.model_keyframes, query_time, space, config)
    camera = reconcile_camera(ordered.camera_keyframes, query_time, space, config)
    return AnimationSnapshot(time=query_time, entity_states=entity_states, camera=camera)
