"""
Data model for keyframe reconciliation.

This module defines the value types that flow through the pipeline:
- Time specifications: when a keyframe starts (absolute, or relative to
  other keyframes)
- Position and rotation specifications: how a keyframe's target is derived
  from the state the entity is already in
- Scene objects and markers: entities and their named attachment points
- Keyframes (model and camera) as produced by ingestion
- Resolved windows and timed keyframes as produced by the time stages
- Entity states, camera poses and snapshots as produced by the reconciler

Specifications are closed sum types built from frozen dataclasses. Code that
dispatches on them matches every variant and raises `TypeError` on anything
else.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .enums import Side
from .rotations import Euler, Quaternion, shortest_arc_interpolation
from .vectors import Vector2, Vector3


# ----- time specifications -----


@dataclass(frozen=True)
class AbsoluteTime:
    """Keyframe starts at a fixed time in seconds."""

    value: float


@dataclass(frozen=True)
class RelativeTime:
    """
    Keyframe starts `offset` seconds after one edge of another keyframe.

    Attributes:
        offset: Seconds added to the anchor (may be negative)
        side: Which edge of the parent window is the anchor
        parent_id: ID of the keyframe this one is anchored to
    """

    offset: float
    side: Side
    parent_id: str


@dataclass(frozen=True)
class MultipleTime:
    """Keyframe starts at the latest of several relative anchors."""

    refs: Tuple[RelativeTime, ...]

    def __post_init__(self):
        object.__setattr__(self, "refs", tuple(self.refs))


TimeSpec = Union[AbsoluteTime, RelativeTime, MultipleTime]


def time_dependencies(spec: TimeSpec) -> List[str]:
    """Return the parent keyframe IDs a time specification refers to."""
    if isinstance(spec, AbsoluteTime):
        return []
    if isinstance(spec, RelativeTime):
        return [spec.parent_id]
    if isinstance(spec, MultipleTime):
        return [ref.parent_id for ref in spec.refs]
    raise TypeError(f"Unknown time specification: {spec!r}")


# ----- scene objects and markers -----


@dataclass(frozen=True)
class MarkerDefinition:
    """Local attachment point on an entity: offset and orientation in the entity's frame."""

    position: Any
    rotation: Any


class SceneObject:
    """
    An animatable entity with a stable identity and named markers.

    Two scene objects with the same `object_id` are the same entity as far as
    reconciliation is concerned.

    Attributes:
        object_id: Unique identifier for this entity
        markers: Mapping of marker name to local marker definition
    """

    def __init__(self, object_id: str, markers: Optional[Mapping[str, MarkerDefinition]] = None):
        self.object_id = object_id
        self.markers: Dict[str, MarkerDefinition] = dict(markers or {})

    def marker_names(self) -> List[str]:
        return list(self.markers)

    def get_marker(self, name: str) -> "Marker":
        """
        Return the named marker bound to this object as its parent.

        Raises:
            KeyError: If this object has no marker with that name
        """
        try:
            definition = self.markers[name]
        except KeyError:
            raise KeyError(f"Marker {name!r} not found for object {self.object_id!r}") from None
        return Marker(name, definition.position, definition.rotation, self)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SceneObject) and other.object_id == self.object_id

    def __hash__(self) -> int:
        return hash(("SceneObject", self.object_id))

    def __repr__(self) -> str:
        return f"SceneObject({self.object_id!r}, markers={self.marker_names()!r})"


@dataclass(frozen=True)
class Marker:
    """
    A marker bound to the entity that owns it.

    Attributes:
        name: Marker name on the parent entity
        position: Offset in the parent's local frame
        rotation: Orientation in the parent's local frame
        parent: Entity the marker belongs to
    """

    name: str
    position: Any
    rotation: Any
    parent: SceneObject

    @property
    def parent_id(self) -> str:
        return self.parent.object_id


# ----- position / rotation specifications -----


@dataclass(frozen=True)
class AbsolutePosition:
    value: Any


@dataclass(frozen=True)
class RelativePosition:
    delta: Any


@dataclass(frozen=True)
class MarkerPosition:
    """Place the entity on a marker of another entity."""

    marker: Marker


PositionSpec = Union[AbsolutePosition, RelativePosition, MarkerPosition]


@dataclass(frozen=True)
class AbsoluteRotation:
    value: Any


@dataclass(frozen=True)
class RelativeRotation:
    """Compose with the current rotation about the entity's local axes."""

    delta: Any


@dataclass(frozen=True)
class WorldSpaceRotation:
    """Pre-multiply the current rotation, rotating about world axes (3D only)."""

    value: Any


RotationSpec = Union[AbsoluteRotation, RelativeRotation, WorldSpaceRotation]


# ----- camera poses -----


@dataclass(frozen=True)
class CameraPose2D:
    """Viewport pan offset, rotation in degrees and zoom factor."""

    pan: Vector2 = Vector2()
    rotation: float = 0.0
    zoom: float = 1.0

    def interpolate(self, target: "CameraPose2D", t: float) -> "CameraPose2D":
        return CameraPose2D(
            pan=self.pan.lerp(target.pan, t),
            rotation=shortest_arc_interpolation(self.rotation, target.rotation, t),
            zoom=self.zoom + (target.zoom - self.zoom) * t,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"pan": self.pan.to_list(), "rotation": self.rotation, "zoom": self.zoom}


@dataclass(frozen=True)
class CameraPose3D:
    """Look-at target, pitch (`rotation_x`) and yaw (`rotation_y`) in degrees, zoom factor."""

    target: Vector3 = Vector3()
    rotation_x: float = 0.0
    rotation_y: float = 0.0
    zoom: float = 1.0

    def interpolate(self, target: "CameraPose3D", t: float) -> "CameraPose3D":
        return CameraPose3D(
            target=self.target.lerp(target.target, t),
            rotation_x=shortest_arc_interpolation(self.rotation_x, target.rotation_x, t),
            rotation_y=shortest_arc_interpolation(self.rotation_y, target.rotation_y, t),
            zoom=self.zoom + (target.zoom - self.zoom) * t,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target.to_list(),
            "rotation_x": self.rotation_x,
            "rotation_y": self.rotation_y,
            "zoom": self.zoom,
        }


CameraPose = Union[CameraPose2D, CameraPose3D]


# ----- keyframes -----


@dataclass(frozen=True)
class ModelKeyframe:
    """
    Timed instruction producing a partial target state for one entity.

    Any target left as None is not touched by this keyframe.

    Attributes:
        id: Unique keyframe identifier, referenced by relative times
        entity: Entity this keyframe animates
        time: When the keyframe starts
        duration: Length of the keyframe window in seconds (>= 0)
        opacity: Target opacity
        scale: Target uniform scale
        position: How the target position is derived
        rotation: How the target rotation is derived
        properties: Additional named numeric targets
        chapter: Optional label grouping keyframes into chapters
    """

    id: str
    entity: SceneObject
    time: TimeSpec
    duration: float
    opacity: Optional[float] = None
    scale: Optional[float] = None
    position: Optional[PositionSpec] = None
    rotation: Optional[RotationSpec] = None
    properties: Mapping[str, float] = field(default_factory=dict)
    chapter: Optional[str] = None

    def __post_init__(self):
        # Anything but a mapping is left for the validator to report
        if isinstance(self.properties, Mapping):
            object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    @property
    def entity_id(self) -> str:
        return self.entity.object_id

    @property
    def marker_parent_id(self) -> Optional[str]:
        """ID of the entity this keyframe attaches to, if it uses marker positioning."""
        if isinstance(self.position, MarkerPosition):
            return self.position.marker.parent_id
        return None


@dataclass(frozen=True)
class CameraKeyframe:
    """Timed instruction moving the camera to `pose`."""

    id: str
    time: TimeSpec
    duration: float
    pose: CameraPose
    chapter: Optional[str] = None


Keyframe = Union[ModelKeyframe, CameraKeyframe]


# ----- resolved timing -----


@dataclass(frozen=True)
class ResolvedWindow:
    """Absolute `[start_time, end_time)` window of a keyframe, in seconds."""

    start_time: float
    end_time: float

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def is_finite(self) -> bool:
        return math.isfinite(self.start_time) and math.isfinite(self.end_time)


@dataclass(frozen=True)
class TimedKeyframe:
    """
    A keyframe annotated with its resolved window.

    Attributes:
        keyframe: The ingested keyframe, unchanged
        reconciled: Window as computed by the time resolver
        extended: Window after the time extender, once it has run
        order: Position of the keyframe in the ingestion list
    """

    keyframe: Keyframe
    reconciled: ResolvedWindow
    extended: Optional[ResolvedWindow] = None
    order: int = 0

    @property
    def id(self) -> str:
        return self.keyframe.id

    @property
    def window(self) -> ResolvedWindow:
        return self.extended if self.extended is not None else self.reconciled

    @property
    def start_time(self) -> float:
        return self.window.start_time

    @property
    def end_time(self) -> float:
        return self.window.end_time

    @property
    def is_camera(self) -> bool:
        return isinstance(self.keyframe, CameraKeyframe)


@dataclass(frozen=True)
class SortedKeyframes:
    """
    Output of the dependency sorter.

    `model_keyframes` is grouped by entity with parents before marker-attached
    children; `camera_keyframes` is ordered by start time.
    """

    model_keyframes: Tuple[TimedKeyframe, ...] = ()
    camera_keyframes: Tuple[TimedKeyframe, ...] = ()
    entity_order: Tuple[str, ...] = ()


# ----- reconciled state -----


@dataclass(frozen=True)
class EntityState:
    """
    Interpolated state of one entity at a point in time.

    Attributes:
        opacity: 0 is hidden, 1 fully visible (not clamped)
        position: World position (`Vector2` or `Vector3`)
        rotation: Visual rotation (degrees in 2D, `Quaternion` in 3D)
        cumulative_rotation: Rotation used to place marker-attached children
        scale: Uniform scale factor
        properties: Additional named numeric values
    """

    opacity: float
    position: Any
    rotation: Any
    cumulative_rotation: Any
    scale: float = 1.0
    properties: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    def to_dict(self) -> Dict[str, Any]:
        def _plain(value):
            return value.to_list() if hasattr(value, "to_list") else value

        return {
            "opacity": self.opacity,
            "position": _plain(self.position),
            "rotation": _plain(self.rotation),
            "cumulative_rotation": _plain(self.cumulative_rotation),
            "scale": self.scale,
            "properties": dict(self.properties),
        }


@dataclass(frozen=True)
class AnimationSnapshot:
    """
    Complete state of a scene at `time`.

    Attributes:
        time: Query time the snapshot was computed for
        entity_states: Mapping of entity ID to its state
        camera: Camera pose
    """

    time: float
    entity_states: Mapping[str, EntityState]
    camera: CameraPose

    def __post_init__(self):
        object.__setattr__(self, "entity_states", MappingProxyType(dict(self.entity_states)))

    def __getitem__(self, entity_id: str) -> EntityState:
        return self.entity_states[entity_id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "entities": {eid: s.to_dict() for eid, s in self.entity_states.items()},
            "camera": self.camera.to_dict(),
        }


__all__ = [
    "AbsoluteTime",
    "RelativeTime",
    "MultipleTime",
    "TimeSpec",
    "time_dependencies",
    "MarkerDefinition",
    "SceneObject",
    "Marker",
    "AbsolutePosition",
    "RelativePosition",
    "MarkerPosition",
    "PositionSpec",
    "AbsoluteRotation",
    "RelativeRotation",
    "WorldSpaceRotation",
    "RotationSpec",
    "CameraPose2D",
    "CameraPose3D",
    "CameraPose",
    "ModelKeyframe",
    "CameraKeyframe",
    "Keyframe",
    "ResolvedWindow",
    "TimedKeyframe",
    "SortedKeyframes",
    "EntityState",
    "AnimationSnapshot",
    "Euler",
    "Quaternion",
]
