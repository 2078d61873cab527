"""
Scene-authoring nodes that expand into keyframes.

A node is a single authoring step ("reveal this object", "slot this part onto
that marker") that reconciles into one or more chained keyframes. Chaining
uses the ordinary relative-time and marker machinery, so a node's output is
a plain keyframe batch for the pipeline.

Every node exposes:
- `relative_id`: the keyframe ID other keyframes should anchor to
- `reconcile()`: the keyframes the node stands for, in declaration order

`reconcile_nodes` expands a list of nodes and splits the result into model
and camera keyframes.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .config import ReconcilerConfig
from .enums import Side
from .models import (
    AbsolutePosition,
    AbsoluteRotation,
    CameraKeyframe,
    CameraPose,
    Keyframe,
    Marker,
    MarkerPosition,
    ModelKeyframe,
    PositionSpec,
    RelativePosition,
    RelativeRotation,
    RelativeTime,
    RotationSpec,
    SceneObject,
    TimeSpec,
)
from .pipeline import ReconciledScene, reconcile_scene
from .space import SPACE_3D, Space

# Initial-state keyframes last a single frame at 240 fps
INITIAL_STATE_DURATION = 1.0 / 240.0


@dataclass(frozen=True)
class MainNode:
    """
    General-purpose node: one keyframe with any combination of targets.

    Attributes:
        name: Keyframe ID, also used as the relative ID
        entity: Entity to animate
        time: When the keyframe starts
        duration: Seconds the change takes
        position: Optional position change
        rotation: Optional rotation change
        opacity: Optional target opacity
        scale: Optional target scale
        properties: Optional named numeric targets
        chapter: Optional chapter label
    """

    name: str
    entity: SceneObject
    time: TimeSpec
    duration: float
    position: Optional[PositionSpec] = None
    rotation: Optional[RotationSpec] = None
    opacity: Optional[float] = None
    scale: Optional[float] = None
    properties: Mapping[str, float] = field(default_factory=dict)
    chapter: Optional[str] = None

    @property
    def relative_id(self) -> str:
        return self.name

    def reconcile(self) -> List[Keyframe]:
        return [
            ModelKeyframe(
                id=self.relative_id,
                entity=self.entity,
                time=self.time,
                duration=self.duration,
                opacity=self.opacity,
                scale=self.scale,
                position=self.position,
                rotation=self.rotation,
                properties=self.properties,
                chapter=self.chapter,
            )
        ]


@dataclass(frozen=True)
class RevealNode:
    """
    Fade an entity in while it moves from a starting pose to where it is.

    Expands into `<name>-initial`, a one-frame hidden keyframe at the starting
    pose, and `<name>-reveal`, which shares the same start time, fades to
    full opacity over `duration` and leaves position and rotation to earlier
    keyframes. A None starting rotation leaves the rotation untouched.
    """

    name: str
    entity: SceneObject
    time: TimeSpec
    duration: float
    starting_position: Any
    starting_rotation: Any = None
    chapter: Optional[str] = None

    @property
    def initial_id(self) -> str:
        return f"{self.name}-initial"

    @property
    def relative_id(self) -> str:
        return f"{self.name}-reveal"

    def reconcile(self) -> List[Keyframe]:
        rotation = None
        if self.starting_rotation is not None:
            rotation = AbsoluteRotation(self.starting_rotation)
        return [
            ModelKeyframe(
                id=self.initial_id,
                entity=self.entity,
                time=self.time,
                duration=INITIAL_STATE_DURATION,
                opacity=0.0,
                position=AbsolutePosition(self.starting_position),
                rotation=rotation,
                chapter=self.chapter,
            ),
            ModelKeyframe(
                id=self.relative_id,
                entity=self.entity,
                time=self.time,
                duration=self.duration,
                opacity=1.0,
                chapter=self.chapter,
            ),
        ]


@dataclass(frozen=True)
class _OffsetNode:
    name: str
    entity: SceneObject
    time: TimeSpec
    duration: float
    offset_position: Any = None
    offset_rotation: Any = None
    chapter: Optional[str] = None

    suffix = ""
    target_opacity = 0.0

    @property
    def relative_id(self) -> str:
        return f"{self.name}-{self.suffix}"

    def reconcile(self) -> List[Keyframe]:
        position = None if self.offset_position is None else RelativePosition(self.offset_position)
        rotation = None if self.offset_rotation is None else RelativeRotation(self.offset_rotation)
        return [
            ModelKeyframe(
                id=self.relative_id,
                entity=self.entity,
                time=self.time,
                duration=self.duration,
                opacity=self.target_opacity,
                position=position,
                rotation=rotation,
                chapter=self.chapter,
            )
        ]


@dataclass(frozen=True)
class HideNode(_OffsetNode):
    """Fade an entity out as `<name>-hide`, optionally drifting by a relative offset."""

    suffix = "hide"
    target_opacity = 0.0


@dataclass(frozen=True)
class UnhideNode(_OffsetNode):
    """Fade an entity back in as `<name>-unhide`, optionally drifting by a relative offset."""

    suffix = "unhide"
    target_opacity = 1.0


@dataclass(frozen=True)
class MarkerStep:
    """
    Timing of one stage of a `ToMarkerNode`.

    Attributes:
        duration: Seconds the stage takes
        delay: Seconds after the end of the previous stage
        id: Keyframe ID override (only honoured for the slotting stage)
    """

    duration: float = 1.0
    delay: float = 0.0
    id: Optional[str] = None

    def __post_init__(self):
        if self.duration < 0:
            raise ValueError(f"Stage duration must be >= 0, got {self.duration}")
        if self.delay < 0:
            raise ValueError(f"Stage delay must be >= 0, got {self.delay}")


@dataclass(frozen=True)
class ToMarkerNode:
    """
    Bring an entity in next to a marker and slot it into place.

    Expands into a chain of three keyframes:

    1. `<name>-initial`: one frame, hidden, placed on the marker shifted by
       `offset_position` and turned by `offset_rotation`
    2. `<name>-reveal`: starts `reveal.delay` after the initial keyframe ends
       and fades to full opacity
    3. `<name>-slotted` (or `slotting.id`): starts `slotting.delay` after the
       reveal ends and moves onto the marker itself

    The offset marker is built in `space`, so positions and rotations use
    that space's vector and rotation types.
    """

    name: str
    entity: SceneObject
    time: TimeSpec
    marker: Marker
    offset_position: Any = None
    offset_rotation: Any = None
    reveal: MarkerStep = MarkerStep()
    slotting: MarkerStep = MarkerStep()
    chapter: Optional[str] = None
    space: Space = SPACE_3D

    @property
    def initial_id(self) -> str:
        return f"{self.name}-initial"

    @property
    def reveal_id(self) -> str:
        return f"{self.name}-reveal"

    @property
    def relative_id(self) -> str:
        return self.slotting.id or f"{self.name}-slotted"

    def offset_marker(self) -> Marker:
        """The marker shifted and turned by this node's offsets, on the same parent."""
        space = self.space
        position = space.vector(self.marker.position)
        if self.offset_position is not None:
            position = position.add(space.vector(self.offset_position))
        rotation = space.rotation(self.marker.rotation)
        if self.offset_rotation is not None:
            rotation = space.compose(rotation, space.rotation(self.offset_rotation))
        return replace(self.marker, position=position, rotation=rotation)

    def reconcile(self) -> List[Keyframe]:
        return [
            ModelKeyframe(
                id=self.initial_id,
                entity=self.entity,
                time=self.time,
                duration=INITIAL_STATE_DURATION,
                opacity=0.0,
                position=MarkerPosition(self.offset_marker()),
            ),
            ModelKeyframe(
                id=self.reveal_id,
                entity=self.entity,
                time=RelativeTime(self.reveal.delay, Side.END, self.initial_id),
                duration=self.reveal.duration,
                opacity=1.0,
                chapter=self.chapter,
            ),
            ModelKeyframe(
                id=self.relative_id,
                entity=self.entity,
                time=RelativeTime(self.slotting.delay, Side.END, self.reveal_id),
                duration=self.slotting.duration,
                opacity=1.0,
                position=MarkerPosition(self.marker),
                chapter=self.chapter,
            ),
        ]


@dataclass(frozen=True)
class CameraNode:
    """Move the camera to `pose`; the keyframe ID is the node name."""

    name: str
    time: TimeSpec
    duration: float
    pose: CameraPose
    chapter: Optional[str] = None

    @property
    def relative_id(self) -> str:
        return self.name

    def reconcile(self) -> List[Keyframe]:
        return [CameraKeyframe(self.name, self.time, self.duration, self.pose, self.chapter)]


Node = Union[MainNode, RevealNode, HideNode, UnhideNode, ToMarkerNode, CameraNode]


@dataclass
class NodeKeyframes:
    """
    Keyframes expanded from a node list.

    Attributes:
        model_keyframes: Model keyframes in node order
        camera_keyframes: Camera keyframes in node order
        entities: Every entity the model keyframes animate, in first-seen order
    """

    model_keyframes: List[ModelKeyframe] = field(default_factory=list)
    camera_keyframes: List[CameraKeyframe] = field(default_factory=list)
    entities: Dict[str, SceneObject] = field(default_factory=dict)

    @property
    def keyframes(self) -> List[Keyframe]:
        return [*self.model_keyframes, *self.camera_keyframes]

    def reconcile(self, space: Space = SPACE_3D, config: Optional[ReconcilerConfig] = None) -> ReconciledScene:
        return reconcile_scene(self.keyframes, space, config)


def reconcile_nodes(nodes: Sequence[Node]) -> NodeKeyframes:
    """
    Expand nodes into keyframes, separating model and camera keyframes.

    Args:
        nodes: Nodes in authoring order

    Returns:
        NodeKeyframes: The expanded batch and the entities it animates
    """
    result = NodeKeyframes()
    for node in nodes:
        for kf in node.reconcile():
            if isinstance(kf, ModelKeyframe):
                result.model_keyframes.append(kf)
                result.entities.setdefault(kf.entity_id, kf.entity)
            else:
                result.camera_keyframes.append(kf)
    return result

