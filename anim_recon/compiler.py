"""
Scene compiler: plain data / YAML text to keyframes.

This module builds `SceneObject`s (with markers) and keyframes from a simple
declarative description, so scenes can be authored as data.

YAML schema (minimal):

space: 3d                     # or 2d; defaults to 3d
objects:
  base:
    markers:
      top: {position: [0, 5, 0], rotation: [0, 0, 0]}
  arm:
    markers:
      tip: {position: [0, 1, 0]}
  lid: {}
keyframes:
  - id: base-in
    object: base
    time: 0                   # absolute seconds
    duration: 2
    opacity: 1
    position: {absolute: [10, 0, 0]}
  - id: arm-attach
    object: arm
    time: {parent: base-in, side: End, offset: 0.5}
    duration: 1
    position: {marker: base.top}
  - id: cam
    camera: {target: [0, 0, 0], rotation_x: 10, rotation_y: 20, zoom: 1.5}
    time: {multiple: [{parent: base-in}, {parent: arm-attach, side: Start}]}
    duration: 1
  - node: to_marker           # authoring node, expands into several keyframes
    name: lid
    object: lid
    time: {parent: arm-attach}
    marker: arm.tip
    offset_position: [0, 2, 0]
    reveal: {duration: 0.5}
    slotting: {duration: 1, delay: 0.25}

Notes:
- `time` is a number, `{absolute: v}`, a relative reference
  `{parent, side?, offset?}` (side defaults to End, offset to 0), or
  `{multiple: [...]}` of relative references.
- `position` is `{absolute: v}`, `{relative: v}` or `{marker: "object.marker"}`.
- `rotation` is `{absolute: v}`, `{relative: v}` or `{world: v}`; in 3D `v`
  is Euler degrees `[x, y, z]` or `{x, y, z, order}`, in 2D an angle.
- Objects referenced by keyframes but not declared are created without
  markers.
- Malformed time entries are passed through as-is; the time resolver drops
  those keyframes and reports them in its diagnostics.
- Entries with a `node` key are authoring nodes (see `anim_recon.nodes`):
  `main` takes the keyframe keys above with `name` in place of `id`;
  `reveal` takes `starting_position` and `starting_rotation`; `hide` and
  `unhide` take `offset_position` and `offset_rotation`; `to_marker` takes
  `marker`, both offsets and optional `reveal` / `slotting` blocks of
  `{duration, delay}` (`slotting` may also set `id`); `camera` takes a
  `camera` pose block. Node keyframes are appended in place of the entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from .config import ReconcilerConfig
from .enums import Side
from .models import (
    AbsolutePosition,
    AbsoluteRotation,
    AbsoluteTime,
    CameraKeyframe,
    CameraPose2D,
    CameraPose3D,
    Keyframe,
    MarkerDefinition,
    MarkerPosition,
    ModelKeyframe,
    MultipleTime,
    RelativePosition,
    RelativeRotation,
    RelativeTime,
    SceneObject,
    WorldSpaceRotation,
)
from .nodes import (
    CameraNode,
    HideNode,
    MainNode,
    MarkerStep,
    Node,
    RevealNode,
    ToMarkerNode,
    UnhideNode,
)
from .pipeline import ReconciledScene, reconcile_scene
from .space import SPACE_2D, Space, space_for
from .vectors import Vector2, Vector3

NODE_KINDS = ("main", "reveal", "hide", "unhide", "to_marker", "camera")


@dataclass
class CompiledScene:
    """Objects, authoring nodes and the keyframes built from a scene description."""

    space: Space
    objects: Dict[str, SceneObject] = field(default_factory=dict)
    keyframes: List[Keyframe] = field(default_factory=list)
    nodes: List[Node] = field(default_factory=list)

    def reconcile(self, config: Optional[ReconcilerConfig] = None) -> ReconciledScene:
        return reconcile_scene(self.keyframes, self.space, config)


def _ensure_object(objects: Dict[str, SceneObject], object_id: str) -> SceneObject:
    if object_id in objects:
        return objects[object_id]
    obj = SceneObject(object_id)
    objects[object_id] = obj
    return obj


def _compile_side(raw: Any):
    if raw is None:
        return Side.END
    for side in Side:
        if raw == side.value or str(raw).upper() == side.name:
            return side
    # Left unconverted so the resolver reports it
    return raw


def _compile_relative(entry: Any):
    if not isinstance(entry, dict):
        return entry
    return RelativeTime(
        offset=entry.get("offset", 0.0),
        side=_compile_side(entry.get("side")),
        parent_id=entry.get("parent"),
    )


def _compile_time(raw: Any):
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return AbsoluteTime(float(raw))
    if not isinstance(raw, dict):
        return None
    if "absolute" in raw:
        return AbsoluteTime(raw["absolute"])
    if "multiple" in raw:
        return MultipleTime(tuple(_compile_relative(e) for e in raw["multiple"] or []))
    if "parent" in raw:
        return _compile_relative(raw)
    return None


def _compile_marker_ref(ref: str, objects: Dict[str, SceneObject]):
    object_id, sep, marker_name = str(ref).rpartition(".")
    if not sep or not object_id:
        raise ValueError(f"Marker reference {ref!r} must be written as 'object.marker'")
    if object_id not in objects:
        raise ValueError(f"Marker reference {ref!r} names unknown object {object_id!r}")
    try:
        return objects[object_id].get_marker(marker_name)
    except KeyError as exc:
        raise ValueError(str(exc.args[0])) from exc


def _compile_position(raw: Dict[str, Any], space: Space, objects: Dict[str, SceneObject]):
    if "absolute" in raw:
        return AbsolutePosition(space.vector(raw["absolute"]))
    if "relative" in raw:
        return RelativePosition(space.vector(raw["relative"]))
    if "marker" in raw:
        return MarkerPosition(_compile_marker_ref(raw["marker"], objects))
    raise ValueError(f"Unknown position specification: {raw!r}")


def _compile_rotation(raw: Dict[str, Any]):
    if "absolute" in raw:
        return AbsoluteRotation(raw["absolute"])
    if "relative" in raw:
        return RelativeRotation(raw["relative"])
    if "world" in raw:
        return WorldSpaceRotation(raw["world"])
    raise ValueError(f"Unknown rotation specification: {raw!r}")


def _compile_camera_pose(raw: Dict[str, Any], space: Space):
    if space is SPACE_2D:
        return CameraPose2D(
            pan=Vector2.from_input(raw.get("pan", [0.0, 0.0])),
            rotation=float(raw.get("rotation", 0.0)),
            zoom=float(raw.get("zoom", 1.0)),
        )
    return CameraPose3D(
        target=Vector3.from_input(raw.get("target", [0.0, 0.0, 0.0])),
        rotation_x=float(raw.get("rotation_x", 0.0)),
        rotation_y=float(raw.get("rotation_y", 0.0)),
        zoom=float(raw.get("zoom", 1.0)),
    )


def _compile_markers(raw: Dict[str, Any], space: Space) -> Dict[str, MarkerDefinition]:
    markers = {}
    for name, definition in (raw or {}).items():
        definition = definition or {}
        position = space.vector(definition.get("position", space.zero_vector().to_list()))
        rotation = definition.get("rotation", [0.0, 0.0, 0.0] if space is not SPACE_2D else 0.0)
        markers[name] = MarkerDefinition(position, rotation)
    return markers


def _compile_step(raw: Any) -> MarkerStep:
    raw = raw or {}
    return MarkerStep(
        duration=raw.get("duration", 1.0),
        delay=raw.get("delay", 0.0),
        id=raw.get("id"),
    )


def _optional_vector(raw: Any, space: Space):
    return None if raw is None else space.vector(raw)


def _compile_node(entry: Dict[str, Any], scene: CompiledScene) -> Node:
    kind = entry["node"]
    space = scene.space
    name = entry.get("name", entry.get("id"))
    time = _compile_time(entry.get("time"))
    duration = entry.get("duration", 0.0)
    chapter = entry.get("chapter")

    if kind == "camera":
        return CameraNode(name, time, duration, _compile_camera_pose(entry.get("camera") or {}, space), chapter)

    object_id = entry.get("object")
    if not object_id:
        raise ValueError(f"Node {name!r} of kind {kind!r} needs an 'object'")
    entity = _ensure_object(scene.objects, object_id)

    if kind == "main":
        position = entry.get("position")
        rotation = entry.get("rotation")
        return MainNode(
            name,
            entity,
            time,
            duration,
            position=_compile_position(position, space, scene.objects) if position else None,
            rotation=_compile_rotation(rotation) if rotation else None,
            opacity=entry.get("opacity"),
            scale=entry.get("scale"),
            properties=dict(entry.get("properties") or {}),
            chapter=chapter,
        )
    if kind == "reveal":
        return RevealNode(
            name,
            entity,
            time,
            duration,
            starting_position=space.vector(entry.get("starting_position", space.zero_vector().to_list())),
            starting_rotation=entry.get("starting_rotation"),
            chapter=chapter,
        )
    if kind in ("hide", "unhide"):
        node_type = HideNode if kind == "hide" else UnhideNode
        return node_type(
            name,
            entity,
            time,
            duration,
            offset_position=_optional_vector(entry.get("offset_position"), space),
            offset_rotation=entry.get("offset_rotation"),
            chapter=chapter,
        )
    if kind == "to_marker":
        if "marker" not in entry:
            raise ValueError(f"Node {name!r} of kind 'to_marker' needs a 'marker'")
        return ToMarkerNode(
            name,
            entity,
            time,
            marker=_compile_marker_ref(entry["marker"], scene.objects),
            offset_position=entry.get("offset_position"),
            offset_rotation=entry.get("offset_rotation"),
            reveal=_compile_step(entry.get("reveal")),
            slotting=_compile_step(entry.get("slotting")),
            chapter=chapter,
            space=space,
        )
    raise ValueError(f"Unknown node kind {kind!r}; expected one of {', '.join(NODE_KINDS)}")


def compile_from_dict(spec: Dict[str, Any]) -> CompiledScene:
    """
    Compile a parsed scene description into objects and keyframes.

    Args:
        spec: Parsed YAML/JSON dictionary

    Returns:
        CompiledScene: Objects by ID and keyframes in declaration order

    Raises:
        ValueError: If a position/rotation block, marker reference or node entry
            is malformed
    """
    space = space_for(spec.get("space", "3d"))
    scene = CompiledScene(space)

    for object_id, body in (spec.get("objects") or {}).items():
        body = body or {}
        scene.objects[object_id] = SceneObject(object_id, _compile_markers(body.get("markers"), space))

    for entry in spec.get("keyframes") or []:
        if not isinstance(entry, dict):
            continue
        if "node" in entry:
            node = _compile_node(entry, scene)
            scene.nodes.append(node)
            scene.keyframes.extend(node.reconcile())
            continue

        time = _compile_time(entry.get("time"))
        duration = entry.get("duration", 0.0)
        chapter = entry.get("chapter")

        if "camera" in entry:
            scene.keyframes.append(
                CameraKeyframe(
                    id=entry.get("id"),
                    time=time,
                    duration=duration,
                    pose=_compile_camera_pose(entry["camera"] or {}, space),
                    chapter=chapter,
                )
            )
            continue

        object_id = entry.get("object")
        if not object_id:
            # no entity to animate
            continue
        entity = _ensure_object(scene.objects, object_id)

        position = entry.get("position")
        rotation = entry.get("rotation")
        scene.keyframes.append(
            ModelKeyframe(
                id=entry.get("id"),
                entity=entity,
                time=time,
                duration=duration,
                opacity=entry.get("opacity"),
                scale=entry.get("scale"),
                position=_compile_position(position, space, scene.objects) if position else None,
                rotation=_compile_rotation(rotation) if rotation else None,
                properties=dict(entry.get("properties") or {}),
                chapter=chapter,
            )
        )

    return scene


def compile_from_yaml(yaml_text: str) -> CompiledScene:
    """Compile from YAML text into a `CompiledScene`."""
    data = yaml.safe_load(yaml_text) or {}
    return compile_from_dict(data)
