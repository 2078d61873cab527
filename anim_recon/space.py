"""
Spaces: the position/rotation representation a scene is animated in.

The reconciliation pipeline is written once and parameterized over a
`Space`. A space knows how to read raw keyframe values into its own vector
and rotation types, how to compose and interpolate rotations, and how a
parent's rotation carries a marker offset into world space.

Two spaces are provided:
- `SPACE_2D`: `Vector2` positions, rotations as angles in degrees
- `SPACE_3D`: `Vector3` positions, rotations as unit `Quaternion`s built from
  Euler angles in degrees
"""

from __future__ import annotations

from typing import Any

from .models import CameraPose2D, CameraPose3D, EntityState
from .rotations import Euler, Quaternion, shortest_arc_interpolation
from .vectors import Vector2, Vector3


class Space:
    """Interface implemented by `Space2D` and `Space3D`."""

    name: str = ""
    supports_world_space: bool = False

    def vector(self, value: Any):
        raise NotImplementedError

    def zero_vector(self):
        raise NotImplementedError

    def rotation(self, value: Any):
        raise NotImplementedError

    def identity_rotation(self):
        raise NotImplementedError

    def compose(self, a, b):
        """Rotation `b` applied in the frame of `a`."""
        raise NotImplementedError

    def interpolate_rotation(self, a, b, t: float):
        raise NotImplementedError

    def marker_offset(self, parent_rotation, local_position):
        """Carry a marker's local offset into world space."""
        raise NotImplementedError

    def marker_basis(self, parent_state: EntityState):
        """The parent rotation that marker-attached children inherit."""
        raise NotImplementedError

    def default_camera(self):
        raise NotImplementedError

    def default_state(self) -> EntityState:
        return EntityState(
            opacity=0.0,
            position=self.zero_vector(),
            rotation=self.identity_rotation(),
            cumulative_rotation=self.identity_rotation(),
            scale=1.0,
        )

    def __repr__(self) -> str:
        return f"<Space {self.name}>"


class Space2D(Space):
    name = "2d"
    supports_world_space = False

    def vector(self, value: Any) -> Vector2:
        return Vector2.from_input(value)

    def zero_vector(self) -> Vector2:
        return Vector2(0.0, 0.0)

    def rotation(self, value: Any) -> float:
        return float(value)

    def identity_rotation(self) -> float:
        return 0.0

    def compose(self, a: float, b: float) -> float:
        return a + b

    def interpolate_rotation(self, a: float, b: float, t: float) -> float:
        return shortest_arc_interpolation(a, b, t)

    def marker_offset(self, parent_rotation: float, local_position: Any) -> Vector2:
        # Planar markers are offsets in world axes; the parent angle does not turn them.
        return self.vector(local_position)

    def marker_basis(self, parent_state: EntityState) -> float:
        return parent_state.rotation

    def default_camera(self) -> CameraPose2D:
        return CameraPose2D()


class Space3D(Space):
    name = "3d"
    supports_world_space = True

    def vector(self, value: Any) -> Vector3:
        return Vector3.from_input(value)

    def zero_vector(self) -> Vector3:
        return Vector3(0.0, 0.0, 0.0)

    def rotation(self, value: Any) -> Quaternion:
        if isinstance(value, Quaternion):
            return value
        return Quaternion.from_euler(Euler.from_input(value))

    def identity_rotation(self) -> Quaternion:
        return Quaternion()

    def compose(self, a: Quaternion, b: Quaternion) -> Quaternion:
        return a.multiply(b)

    def interpolate_rotation(self, a: Quaternion, b: Quaternion, t: float) -> Quaternion:
        return a.slerp(b, t)

    def marker_offset(self, parent_rotation: Quaternion, local_position: Any) -> Vector3:
        return self.vector(local_position).apply_quaternion(parent_rotation)

    def marker_basis(self, parent_state: EntityState) -> Quaternion:
        return parent_state.cumulative_rotation

    def default_camera(self) -> CameraPose3D:
        return CameraPose3D()


SPACE_2D = Space2D()
SPACE_3D = Space3D()


def space_for(name: str) -> Space:
    """Look up a space by name (`"2d"` or `"3d"`)."""
    key = str(name).lower()
    if key == SPACE_2D.name:
        return SPACE_2D
    if key == SPACE_3D.name:
        return SPACE_3D
    raise ValueError(f"Unknown space {name!r}; expected '2d' or '3d'")
