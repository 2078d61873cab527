"""
Immutable 2D and 3D vectors.

Every operation returns a new value. Scene data frequently shares the same
vector between keyframes and markers, so no vector is ever updated in place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Union

import numpy as np

VectorInput = Union["Vector2", "Vector3", Sequence[float], Mapping[str, float], np.ndarray]


@dataclass(frozen=True)
class Vector2:
    x: float = 0.0
    y: float = 0.0

    @classmethod
    def from_input(cls, value: Any) -> "Vector2":
        """Build a vector from a `Vector2`, an `[x, y]` sequence or an `{x, y}` mapping."""
        if isinstance(value, Vector2):
            return value
        if isinstance(value, Mapping):
            return cls(float(value["x"]), float(value["y"]))
        x, y = (float(c) for c in value)
        return cls(x, y)

    def add(self, other: "Vector2") -> "Vector2":
        return Vector2(self.x + other.x, self.y + other.y)

    def sub(self, other: "Vector2") -> "Vector2":
        return Vector2(self.x - other.x, self.y - other.y)

    def scale(self, s: float) -> "Vector2":
        return Vector2(self.x * s, self.y * s)

    def lerp(self, other: "Vector2", alpha: float) -> "Vector2":
        return Vector2(
            self.x + (other.x - self.x) * alpha,
            self.y + (other.y - self.y) * alpha,
        )

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.to_array())))

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=float)

    def to_list(self) -> list:
        return [self.x, self.y]


@dataclass(frozen=True)
class Vector3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @classmethod
    def from_input(cls, value: Any) -> "Vector3":
        """Build a vector from a `Vector3`, an `[x, y, z]` sequence or an `{x, y, z}` mapping."""
        if isinstance(value, Vector3):
            return value
        if isinstance(value, Mapping):
            return cls(float(value["x"]), float(value["y"]), float(value["z"]))
        x, y, z = (float(c) for c in value)
        return cls(x, y, z)

    def add(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def sub(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def scale(self, s: float) -> "Vector3":
        return Vector3(self.x * s, self.y * s, self.z * s)

    def lerp(self, other: "Vector3", alpha: float) -> "Vector3":
        return Vector3(
            self.x + (other.x - self.x) * alpha,
            self.y + (other.y - self.y) * alpha,
            self.z + (other.z - self.z) * alpha,
        )

    def apply_quaternion(self, q) -> "Vector3":
        """Rotate this vector by the unit quaternion `q` (q * v * q^-1)."""
        x, y, z = self.x, self.y, self.z
        qx, qy, qz, qw = q.x, q.y, q.z, q.w

        # quat * vector
        ix = qw * x + qy * z - qz * y
        iy = qw * y + qz * x - qx * z
        iz = qw * z + qx * y - qy * x
        iw = -qx * x - qy * y - qz * z

        # result * inverse quat
        return Vector3(
            ix * qw + iw * -qx + iy * -qz - iz * -qy,
            iy * qw + iw * -qy + iz * -qx - ix * -qz,
            iz * qw + iw * -qz + ix * -qy - iy * -qx,
        )

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.to_array())))

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)

    def to_list(self) -> list:
        return [self.x, self.y, self.z]
