"""
Rotation value types: Euler angles, unit quaternions and planar angles.

All rotations in the public API are expressed in degrees. Quaternions are
immutable; `multiply` and `slerp` return new values.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping

import numpy as np

EULER_ORDERS = ("XYZ", "YXZ", "ZXY", "ZYX", "YZX", "XZY")


@dataclass(frozen=True)
class Euler:
    """
    Euler angles in degrees with an application order.

    Attributes:
        x: Rotation about the X axis, degrees
        y: Rotation about the Y axis, degrees
        z: Rotation about the Z axis, degrees
        order: Axis order the rotations are applied in
    """

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    order: str = "XYZ"

    def __post_init__(self):
        if self.order not in EULER_ORDERS:
            raise ValueError(f"Unknown Euler order {self.order!r}; expected one of {EULER_ORDERS}")

    @classmethod
    def from_input(cls, value: Any) -> "Euler":
        """Build from an `Euler`, an `[x, y, z]` sequence or an `{x, y, z, order?}` mapping."""
        if isinstance(value, Euler):
            return value
        if isinstance(value, Mapping):
            return cls(
                float(value["x"]),
                float(value["y"]),
                float(value["z"]),
                value.get("order", "XYZ"),
            )
        x, y, z = (float(c) for c in value)
        return cls(x, y, z)

    def is_finite(self) -> bool:
        return all(math.isfinite(c) for c in (self.x, self.y, self.z))


@dataclass(frozen=True)
class Quaternion:
    """Unit quaternion (x, y, z, w); the default value is the identity rotation."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0

    @classmethod
    def identity(cls) -> "Quaternion":
        return cls()

    @classmethod
    def from_euler(cls, euler: Euler) -> "Quaternion":
        """Convert Euler angles given in degrees."""
        x = math.radians(euler.x)
        y = math.radians(euler.y)
        z = math.radians(euler.z)

        c1 = math.cos(x / 2)
        c2 = math.cos(y / 2)
        c3 = math.cos(z / 2)
        s1 = math.sin(x / 2)
        s2 = math.sin(y / 2)
        s3 = math.sin(z / 2)

        order = euler.order
        if order == "XYZ":
            return cls(
                s1 * c2 * c3 + c1 * s2 * s3,
                c1 * s2 * c3 - s1 * c2 * s3,
                c1 * c2 * s3 + s1 * s2 * c3,
                c1 * c2 * c3 - s1 * s2 * s3,
            )
        if order == "YXZ":
            return cls(
                s1 * c2 * c3 + c1 * s2 * s3,
                c1 * s2 * c3 - s1 * c2 * s3,
                c1 * c2 * s3 - s1 * s2 * c3,
                c1 * c2 * c3 + s1 * s2 * s3,
            )
        if order == "ZXY":
            return cls(
                s1 * c2 * c3 - c1 * s2 * s3,
                c1 * s2 * c3 + s1 * c2 * s3,
                c1 * c2 * s3 + s1 * s2 * c3,
                c1 * c2 * c3 - s1 * s2 * s3,
            )
        if order == "ZYX":
            return cls(
                s1 * c2 * c3 - c1 * s2 * s3,
                c1 * s2 * c3 + s1 * c2 * s3,
                c1 * c2 * s3 - s1 * s2 * c3,
                c1 * c2 * c3 + s1 * s2 * s3,
            )
        if order == "YZX":
            return cls(
                s1 * c2 * c3 + c1 * s2 * s3,
                c1 * s2 * c3 + s1 * c2 * s3,
                c1 * c2 * s3 - s1 * s2 * c3,
                c1 * c2 * c3 - s1 * s2 * s3,
            )
        if order == "XZY":
            return cls(
                s1 * c2 * c3 - c1 * s2 * s3,
                c1 * s2 * c3 - s1 * c2 * s3,
                c1 * c2 * s3 + s1 * s2 * c3,
                c1 * c2 * c3 + s1 * s2 * s3,
            )
        raise ValueError(f"Unknown Euler order {order!r}")

    def multiply(self, q: "Quaternion") -> "Quaternion":
        """Hamilton product `self * q` (apply `q` first, then `self`)."""
        ax, ay, az, aw = self.x, self.y, self.z, self.w
        bx, by, bz, bw = q.x, q.y, q.z, q.w
        return Quaternion(
            ax * bw + aw * bx + ay * bz - az * by,
            ay * bw + aw * by + az * bx - ax * bz,
            az * bw + aw * bz + ax * by - ay * bx,
            aw * bw - ax * bx - ay * by - az * bz,
        )

    def slerp(self, qb: "Quaternion", t: float) -> "Quaternion":
        """
        Spherical interpolation along the shortest arc.

        `t == 0` returns `self` and `t == 1` returns `qb` exactly, so
        completed keyframes land on their target without drift.
        """
        if t == 0:
            return self
        if t == 1:
            return qb

        x, y, z, w = self.x, self.y, self.z, self.w
        cos_half_theta = w * qb.w + x * qb.x + y * qb.y + z * qb.z

        if cos_half_theta < 0:
            bx, by, bz, bw = -qb.x, -qb.y, -qb.z, -qb.w
            cos_half_theta = -cos_half_theta
        else:
            bx, by, bz, bw = qb.x, qb.y, qb.z, qb.w

        if cos_half_theta >= 1.0:
            return self

        sin_half_theta = math.sqrt(1.0 - cos_half_theta * cos_half_theta)

        if abs(sin_half_theta) < 0.001:
            return Quaternion(
                0.5 * (x + bx),
                0.5 * (y + by),
                0.5 * (z + bz),
                0.5 * (w + bw),
            )

        half_theta = math.atan2(sin_half_theta, cos_half_theta)
        ratio_a = math.sin((1 - t) * half_theta) / sin_half_theta
        ratio_b = math.sin(t * half_theta) / sin_half_theta

        return Quaternion(
            x * ratio_a + bx * ratio_b,
            y * ratio_a + by * ratio_b,
            z * ratio_a + bz * ratio_b,
            w * ratio_a + bw * ratio_b,
        )

    def angle_to(self, other: "Quaternion") -> float:
        """Angle in degrees of the rotation taking `self` onto `other`."""
        dot = abs(self.x * other.x + self.y * other.y + self.z * other.z + self.w * other.w)
        return math.degrees(2.0 * math.acos(min(1.0, dot)))

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.to_array())))

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z, self.w], dtype=float)

    def to_list(self) -> list:
        return [self.x, self.y, self.z, self.w]


def normalize_angle_degrees(angle: float) -> float:
    """Wrap an angle in degrees into `[0, 360)`."""
    normalized = math.fmod(angle, 360.0)
    if normalized < 0:
        normalized += 360.0
    return normalized


def shortest_arc_interpolation(start_angle: float, end_angle: float, t: float) -> float:
    """
    Interpolate between two angles in degrees along the shorter way round.

    Both inputs are wrapped to `[0, 360)` first and so is the result.
    """
    start_norm = normalize_angle_degrees(start_angle)
    end_norm = normalize_angle_degrees(end_angle)

    diff = end_norm - start_norm
    if diff > 180:
        diff -= 360
    elif diff < -180:
        diff += 360

    return normalize_angle_degrees(start_norm + diff * t)
