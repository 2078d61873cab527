"""
Tests for snapshot comparison.
"""

from anim_recon.models import AnimationSnapshot, CameraPose3D, EntityState
from anim_recon.rotations import Quaternion
from anim_recon.space import SPACE_3D
from anim_recon.state import diff_snapshots, values_differ
from anim_recon.vectors import Vector3


def snapshot(time=0.0, camera=None, **states):
    return AnimationSnapshot(time, states, camera or CameraPose3D())


def state(opacity=1.0, position=(0, 0, 0), **kwargs):
    return EntityState(
        opacity=opacity,
        position=Vector3(*position),
        rotation=kwargs.pop("rotation", Quaternion()),
        cumulative_rotation=kwargs.pop("cumulative_rotation", Quaternion()),
        **kwargs,
    )


class TestValuesDiffer:
    """Test tolerant value comparison."""

    def test_scalars(self):
        """Test scalars within tolerance compare equal."""
        assert not values_differ(1.0, 1.0 + 1e-12)
        assert values_differ(1.0, 1.1)

    def test_vectors(self):
        """Test vectors are compared component-wise."""
        assert not values_differ(Vector3(1, 2, 3), Vector3(1, 2, 3))
        assert values_differ(Vector3(1, 2, 3), Vector3(1, 2, 4))

    def test_nan(self):
        """Test NaN equals NaN but nothing else."""
        assert not values_differ(float("nan"), float("nan"))
        assert values_differ(float("nan"), 0.0)


class TestDiffSnapshots:
    """Test differences between two snapshots."""

    def test_identical_snapshots(self):
        """Test identical snapshots have no differences."""
        a = snapshot(box=state())
        b = snapshot(box=state())
        assert diff_snapshots(a, b) == {"entity_updates": {}, "removed_entities": [], "camera_updates": {}}

    def test_default_states_identical(self):
        """Test two default states do not differ."""
        a = snapshot(box=SPACE_3D.default_state())
        b = snapshot(box=SPACE_3D.default_state())
        assert diff_snapshots(a, b)["entity_updates"] == {}

    def test_moved_entity(self):
        """Test only changed fields are reported."""
        old = snapshot(box=state(position=(0, 0, 0)))
        new = snapshot(box=state(position=(1, 0, 0)))
        updates = diff_snapshots(new, old)["entity_updates"]
        assert updates == {"box": {"position": ([0, 0, 0], [1, 0, 0])}}

    def test_new_entity(self):
        """Test entities missing from the old snapshot report every field."""
        updates = diff_snapshots(snapshot(box=state()), snapshot())["entity_updates"]
        assert updates["box"]["opacity"] == (None, 1.0)
        assert set(updates["box"]) >= {"opacity", "position", "rotation", "cumulative_rotation", "scale"}

    def test_removed_entity(self):
        """Test entities only in the old snapshot are listed as removed."""
        result = diff_snapshots(snapshot(), snapshot(box=state()))
        assert result["removed_entities"] == ["box"]

    def test_property_changes(self):
        """Test named properties are compared individually."""
        old = snapshot(box=state(properties={"glow": 0.0, "tint": 1.0}))
        new = snapshot(box=state(properties={"glow": 0.5, "tint": 1.0}))
        assert diff_snapshots(new, old)["entity_updates"] == {"box": {"properties.glow": (0.0, 0.5)}}

    def test_camera_changes(self):
        """Test camera fields are compared."""
        old = snapshot(camera=CameraPose3D())
        new = snapshot(camera=CameraPose3D(zoom=2.0))
        assert diff_snapshots(new, old)["camera_updates"] == {"zoom": (1.0, 2.0)}
