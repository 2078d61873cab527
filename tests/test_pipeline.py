"""
Integration tests for end-to-end scene reconciliation.

These tests run whole keyframe batches through the resolver, extender, sorter
and reconciler, and check scene-level queries: duration, chapters, sampling
and the exported dependency graph.
"""

import random

import numpy as np
import pytest

from anim_recon import (
    AbsolutePosition,
    AbsoluteRotation,
    AbsoluteTime,
    CameraKeyframe,
    CameraPose3D,
    CircularMarkerDependencyError,
    DiagnosticKind,
    MarkerDefinition,
    MarkerPosition,
    ModelKeyframe,
    ReconcilerConfig,
    RelativeTime,
    SPACE_2D,
    SceneObject,
    Side,
    UnresolvedEntityDependencyError,
    UnresolvedTimeDependencyError,
    Vector3,
    reconcile_scene,
    sample_scene,
)
from anim_recon.pipeline import sample_times, scene_duration


@pytest.fixture
def shelf():
    return SceneObject("shelf", {"top": MarkerDefinition(Vector3(0, 2, 0), [0, 0, 0])})


@pytest.fixture
def vase():
    return SceneObject("vase")


@pytest.fixture
def keyframes(shelf, vase):
    return [
        ModelKeyframe(
            "shelf-in", shelf, AbsoluteTime(0.0), 1.0,
            opacity=1.0, position=AbsolutePosition([4, 0, 0]), chapter="setup",
        ),
        ModelKeyframe(
            "vase-on", vase, RelativeTime(0.5, Side.END, "shelf-in"), 1.0,
            opacity=1.0, position=MarkerPosition(shelf.get_marker("top")), chapter="placement",
        ),
        CameraKeyframe(
            "cam-close", RelativeTime(0.0, Side.START, "vase-on"), 2.0,
            CameraPose3D(target=Vector3(4, 2, 0), zoom=2.0), chapter="placement",
        ),
    ]


class TestReconcileScene:
    """Test scene reconciliation and queries."""

    def test_scene_contents(self, keyframes, shelf, vase):
        """Test the scene lists its objects and sorted keyframes."""
        scene = reconcile_scene(keyframes)

        assert scene.scene_objects == (shelf, vase)
        assert [item.id for item in scene.model_keyframes] == ["shelf-in", "vase-on"]
        assert [item.id for item in scene.camera_keyframes] == ["cam-close"]
        assert not scene.diagnostics

    def test_duration(self, keyframes):
        """Test duration is the latest end time over model and camera keyframes."""
        assert reconcile_scene(keyframes).duration == pytest.approx(3.5)

    def test_empty_scene(self):
        """Test an empty batch gives an empty scene of zero length."""
        scene = reconcile_scene([])
        assert scene.duration == 0.0
        assert scene.scene_objects == ()
        assert dict(scene.state_at(1.0).entity_states) == {}

    def test_state_at(self, keyframes):
        """Test states are queried through the scene."""
        snapshot = reconcile_scene(keyframes).state_at(2.5)

        assert snapshot.time == 2.5
        assert snapshot["vase"].position.to_list() == pytest.approx([4, 2, 0])
        assert snapshot.camera.zoom == pytest.approx(1.5)

    def test_order_independence(self, keyframes):
        """Test batch order does not change reconciled states."""
        shuffled = list(keyframes)
        random.Random(3).shuffle(shuffled)
        a, b = reconcile_scene(keyframes), reconcile_scene(shuffled)
        for q in (0.0, 1.2, 2.0, 4.0):
            assert a.state_at(q).to_dict() == b.state_at(q).to_dict()

    def test_chapters(self, keyframes):
        """Test chapters are listed in order of their first keyframe."""
        assert reconcile_scene(list(reversed(keyframes))).chapters() == ["setup", "placement"]

    def test_dependency_graph(self, keyframes):
        """Test the scene exports its marker graph."""
        G = reconcile_scene(keyframes).dependency_graph().to_networkx()
        assert list(G.edges) == [("vase", "shelf")]
        assert G.edges["vase", "shelf"]["markers"] == "top"

    def test_diagnostics_collected(self, keyframes, vase):
        """Test dropped keyframes are reported on the scene."""
        bad = ModelKeyframe("bad", vase, AbsoluteTime(0.0), -2.0)
        scene = reconcile_scene(keyframes + [bad], config=ReconcilerConfig(log_diagnostics=False))
        assert scene.diagnostics.keyframe_ids(DiagnosticKind.VALIDATION) == ["bad"]
        assert len(scene.model_keyframes) == 2

    def test_unusable_targets_do_not_break_queries(self, keyframes, vase):
        """Test keyframes with unusable targets are dropped before any state query."""
        bad = [
            ModelKeyframe("text-opacity", vase, AbsoluteTime(0.0), 1.0, opacity="1"),
            ModelKeyframe("nan-opacity", vase, AbsoluteTime(0.0), 1.0, opacity=float("nan")),
            ModelKeyframe("flat", vase, AbsoluteTime(0.0), 1.0, position=AbsolutePosition([1, 2])),
        ]
        scene = reconcile_scene(keyframes + bad, config=ReconcilerConfig(log_diagnostics=False))

        assert scene.diagnostics.keyframe_ids(DiagnosticKind.VALIDATION) == ["text-opacity", "nan-opacity", "flat"]
        state = scene.state_at(0.5)["vase"]
        assert state.opacity == 0.0
        assert np.isfinite(state.position.to_array()).all()

    def test_euler_rotation_dropped_in_2d_scene(self):
        """Test a 3D rotation in a planar scene is dropped instead of failing on query."""
        card = SceneObject("card")
        kfs = [
            ModelKeyframe("card-in", card, AbsoluteTime(0.0), 1.0, opacity=1.0, rotation=AbsoluteRotation(30.0)),
            ModelKeyframe("card-tilt", card, AbsoluteTime(1.0), 1.0, rotation=AbsoluteRotation([0, 0, 90])),
        ]
        scene = reconcile_scene(kfs, SPACE_2D, ReconcilerConfig(log_diagnostics=False))

        assert scene.diagnostics.keyframe_ids(DiagnosticKind.VALIDATION) == ["card-tilt"]
        assert scene.state_at(2.0)["card"].rotation == pytest.approx(30.0)

    def test_marker_cycle_is_fatal(self):
        """Test marker cycles abort scene reconciliation."""
        a = SceneObject("a", {"m": MarkerDefinition(Vector3(), [0, 0, 0])})
        b = SceneObject("b", {"m": MarkerDefinition(Vector3(), [0, 0, 0])})
        kfs = [
            ModelKeyframe("a1", a, AbsoluteTime(0.0), 1.0, position=MarkerPosition(b.get_marker("m"))),
            ModelKeyframe("b1", b, AbsoluteTime(0.0), 1.0, position=MarkerPosition(a.get_marker("m"))),
        ]
        with pytest.raises(CircularMarkerDependencyError):
            reconcile_scene(kfs)

    def test_parent_without_keyframes_is_fatal(self, shelf, vase):
        """Test a marker parent that has no keyframes aborts reconciliation."""
        kfs = [ModelKeyframe("vase-on", vase, AbsoluteTime(0.0), 1.0, position=MarkerPosition(shelf.get_marker("top")))]
        with pytest.raises(UnresolvedEntityDependencyError):
            reconcile_scene(kfs)

    def test_long_unresolvable_chain_is_fatal(self, vase):
        """Test a long chain of references to an unknown keyframe aborts with a time error."""
        kfs = [
            ModelKeyframe(f"step-{i}", vase, RelativeTime(0.1, Side.END, f"step-{i - 1}"), 0.5)
            for i in range(1500, 0, -1)
        ]
        kfs.append(ModelKeyframe("step-0", vase, RelativeTime(0.0, Side.END, "missing"), 0.5))
        with pytest.raises(UnresolvedTimeDependencyError) as exc_info:
            reconcile_scene(kfs)
        assert exc_info.value.unresolved["step-0"] == ["missing"]

    def test_scene_duration_helper(self):
        """Test duration of an empty keyframe list."""
        assert scene_duration([]) == 0.0


class TestSampling:
    """Test sampling a scene over its whole duration."""

    def test_sample_times_include_both_ends(self):
        """Test the sampling grid covers [0, duration]."""
        times = sample_times(2.0, 2.0)
        assert isinstance(times, np.ndarray)
        assert times.tolist() == pytest.approx([0.0, 0.5, 1.0, 1.5, 2.0])

    def test_sample_times_appends_duration(self):
        """Test a duration off the frame grid is still sampled."""
        assert sample_times(1.1, 1.0).tolist() == pytest.approx([0.0, 1.0, 1.1])

    def test_sample_times_zero_duration(self):
        """Test an empty scene is sampled once."""
        assert sample_times(0.0, 30.0).tolist() == [0.0]

    def test_sample_times_rejects_bad_fps(self):
        """Test non-positive frame rates are rejected."""
        with pytest.raises(ValueError):
            sample_times(1.0, 0.0)

    def test_sample_scene(self, keyframes):
        """Test sampling returns one snapshot per frame time."""
        scene = reconcile_scene(keyframes)
        snapshots = sample_scene(scene, fps=2.0)

        assert len(snapshots) == 8
        assert snapshots[0].time == 0.0
        assert snapshots[-1].time == pytest.approx(3.5)
        assert snapshots[-1]["shelf"].opacity == pytest.approx(1.0)
