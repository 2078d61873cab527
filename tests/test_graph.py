"""
Unit tests for the entity dependency graph and marker-aware sorting.

This module tests cycle detection, parent-before-child ordering, keyframe
ordering within an entity, failure reporting and the NetworkX export.
"""

import pytest

from anim_recon.config import ReconcilerConfig
from anim_recon.errors import CircularMarkerDependencyError, UnresolvedEntityDependencyError
from anim_recon.graph import DependencyGraph, find_cycles, format_cycle, sort_keyframes_for_markers
from anim_recon.models import (
    AbsoluteTime,
    CameraKeyframe,
    CameraPose3D,
    MarkerDefinition,
    MarkerPosition,
    ModelKeyframe,
    ResolvedWindow,
    SceneObject,
    TimedKeyframe,
)
from anim_recon.vectors import Vector3


def make_object(object_id, *marker_names):
    return SceneObject(
        object_id,
        {name: MarkerDefinition(Vector3(0, 1, 0), [0, 0, 0]) for name in marker_names},
    )


def timed(kf_id, entity, start, duration=1.0, order=0, on=None):
    """Build an already-resolved model keyframe, optionally placed on marker `on`."""
    position = MarkerPosition(on) if on is not None else None
    kf = ModelKeyframe(kf_id, entity, AbsoluteTime(start), duration, position=position)
    window = ResolvedWindow(start, start + duration)
    return TimedKeyframe(kf, window, window, order)


def timed_camera(kf_id, start, order=0):
    kf = CameraKeyframe(kf_id, AbsoluteTime(start), 1.0, CameraPose3D())
    window = ResolvedWindow(start, start + 1.0)
    return TimedKeyframe(kf, window, window, order)


class TestFindCycles:
    """Test depth-first cycle detection."""

    def test_no_cycles(self):
        """Test acyclic mappings report nothing."""
        assert find_cycles({"a": ["b"], "b": ["c"], "c": []}) == []

    def test_two_node_cycle(self):
        """Test a two-node loop is reported as a closed path."""
        assert find_cycles({"a": ["b"], "b": ["a"]}) == [["a", "b", "a"]]

    def test_self_loop(self):
        """Test a node depending on itself."""
        assert find_cycles({"a": ["a"]}) == [["a", "a"]]

    def test_dependency_only_nodes_are_leaves(self):
        """Test IDs that only appear as dependencies do not break the search."""
        assert find_cycles({"a": ["missing"]}) == []

    def test_cycle_behind_a_tail(self):
        """Test a cycle reached through a non-cyclic prefix is trimmed to the loop."""
        cycles = find_cycles({"x": ["a"], "a": ["b"], "b": ["c"], "c": ["a"]})
        assert cycles == [["a", "b", "c", "a"]]

    def test_long_chain_has_no_cycles(self):
        """Test a chain far deeper than the interpreter stack is walked in full."""
        chain = {f"n{i}": [f"n{i + 1}"] for i in range(5000)}
        chain["n5000"] = ["missing"]
        assert find_cycles(chain) == []

    def test_long_cycle_is_traced_in_order(self):
        """Test a very long loop is reported as a single closed path."""
        loop = {f"n{i}": [f"n{(i + 1) % 3000}"] for i in range(3000)}
        cycles = find_cycles(loop)
        assert len(cycles) == 1
        assert cycles[0] == [f"n{i}" for i in range(3000)] + ["n0"]

    def test_format_cycle(self):
        """Test cycle traces use arrows."""
        assert format_cycle(["a", "b", "a"]) == "a → b → a"


class TestDependencyGraph:
    """Test graph construction from keyframes."""

    def test_from_keyframes_groups_by_entity(self):
        """Test keyframes are grouped per entity in first-seen order."""
        table, lamp = make_object("table", "top"), make_object("lamp")
        items = [
            timed("t1", table, 0.0),
            timed("l1", lamp, 1.0, on=table.get_marker("top")),
            timed("t2", table, 2.0),
        ]
        g = DependencyGraph.from_keyframes(items)

        assert g.entity_ids == ["table", "lamp"]
        assert [item.id for item in g.keyframes["table"]] == ["t1", "t2"]
        assert g.parents_of("lamp") == ["table"]
        assert g.parents_of("table") == []
        assert g.children_of("table") == ["lamp"]
        assert g.markers[("lamp", "table")] == ["top"]

    def test_camera_keyframes_ignored(self):
        """Test camera keyframes never enter the entity graph."""
        g = DependencyGraph.from_keyframes([timed_camera("c", 0.0)])
        assert g.entity_ids == []

    def test_add_dependency_deduplicates(self):
        """Test repeated attachments are recorded once."""
        g = DependencyGraph()
        g.add_dependency("child", "parent", "a")
        g.add_dependency("child", "parent", "a")
        g.add_dependency("child", "parent", "b")
        assert g.parents_of("child") == ["parent"]
        assert g.markers[("child", "parent")] == ["a", "b"]

    def test_to_networkx(self):
        """Test NetworkX export carries keyframe counts and marker names."""
        table, lamp = make_object("table", "top"), make_object("lamp")
        items = [
            timed("t1", table, 0.0),
            timed("t2", table, 1.0),
            timed("l1", lamp, 1.0, on=table.get_marker("top")),
        ]
        G = DependencyGraph.from_keyframes(items).to_networkx()

        assert set(G.nodes) == {"table", "lamp"}
        assert G.nodes["table"]["keyframe_count"] == 2
        assert list(G.edges) == [("lamp", "table")]
        assert G.edges["lamp", "table"]["markers"] == "top"

    def test_to_networkx_adds_parents_without_keyframes(self):
        """Test parents that have no keyframes still appear as nodes."""
        ghost, lamp = make_object("ghost", "hook"), make_object("lamp")
        G = DependencyGraph.from_keyframes([timed("l1", lamp, 0.0, on=ghost.get_marker("hook"))]).to_networkx()
        assert G.nodes["ghost"]["keyframe_count"] == 0


class TestTopologicalOrder:
    """Test parent-before-child entity ordering."""

    def test_parent_before_child_regardless_of_input_order(self):
        """Test children listed first are still emitted after their parents."""
        table, lamp, bulb = make_object("table", "top"), make_object("lamp", "socket"), make_object("bulb")
        items = [
            timed("b1", bulb, 0.0, on=lamp.get_marker("socket")),
            timed("l1", lamp, 0.0, on=table.get_marker("top")),
            timed("t1", table, 0.0),
        ]
        order = DependencyGraph.from_keyframes(items).topological_order()
        assert order == ["table", "lamp", "bulb"]

    def test_independent_entities_keep_first_seen_order(self):
        """Test unrelated entities are emitted in first-seen order."""
        items = [timed("b", make_object("b"), 0.0), timed("a", make_object("a"), 0.0)]
        assert DependencyGraph.from_keyframes(items).topological_order() == ["b", "a"]

    def test_marker_cycle(self):
        """Test entities attached to each other raise a marker cycle error."""
        a, b = make_object("a", "m"), make_object("b", "m")
        items = [timed("a1", a, 0.0, on=b.get_marker("m")), timed("b1", b, 0.0, on=a.get_marker("m"))]

        with pytest.raises(CircularMarkerDependencyError) as exc_info:
            DependencyGraph.from_keyframes(items).topological_order()
        assert set(exc_info.value.entity_ids) == {"a", "b"}
        assert "a → b → a" in str(exc_info.value)

    def test_self_attachment(self):
        """Test an entity placed on its own marker is a cycle."""
        a = make_object("a", "m")
        with pytest.raises(CircularMarkerDependencyError):
            DependencyGraph.from_keyframes([timed("a1", a, 0.0, on=a.get_marker("m"))]).topological_order()

    def test_parent_without_keyframes(self):
        """Test a marker parent that never appears cannot be ordered."""
        ghost, lamp = make_object("ghost", "hook"), make_object("lamp")
        items = [timed("l1", lamp, 0.0, on=ghost.get_marker("hook"))]

        with pytest.raises(UnresolvedEntityDependencyError) as exc_info:
            DependencyGraph.from_keyframes(items).topological_order()
        assert exc_info.value.remaining == {"lamp": ["ghost"]}

    def test_chain_longer_than_slack(self):
        """Test long attachment chains sort within the pass budget."""
        objects = [make_object(f"e{i}", "m") for i in range(30)]
        items = [timed("k0", objects[0], 0.0)]
        items += [
            timed(f"k{i}", objects[i], 0.0, on=objects[i - 1].get_marker("m"))
            for i in range(29, 0, -1)
        ]
        order = DependencyGraph.from_keyframes(items).topological_order(ReconcilerConfig(sorter_iteration_slack=0))
        assert order == [f"e{i}" for i in range(30)]


class TestSortKeyframesForMarkers:
    """Test the full sorter output."""

    def test_entity_keyframes_sorted_by_start(self):
        """Test each entity's keyframes are in start-time order."""
        box = make_object("box")
        items = [timed("late", box, 5.0, order=0), timed("early", box, 1.0, order=1)]
        result = sort_keyframes_for_markers(items)
        assert [item.id for item in result.model_keyframes] == ["early", "late"]

    def test_ties_keep_ingestion_order(self):
        """Test equal start times keep their input order."""
        box = make_object("box")
        items = [timed("second", box, 1.0, order=1), timed("first", box, 1.0, order=0)]
        result = sort_keyframes_for_markers(items)
        assert [item.id for item in result.model_keyframes] == ["first", "second"]

    def test_parent_keyframes_precede_child_keyframes(self):
        """Test every parent keyframe comes before any child keyframe."""
        table, lamp = make_object("table", "top"), make_object("lamp")
        items = [
            timed("l1", lamp, 0.0, order=0, on=table.get_marker("top")),
            timed("t1", table, 3.0, order=1),
            timed("t2", table, 1.0, order=2),
        ]
        result = sort_keyframes_for_markers(items)
        assert [item.id for item in result.model_keyframes] == ["t2", "t1", "l1"]
        assert result.entity_order == ("table", "lamp")

    def test_camera_keyframes_sorted_separately(self):
        """Test camera keyframes are split out and ordered by start."""
        items = [timed_camera("c2", 2.0, order=0), timed("m", make_object("box"), 0.0), timed_camera("c1", 1.0, order=2)]
        result = sort_keyframes_for_markers(items)
        assert [item.id for item in result.camera_keyframes] == ["c1", "c2"]
        assert [item.id for item in result.model_keyframes] == ["m"]

    def test_camera_only_batch(self):
        """Test a batch without model keyframes."""
        result = sort_keyframes_for_markers([timed_camera("c", 0.0)])
        assert result.model_keyframes == ()
        assert result.entity_order == ()
