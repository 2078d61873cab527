"""
Entity dependency graph and marker-aware keyframe ordering.

When an entity is placed on a marker of another entity, the child's state can
only be computed once the parent's state for the same query time is known.
This module:
- Builds the `child -> parent` entity graph from marker-positioned keyframes
- Orders entities so every parent precedes its children
- Reports cycles with a readable trace (`a → b → a`) when no order exists
- Exports the graph to NetworkX for inspection and visualization
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

import networkx as nx

from .config import ReconcilerConfig
from .errors import CircularMarkerDependencyError, UnresolvedEntityDependencyError
from .models import ModelKeyframe, SortedKeyframes, TimedKeyframe

logger = logging.getLogger(__name__)

_EXHAUSTED = object()


def find_cycles(dependencies: Mapping[str, Iterable[str]]) -> List[List[str]]:
    """
    Detect cycles in a dependency mapping using depth-first search.

    The walk keeps an explicit stack, so arbitrarily long dependency chains
    are handled without recursion.

    Args:
        dependencies: Mapping of node ID to the IDs it depends on. Nodes that
            only appear as dependencies are treated as leaves.

    Returns:
        List of cycles, each a path that starts and ends on the same node
    """
    graph = {node: list(dict.fromkeys(deps)) for node, deps in dependencies.items()}
    visited = set()
    cycles: List[List[str]] = []

    for root_id in graph:
        if root_id in visited:
            continue

        # path[i] is the node whose dependencies stack[i] walks
        path: List[str] = [root_id]
        position: Dict[str, int] = {root_id: 0}
        stack: List[Iterator[str]] = [iter(graph[root_id])]

        while stack:
            dep_id = next(stack[-1], _EXHAUSTED)
            if dep_id is _EXHAUSTED:
                stack.pop()
                done = path.pop()
                del position[done]
                visited.add(done)
                continue
            if dep_id in position:
                cycles.append(path[position[dep_id]:] + [dep_id])
                continue
            if dep_id in visited:
                continue
            position[dep_id] = len(path)
            path.append(dep_id)
            stack.append(iter(graph.get(dep_id, ())))

    return cycles


def format_cycle(cycle: Sequence[str]) -> str:
    return " → ".join(cycle)


class DependencyGraph:
    """
    Graph of entities linked by marker attachments.

    Attributes:
        keyframes: Mapping of entity ID to its model keyframes, in first-seen
            entity order
        parents: Mapping of entity ID to the entity IDs it is attached to
        markers: Mapping of `(child, parent)` to the marker names used
    """

    def __init__(self):
        """Initialize an empty graph."""
        self.keyframes: Dict[str, List[TimedKeyframe]] = {}
        self.parents: Dict[str, List[str]] = {}
        self.markers: Dict[tuple, List[str]] = {}

    @classmethod
    def from_keyframes(cls, timed: Iterable[TimedKeyframe]) -> "DependencyGraph":
        """Group model keyframes by entity and record marker attachments."""
        g = cls()
        for item in timed:
            kf = item.keyframe
            if not isinstance(kf, ModelKeyframe):
                continue
            g.add_keyframe(item)
        return g

    def add_keyframe(self, item: TimedKeyframe) -> None:
        kf = item.keyframe
        entity_id = kf.entity_id
        self.keyframes.setdefault(entity_id, []).append(item)
        self.parents.setdefault(entity_id, [])
        parent_id = kf.marker_parent_id
        if parent_id is not None:
            self.add_dependency(entity_id, parent_id, kf.position.marker.name)

    def add_dependency(self, child_id: str, parent_id: str, marker_name: Optional[str] = None) -> None:
        """Record that `child_id` is positioned on a marker of `parent_id`."""
        deps = self.parents.setdefault(child_id, [])
        if parent_id not in deps:
            deps.append(parent_id)
        names = self.markers.setdefault((child_id, parent_id), [])
        if marker_name is not None and marker_name not in names:
            names.append(marker_name)

    @property
    def entity_ids(self) -> List[str]:
        return list(self.keyframes)

    def parents_of(self, entity_id: str) -> List[str]:
        return list(self.parents.get(entity_id, []))

    def children_of(self, entity_id: str) -> List[str]:
        return [child for child, deps in self.parents.items() if entity_id in deps]

    def detect_cycles(self) -> List[List[str]]:
        """Return every marker cycle, e.g. `[a, b, a]`."""
        return find_cycles({eid: deps for eid, deps in self.parents.items() if deps})

    def topological_order(self, config: Optional[ReconcilerConfig] = None) -> List[str]:
        """
        Order entities so parents come before marker-attached children.

        Each pass emits every entity whose parents have all been emitted,
        including parents emitted earlier in the same pass.

        Raises:
            CircularMarkerDependencyError: If attachments form a loop
            UnresolvedEntityDependencyError: If some parent never becomes
                available (for example, it has no keyframes)
        """
        config = config or ReconcilerConfig()
        sorted_ids: List[str] = []
        emitted = set()
        remaining = list(self.keyframes)
        max_passes = len(remaining) + config.sorter_iteration_slack
        passes = 0

        while remaining and passes < max_passes:
            passes += 1
            emitted_this_pass: List[str] = []
            for entity_id in remaining:
                if all(parent in emitted for parent in self.parents.get(entity_id, [])):
                    emitted_this_pass.append(entity_id)
                    emitted.add(entity_id)

            if not emitted_this_pass:
                cycles = self.detect_cycles()
                if cycles:
                    for cycle in cycles:
                        logger.debug("Marker cycle detected: %s", format_cycle(cycle))
                    raise CircularMarkerDependencyError(cycles)
                raise UnresolvedEntityDependencyError(
                    {eid: self.parents_of(eid) for eid in remaining}
                )

            sorted_ids.extend(emitted_this_pass)
            remaining = [eid for eid in remaining if eid not in emitted]

        if remaining:
            raise UnresolvedEntityDependencyError({eid: self.parents_of(eid) for eid in remaining})

        return sorted_ids

    def to_networkx(self) -> "nx.DiGraph":
        """
        Convert the entity graph to a NetworkX DiGraph.

        Nodes carry `keyframe_count`; edges point from child to parent and
        carry the marker names used.
        """
        G = nx.DiGraph()
        for entity_id, items in self.keyframes.items():
            G.add_node(entity_id, keyframe_count=len(items))
        for child_id, deps in self.parents.items():
            for parent_id in deps:
                if parent_id not in G:
                    G.add_node(parent_id, keyframe_count=0)
                G.add_edge(
                    child_id,
                    parent_id,
                    markers=",".join(self.markers.get((child_id, parent_id), [])),
                )
        return G


def _by_start(items: Iterable[TimedKeyframe]) -> List[TimedKeyframe]:
    return sorted(items, key=lambda item: (item.start_time, item.order))


def sort_keyframes_for_markers(
    timed: Sequence[TimedKeyframe],
    config: Optional[ReconcilerConfig] = None,
) -> SortedKeyframes:
    """
    Order extended keyframes for the state reconciler.

    Model keyframes are grouped by entity, entities are ordered parents-first,
    and each entity's keyframes are ordered by start time (ties keep ingestion
    order). Camera keyframes have no marker dependencies and are ordered by
    start time only.

    Raises:
        CircularMarkerDependencyError: If marker attachments form a loop
        UnresolvedEntityDependencyError: If an entity's parent cannot be ordered
    """
    camera = _by_start(item for item in timed if item.is_camera)

    g = DependencyGraph.from_keyframes(timed)
    if not g.keyframes:
        return SortedKeyframes((), tuple(camera), ())

    order = g.topological_order(config)
    model: List[TimedKeyframe] = []
    for entity_id in order:
        model.extend(_by_start(g.keyframes[entity_id]))

    logger.debug("Sorted %d entities: %s", len(order), ", ".join(order))
    return SortedKeyframes(tuple(model), tuple(camera), tuple(order))
