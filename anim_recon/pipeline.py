"""
End-to-end reconciliation of a keyframe batch.

`reconcile_scene` chains the pipeline stages once per scene:

1. Time Resolver: absolute windows from relative time references
2. Time Extender: safe, non-inverted windows
3. Dependency Sorter: parents before marker-attached children

The resulting `ReconciledScene` can then be queried at any time with
`state_at`, which runs the state reconciler. Sampling a whole timeline is a
matter of querying at a grid of times (`sample_scene`); driving playback from
a clock is left to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .config import ReconcilerConfig
from .errors import Diagnostics
from .graph import DependencyGraph, sort_keyframes_for_markers
from .models import AnimationSnapshot, Keyframe, SceneObject, SortedKeyframes, TimedKeyframe
from .space import SPACE_3D, Space
from .engine import reconcile_state
from .timing import extend_windows, resolve_times

logger = logging.getLogger(__name__)


def reconcile_keyframes(
    keyframes: Sequence[Keyframe],
    space: Space = SPACE_3D,
    config: Optional[ReconcilerConfig] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> SortedKeyframes:
    """Resolve, extend and sort a keyframe batch for the state reconciler."""
    config = config or ReconcilerConfig()
    if diagnostics is None:
        diagnostics = Diagnostics()

    resolved = resolve_times(keyframes, config, diagnostics, space)
    extended = extend_windows(resolved, config, diagnostics)
    return sort_keyframes_for_markers(extended, config)


def scene_duration(timed: Sequence[TimedKeyframe]) -> float:
    """Latest reconciled end time over all keyframes, or 0 for an empty scene."""
    duration = 0.0
    for item in timed:
        if item.reconciled.end_time > duration:
            duration = item.reconciled.end_time
    return duration


@dataclass(frozen=True)
class ReconciledScene:
    """
    A keyframe batch ready to be queried at any time.

    Attributes:
        keyframes: Sorted model and camera keyframes
        scene_objects: Every entity referenced by a model keyframe
        duration: Length of the scene in seconds
        space: Position/rotation representation of the scene
        diagnostics: Non-fatal events recorded while reconciling
        config: Configuration used for reconciliation and queries
    """

    keyframes: SortedKeyframes
    scene_objects: Tuple[SceneObject, ...]
    duration: float
    space: Space = SPACE_3D
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    config: ReconcilerConfig = field(default_factory=ReconcilerConfig)

    @property
    def model_keyframes(self) -> Tuple[TimedKeyframe, ...]:
        return self.keyframes.model_keyframes

    @property
    def camera_keyframes(self) -> Tuple[TimedKeyframe, ...]:
        return self.keyframes.camera_keyframes

    def state_at(self, query_time: float) -> AnimationSnapshot:
        return reconcile_state(self.keyframes, query_time, self.space, self.config)

    def chapters(self) -> List[str]:
        """Chapter labels in order of their earliest keyframe start."""
        first_start = {}
        for item in self.model_keyframes + self.camera_keyframes:
            chapter = item.keyframe.chapter
            if chapter is None:
                continue
            if chapter not in first_start or item.start_time < first_start[chapter]:
                first_start[chapter] = item.start_time
        return sorted(first_start, key=lambda c: first_start[c])

    def dependency_graph(self) -> DependencyGraph:
        return DependencyGraph.from_keyframes(self.model_keyframes)


def reconcile_scene(
    keyframes: Sequence[Keyframe],
    space: Space = SPACE_3D,
    config: Optional[ReconcilerConfig] = None,
) -> ReconciledScene:
    """
    Reconcile a keyframe batch and compute its duration.

    Raises:
        DuplicateKeyframeIDError: If keyframe IDs are not unique
        UnresolvedTimeDependencyError: If time references cannot be resolved
        CircularMarkerDependencyError: If marker attachments form a loop
        UnresolvedEntityDependencyError: If a marker parent cannot be ordered
    """
    config = config or ReconcilerConfig()
    diagnostics = Diagnostics()
    ordered = reconcile_keyframes(keyframes, space, config, diagnostics)

    scene_objects = []
    for item in ordered.model_keyframes:
        entity = item.keyframe.entity
        if entity not in scene_objects:
            scene_objects.append(entity)

    duration = scene_duration(ordered.model_keyframes + ordered.camera_keyframes)
    logger.debug(
        "Reconciled scene: %d model keyframes, %d camera keyframes, duration %.3fs, %d diagnostics",
        len(ordered.model_keyframes),
        len(ordered.camera_keyframes),
        duration,
        len(diagnostics),
    )
    return ReconciledScene(ordered, tuple(scene_objects), duration, space, diagnostics, config)


def sample_times(duration: float, fps: float) -> np.ndarray:
    """Evenly spaced query times covering `[0, duration]` at `fps`, both ends included."""
    if fps <= 0:
        raise ValueError(f"fps must be positive, got {fps}")
    frames = int(np.floor(duration * fps + 1e-9)) + 1
    times = np.arange(frames, dtype=float) / fps
    if times[-1] < duration:
        times = np.append(times, duration)
    return times


def sample_scene(scene: ReconciledScene, fps: float = 30.0) -> List[AnimationSnapshot]:
    """Snapshots of `scene` at every frame time from 0 to its duration."""
    return [scene.state_at(float(t)) for t in sample_times(scene.duration, fps)]
