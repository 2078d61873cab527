"""
Animation Keyframe Reconciliation Package.

This package turns a flat batch of keyframes into the exact state of every
animated entity (and the camera) at any query time, including:

- Time resolution of absolute, relative and multi-anchor keyframe times
- Window extension that repairs inverted or non-finite windows
- Marker-aware dependency ordering of entities (parents before children)
- Pure, deterministic state reconciliation in 2D and 3D spaces
- Authoring nodes that expand into chained keyframes
- A YAML/dict scene compiler and snapshot diff utilities
"""

__version__ = "0.1.0"

from .config import ReconcilerConfig
from .enums import DiagnosticKind, Side
from .errors import (
    CircularMarkerDependencyError,
    CircularTimeDependencyError,
    Diagnostic,
    Diagnostics,
    DuplicateKeyframeIDError,
    KeyframeValidationError,
    MissingParentStateError,
    ReconciliationError,
    UnresolvedEntityDependencyError,
    UnresolvedTimeDependencyError,
)
from .models import (
    AbsolutePosition,
    AbsoluteRotation,
    AbsoluteTime,
    AnimationSnapshot,
    CameraKeyframe,
    CameraPose2D,
    CameraPose3D,
    EntityState,
    Marker,
    MarkerDefinition,
    MarkerPosition,
    ModelKeyframe,
    MultipleTime,
    RelativePosition,
    RelativeRotation,
    RelativeTime,
    ResolvedWindow,
    SceneObject,
    SortedKeyframes,
    TimedKeyframe,
    WorldSpaceRotation,
)
from .rotations import Euler, Quaternion
from .vectors import Vector2, Vector3
from .space import SPACE_2D, SPACE_3D, Space, space_for
from .timing import extend_windows, resolve_times
from .graph import DependencyGraph, sort_keyframes_for_markers
from .engine import reconcile_state
from .pipeline import ReconciledScene, reconcile_keyframes, reconcile_scene, sample_scene
from .nodes import (
    CameraNode,
    HideNode,
    MainNode,
    MarkerStep,
    NodeKeyframes,
    RevealNode,
    ToMarkerNode,
    UnhideNode,
    reconcile_nodes,
)
from .compiler import CompiledScene, compile_from_dict, compile_from_yaml
from .state import diff_snapshots
