"""
Core enumerations for the keyframe reconciliation pipeline.

This module defines the small closed vocabularies shared across the time
resolver, the dependency sorter and the state reconciler.
"""

from enum import Enum, auto


class Side(Enum):
    """
    Anchor of a relative time reference.

    A relative keyframe starts at an offset from either edge of its parent's
    resolved window:
    - START: offset from the parent's start time
    - END: offset from the parent's end time
    """

    START = "Start"
    """Offset is measured from the parent keyframe's start time."""

    END = "End"
    """Offset is measured from the parent keyframe's end time."""


class DiagnosticKind(Enum):
    """
    Non-fatal events recorded while reconciling a batch of keyframes.

    - VALIDATION: a single keyframe was malformed and has been dropped
    - TIME_WINDOW_CORRECTED: a window ending before it starts was clamped
    - INVALID_TIME_VALUE: a non-finite bound was replaced by a safe default
    """

    VALIDATION = auto()
    """Keyframe failed validation and was filtered out of the batch."""

    TIME_WINDOW_CORRECTED = auto()
    """End time was earlier than start time and has been clamped."""

    INVALID_TIME_VALUE = auto()
    """Start or end time was NaN or infinite and has been replaced."""
