"""
Configuration objects for the reconciliation pipeline.

Exposes the numeric tolerances and iteration bounds used by the time
resolver, the dependency sorter and the state reconciler, so scenes with
unusual depth can be handled without editing core logic.
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass
class ReconcilerConfig:
    """
    Configuration for keyframe reconciliation.

    Defaults match the values the pipeline has always used, so an
    unconfigured call reproduces established scene timings exactly.
    """

    # Windows shorter than this are treated as instantaneous (progression = 1)
    epsilon: float = 1e-6

    # Upper bound on resolver passes. Each pass resolves at least one more
    # level of relative references, so this is the deepest chain of
    # keyframe-to-keyframe time dependencies that can be resolved.
    max_time_iterations: int = 100

    # Extra passes allowed to the entity sorter beyond one per entity
    sorter_iteration_slack: int = 10

    # Emit non-fatal diagnostics through the module loggers as well as
    # collecting them on the returned `Diagnostics`
    log_diagnostics: bool = True
