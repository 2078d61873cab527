"""
Error taxonomy and diagnostics for keyframe reconciliation.

Two channels are used:
- Exceptions derived from `ReconciliationError` for graph-level
  inconsistencies. These are batch-fatal: any partial result would describe
  a scene that does not exist.
- A `Diagnostics` accumulator for local, recoverable events (dropped
  keyframes, corrected windows). It is returned alongside results so callers
  can surface the events to scene authors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence

from .enums import DiagnosticKind


class ReconciliationError(Exception):
    """Base class for every fatal reconciliation failure."""


class KeyframeValidationError(ReconciliationError, ValueError):
    """
    A single keyframe is malformed.

    Raised by the per-keyframe validator; the resolver catches it, records a
    `DiagnosticKind.VALIDATION` entry and drops the keyframe.
    """

    def __init__(self, keyframe_id: Optional[str], reason: str):
        self.keyframe_id = keyframe_id
        self.reason = reason
        super().__init__(f"Keyframe {keyframe_id!r} is invalid: {reason}")


class DuplicateKeyframeIDError(ReconciliationError):
    """Two or more keyframes in one batch share an ID."""

    def __init__(self, duplicate_ids: Sequence[str]):
        self.duplicate_ids = list(duplicate_ids)
        super().__init__(
            f"Duplicate keyframe IDs found: {', '.join(self.duplicate_ids)}. "
            "Scene definitions must use unique IDs for deterministic reconciliation."
        )


class UnresolvedTimeDependencyError(ReconciliationError):
    """
    Some keyframes reference parents that never resolve.

    Attributes:
        unresolved: Mapping of keyframe ID to the parent IDs it is still
            waiting on
    """

    def __init__(self, unresolved: Dict[str, List[str]], message: Optional[str] = None):
        self.unresolved = dict(unresolved)
        details = ", ".join(
            f"{kf_id} (depends on: {', '.join(parents)})"
            for kf_id, parents in self.unresolved.items()
        )
        super().__init__(
            message
            or (
                f"Keyframe time reconciliation failed with {len(self.unresolved)} "
                "unresolved keyframes. All time dependencies must be resolvable.\n"
                f"Unresolved keyframes: {details}"
            )
        )

    @property
    def keyframe_ids(self) -> List[str]:
        return list(self.unresolved)


class CircularTimeDependencyError(UnresolvedTimeDependencyError):
    """Unresolved keyframes form at least one time-reference cycle."""

    def __init__(self, unresolved: Dict[str, List[str]], cycles: Sequence[Sequence[str]]):
        self.cycles = [list(c) for c in cycles]
        traces = "\n".join(
            f"  Cycle {i + 1}: {' → '.join(c)}" for i, c in enumerate(self.cycles)
        )
        super().__init__(
            unresolved,
            "Circular time dependencies detected between keyframes.\n\n"
            f"DETECTED CYCLES:\n{traces}",
        )


class CircularMarkerDependencyError(ReconciliationError):
    """Entities are attached to each other's markers in a loop."""

    def __init__(self, cycles: Sequence[Sequence[str]]):
        self.cycles = [list(c) for c in cycles]
        traces = "\n".join(
            f"  Cycle {i + 1}: {' → '.join(c)}" for i, c in enumerate(self.cycles)
        )
        super().__init__(
            "Circular marker dependencies detected between entities.\n\n"
            f"DETECTED CYCLES:\n{traces}"
        )

    @property
    def entity_ids(self) -> List[str]:
        seen: List[str] = []
        for cycle in self.cycles:
            for entity_id in cycle:
                if entity_id not in seen:
                    seen.append(entity_id)
        return seen


class UnresolvedEntityDependencyError(ReconciliationError):
    """Entities could not be ordered although no cycle was found."""

    def __init__(self, remaining: Dict[str, List[str]]):
        self.remaining = dict(remaining)
        lines = []
        for entity_id, parents in self.remaining.items():
            if parents:
                lines.append(f"  - {entity_id} (depends on: {', '.join(parents)})")
            else:
                lines.append(f"  - {entity_id}")
        super().__init__(
            "Failed to sort model keyframes due to unresolved dependencies.\n\n"
            "UNSORTED OBJECTS:\n" + "\n".join(lines)
        )


class MissingParentStateError(ReconciliationError):
    """A marker references an entity that has no computed state."""

    def __init__(self, keyframe_id: str, entity_id: str, parent_id: str):
        self.keyframe_id = keyframe_id
        self.entity_id = entity_id
        self.parent_id = parent_id
        super().__init__(
            f"Parent entity {parent_id!r} has no state for marker positioning of "
            f"{entity_id!r} (keyframe {keyframe_id!r}). Parent entities must have "
            "keyframes and be processed before children that depend on them."
        )


@dataclass(frozen=True)
class Diagnostic:
    """
    One recoverable event recorded during reconciliation.

    Attributes:
        kind: Category of the event
        keyframe_id: ID of the keyframe involved, when known
        message: Human-readable description for scene authors
    """

    kind: DiagnosticKind
    keyframe_id: Optional[str]
    message: str


@dataclass
class Diagnostics:
    """
    Accumulator for non-fatal events, returned alongside pipeline results.

    Stages append to the same instance as a batch moves through the pipeline.
    When a logger is supplied to `add`, the event is also logged at WARNING.
    """

    entries: List[Diagnostic] = field(default_factory=list)

    def add(
        self,
        kind: DiagnosticKind,
        keyframe_id: Optional[str],
        message: str,
        logger: Optional[logging.Logger] = None,
    ) -> Diagnostic:
        diagnostic = Diagnostic(kind, keyframe_id, message)
        self.entries.append(diagnostic)
        if logger is not None:
            logger.warning("%s: %s", kind.name, message)
        return diagnostic

    def of_kind(self, kind: DiagnosticKind) -> List[Diagnostic]:
        return [d for d in self.entries if d.kind == kind]

    def keyframe_ids(self, kind: Optional[DiagnosticKind] = None) -> List[Optional[str]]:
        return [d.keyframe_id for d in self.entries if kind is None or d.kind == kind]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)
