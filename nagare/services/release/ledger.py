"""Ordered record of the mutating steps of one release attempt.

Every step registers itself before acting, so a failure at any point leaves
an exact account of what completed and how to undo it.

State machine:
    PENDING -> IN_PROGRESS -> COMPLETED -> ROLLED_BACK
                          \\-> FAILED
    PENDING -> COMPLETED | FAILED are allowed as shortcuts.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nagare.services.release.compensation import Compensation

__all__ = [
    "LedgerSummary",
    "OperationLedger",
    "OperationState",
    "OperationType",
    "TrackedOperation",
]


class OperationType(StrEnum):
    FILE_BACKUP = "file_backup"
    FILE_UPDATE = "file_update"
    GIT_COMMIT = "git_commit"
    GIT_TAG = "git_tag"
    GIT_PUSH = "git_push"
    GITHUB_RELEASE = "github_release"


class OperationState(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


_ALLOWED: dict[OperationState, frozenset[OperationState]] = {
    OperationState.PENDING: frozenset(
        {OperationState.IN_PROGRESS, OperationState.COMPLETED, OperationState.FAILED}
    ),
    OperationState.IN_PROGRESS: frozenset({OperationState.COMPLETED, OperationState.FAILED}),
    OperationState.COMPLETED: frozenset({OperationState.ROLLED_BACK}),
    OperationState.FAILED: frozenset(),
    OperationState.ROLLED_BACK: frozenset(),
}


def _empty_metadata() -> dict[str, object]:
    return {}


@dataclass(slots=True)
class TrackedOperation:
    id: int
    type: OperationType
    description: str
    compensation: Compensation | None = None
    state: OperationState = OperationState.PENDING
    metadata: dict[str, object] = field(default_factory=_empty_metadata)
    error: str | None = None
    compensation_attempted: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class LedgerSummary:
    total: int
    by_type: Mapping[OperationType, int]
    by_state: Mapping[OperationState, int]
    by_type_and_state: Mapping[tuple[OperationType, OperationState], int]


class OperationLedger:
    """Append-only list of ``TrackedOperation``; ids follow creation order."""

    def __init__(self) -> None:
        self._operations: list[TrackedOperation] = []
        self._by_id: dict[int, TrackedOperation] = {}
        self._next_id = 1

    @property
    def operations(self) -> list[TrackedOperation]:
        return list(self._operations)

    def track_operation(
        self,
        type: OperationType,
        description: str,
        metadata: Mapping[str, object] | None = None,
        compensation: Compensation | None = None,
    ) -> int:
        op = TrackedOperation(
            id=self._next_id,
            type=type,
            description=description,
            compensation=compensation,
            metadata=dict(metadata or {}),
        )
        self._next_id += 1
        self._operations.append(op)
        self._by_id[op.id] = op
        return op.id

    def get(self, op_id: int) -> TrackedOperation:
        try:
            return self._by_id[op_id]
        except KeyError:
            raise KeyError(f"unknown operation id: {op_id}") from None

    def mark_in_progress(self, op_id: int) -> None:
        self._transition(op_id, OperationState.IN_PROGRESS)

    def mark_completed(self, op_id: int, metadata: Mapping[str, object] | None = None) -> None:
        op = self._transition(op_id, OperationState.COMPLETED)
        op.metadata.update(metadata or {})
        op.finished_at = datetime.now(UTC)

    def mark_failed(self, op_id: int, error: str) -> None:
        op = self._transition(op_id, OperationState.FAILED)
        op.error = error
        op.finished_at = datetime.now(UTC)

    def mark_rolled_back(self, op_id: int) -> None:
        self._transition(op_id, OperationState.ROLLED_BACK)

    def set_compensation(self, op_id: int, compensation: Compensation) -> None:
        """Replace the undo action of an operation that has not been compensated yet."""
        op = self.get(op_id)
        if op.compensation_attempted or op.state is OperationState.ROLLED_BACK:
            raise ValueError(f"operation {op_id} was already compensated")
        op.compensation = compensation

    def by_type(self, type: OperationType) -> list[TrackedOperation]:
        return [op for op in self._operations if op.type is type]

    def by_state(self, state: OperationState) -> list[TrackedOperation]:
        return [op for op in self._operations if op.state is state]

    def summary(self) -> LedgerSummary:
        return LedgerSummary(
            total=len(self._operations),
            by_type=Counter(op.type for op in self._operations),
            by_state=Counter(op.state for op in self._operations),
            by_type_and_state=Counter((op.type, op.state) for op in self._operations),
        )

    def _transition(self, op_id: int, new_state: OperationState) -> TrackedOperation:
        op = self.get(op_id)
        if new_state not in _ALLOWED[op.state]:
            raise ValueError(
                f"operation {op_id} cannot move from {op.state.value} to {new_state.value}"
            )
        op.state = new_state
        return op
