"""
Rebuild an assignment's lifecycle state from its history.

The history is the source of truth: folding the entries from Assign onward
must land on exactly the status, date and counters stored on the row. A
mismatch means the row was written outside RetakeLifecycle.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional

from retake_engine.errors import ReplayError
from retake_engine.models.audit import RetakeHistory
from retake_engine.models.domain import RetakeAssignment
from retake_engine.models.enums import HistoryAction, RetakeStatus

# The only actions still recorded once an assignment is Completed
POST_COMPLETION_ACTIONS = (HistoryAction.MANAGEMENT_STATUS_CHANGE, HistoryAction.NOTE_EDIT)


@dataclass(frozen=True)
class ReplayedState:
    status: RetakeStatus
    scheduled_date: Optional[date]
    postpone_count: int
    absent_count: int

    @classmethod
    def of(cls, assignment: RetakeAssignment) -> "ReplayedState":
        return cls(
            status=assignment.status,
            scheduled_date=assignment.scheduled_date,
            postpone_count=assignment.postpone_count,
            absent_count=assignment.absent_count,
        )


@dataclass(frozen=True)
class VerificationResult:
    retake_id: int
    entry_count: int
    expected: ReplayedState
    actual: ReplayedState
    mismatched_fields: List[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.mismatched_fields


def replay(entries: Iterable[RetakeHistory]) -> ReplayedState:
    """Fold history entries (oldest first) into the state they describe."""
    entries = list(entries)
    if not entries or entries[0].action_type != HistoryAction.ASSIGN:
        raise ReplayError("History must start with an Assign entry")

    status = RetakeStatus.PENDING
    scheduled_date = entries[0].new_date
    postpone_count = 0
    absent_count = 0

    for position, entry in enumerate(entries[1:], start=1):
        action = entry.action_type
        if action == HistoryAction.ASSIGN:
            raise ReplayError(f"Unexpected second Assign entry at position {position}")
        if status == RetakeStatus.COMPLETED and action not in POST_COMPLETION_ACTIONS:
            raise ReplayError(f"{action.value} entry at position {position} follows completion")

        if action == HistoryAction.POSTPONE:
            scheduled_date = entry.new_date
            postpone_count += 1
        elif action == HistoryAction.DATE_EDIT:
            scheduled_date = entry.new_date
        elif action == HistoryAction.ABSENT:
            status = RetakeStatus.ABSENT
            absent_count += 1
        elif action == HistoryAction.COMPLETE:
            status = RetakeStatus.COMPLETED
        # ManagementStatusChange and NoteEdit do not touch lifecycle state

    return ReplayedState(
        status=status,
        scheduled_date=scheduled_date,
        postpone_count=postpone_count,
        absent_count=absent_count,
    )


def verify(assignment: RetakeAssignment, entries: Iterable[RetakeHistory]) -> VerificationResult:
    """Compare the stored row against its replayed history."""
    entries = list(entries)
    expected = replay(entries)
    actual = ReplayedState.of(assignment)
    mismatched = [
        name
        for name in ("status", "scheduled_date", "postpone_count", "absent_count")
        if getattr(expected, name) != getattr(actual, name)
    ]
    return VerificationResult(
        retake_id=assignment.id,
        entry_count=len(entries),
        expected=expected,
        actual=actual,
        mismatched_fields=mismatched,
    )
