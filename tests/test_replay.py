"""
Tests that the history alone reproduces an assignment's lifecycle state.
"""
from datetime import date

import pytest

from retake_engine.errors import ReplayError
from retake_engine.models.audit import RetakeHistory
from retake_engine.models.domain import RetakeAssignment
from retake_engine.models.enums import HistoryAction, RetakeStatus
from retake_engine.services.replay import ReplayedState, replay


def entry(action, **fields):
    return RetakeHistory(action_type=action, **fields)


class TestReplay:
    """Folding entries into state."""

    def test_replay_matches_stored_row(self, service, management_statuses, sample_retake):
        """
        INVARIANT: Replaying the history reproduces status, date and both counters.
        """
        rid = sample_retake.id
        service.postpone(rid, date(2025, 3, 8))
        service.mark_absent(rid)
        service.edit_date(rid, date(2025, 3, 9))
        service.postpone(rid, date(2025, 3, 15))
        service.change_management_status(rid, "Clinic absence 1: called")
        service.complete(rid)

        state = replay(service.history_for(rid))

        assert state == ReplayedState.of(service.get(rid))
        assert state.status == RetakeStatus.COMPLETED
        assert state.scheduled_date == date(2025, 3, 15)
        assert state.postpone_count == 2
        assert state.absent_count == 1

    def test_date_edit_changes_date_but_not_count(self):
        state = replay([
            entry(HistoryAction.ASSIGN, new_date=date(2025, 3, 1), new_status=RetakeStatus.PENDING),
            entry(HistoryAction.DATE_EDIT, previous_date=date(2025, 3, 1), new_date=date(2025, 3, 2)),
        ])

        assert state.scheduled_date == date(2025, 3, 2)
        assert state.postpone_count == 0

    def test_management_status_change_after_completion_is_valid(self):
        state = replay([
            entry(HistoryAction.ASSIGN, new_date=date(2025, 3, 1)),
            entry(HistoryAction.COMPLETE, previous_status=RetakeStatus.PENDING, new_status=RetakeStatus.COMPLETED),
            entry(HistoryAction.MANAGEMENT_STATUS_CHANGE, new_management_status="Head counseling done"),
        ])

        assert state.status == RetakeStatus.COMPLETED

    def test_note_edit_after_completion_is_valid(self):
        state = replay([
            entry(HistoryAction.ASSIGN, new_date=date(2025, 3, 1)),
            entry(HistoryAction.POSTPONE, previous_date=date(2025, 3, 1), new_date=date(2025, 3, 8)),
            entry(HistoryAction.COMPLETE, previous_status=RetakeStatus.PENDING, new_status=RetakeStatus.COMPLETED),
            entry(HistoryAction.NOTE_EDIT, note="Scored 92"),
        ])

        assert state.status == RetakeStatus.COMPLETED
        assert state.scheduled_date == date(2025, 3, 8)
        assert state.postpone_count == 1

    def test_empty_history_is_rejected(self):
        with pytest.raises(ReplayError):
            replay([])

    def test_history_must_start_with_assign(self):
        with pytest.raises(ReplayError):
            replay([entry(HistoryAction.POSTPONE, new_date=date(2025, 3, 8))])

    def test_second_assign_is_rejected(self):
        with pytest.raises(ReplayError):
            replay([
                entry(HistoryAction.ASSIGN, new_date=date(2025, 3, 1)),
                entry(HistoryAction.ASSIGN, new_date=date(2025, 3, 2)),
            ])

    def test_lifecycle_entry_after_completion_is_rejected(self):
        with pytest.raises(ReplayError):
            replay([
                entry(HistoryAction.ASSIGN, new_date=date(2025, 3, 1)),
                entry(HistoryAction.COMPLETE, new_status=RetakeStatus.COMPLETED),
                entry(HistoryAction.POSTPONE, new_date=date(2025, 3, 8)),
            ])


class TestVerifyHistory:
    """Comparing the stored row with its replayed history."""

    def test_untouched_retake_is_consistent(self, service, sample_retake):
        service.postpone(sample_retake.id, date(2025, 3, 8))

        result = service.verify_history(sample_retake.id)

        assert result.consistent
        assert result.entry_count == 2
        assert result.mismatched_fields == []

    def test_write_outside_lifecycle_is_detected(self, db_session, service, sample_retake):
        """A bulk update that skips the lifecycle leaves the row out of step with its history."""
        rid = sample_retake.id
        service.postpone(rid, date(2025, 3, 8))

        db_session.query(RetakeAssignment).filter(RetakeAssignment.id == rid).update(
            {"postpone_count": 5}, synchronize_session=False
        )
        db_session.commit()

        result = service.verify_history(rid)

        assert not result.consistent
        assert result.mismatched_fields == ["postpone_count"]
        assert result.expected.postpone_count == 1
        assert result.actual.postpone_count == 5
