"""
Caller-facing retake operations.

Each mutating method is one atomic unit: the row is loaded for update, the
lifecycle validates and applies the transition, and the history entry is
appended before the single commit.
"""
import logging
from datetime import date
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from retake_engine.config import RECENT_HISTORY_LIMIT
from retake_engine.errors import ConflictError, RetakeValidationError
from retake_engine.models.audit import RetakeHistory
from retake_engine.models.domain import RetakeAssignment
from retake_engine.models.enums import RollupScope
from retake_engine.services import aggregation, catalog, replay
from retake_engine.services.aggregation import RetakeCriteria, StudentRollup
from retake_engine.services.audit_log import AuditLog, HistoryFeedItem
from retake_engine.services.lifecycle import RetakeLifecycle
from retake_engine.services.store import RetakeStore

logger = logging.getLogger(__name__)


class RetakeService:
    """Composes RetakeStore, RetakeLifecycle, AuditLog and the aggregation filter."""

    def __init__(self, db: Session):
        self.db = db
        self.store = RetakeStore(db)
        self.audit = AuditLog(db)
        self.lifecycle = RetakeLifecycle(db, store=self.store, audit=self.audit)

    # Mutations

    def assign_batch(
        self,
        exam_id: int,
        student_ids: Sequence[int],
        scheduled_date: date,
        performed_by: Optional[str] = None,
    ) -> List[RetakeAssignment]:
        """Assign one exam's retake to several students at once (all or nothing)."""
        unique_ids = list(dict.fromkeys(student_ids or []))
        if not unique_ids:
            raise RetakeValidationError("Select at least one student.")
        if scheduled_date is None:
            raise RetakeValidationError("A scheduled date is required to assign a retake.")

        exam = catalog.get_exam(self.db, exam_id)
        students = catalog.get_students(self.db, unique_ids)

        already = self.store.existing_pairs(exam.id, unique_ids)
        if already:
            self.db.rollback()
            raise ConflictError(
                f"Students already have a retake for exam {exam.id}: "
                f"{', '.join(str(sid) for sid in already)}"
            )

        return self.lifecycle.assign(exam, students, scheduled_date, performed_by=performed_by)

    def postpone(
        self,
        retake_id: int,
        new_date: date,
        note: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> RetakeAssignment:
        assignment = self._load_for_update(retake_id)
        return self.lifecycle.postpone(assignment, new_date, note=note, performed_by=performed_by)

    def mark_absent(
        self,
        retake_id: int,
        note: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> RetakeAssignment:
        assignment = self._load_for_update(retake_id)
        return self.lifecycle.mark_absent(assignment, note=note, performed_by=performed_by)

    def complete(
        self,
        retake_id: int,
        note: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> RetakeAssignment:
        assignment = self._load_for_update(retake_id)
        return self.lifecycle.complete(assignment, note=note, performed_by=performed_by)

    def edit_date(
        self,
        retake_id: int,
        new_date: date,
        performed_by: Optional[str] = None,
    ) -> RetakeAssignment:
        assignment = self._load_for_update(retake_id)
        return self.lifecycle.edit_date(assignment, new_date, performed_by=performed_by)

    def change_management_status(
        self,
        retake_id: int,
        status_name: str,
        performed_by: Optional[str] = None,
    ) -> RetakeAssignment:
        assignment = self._load_for_update(retake_id)
        try:
            status = catalog.resolve_management_status(self.db, status_name)
        except RetakeValidationError:
            self.db.rollback()
            raise
        return self.lifecycle.change_management_status(assignment, status, performed_by=performed_by)

    def edit_note(
        self,
        retake_id: int,
        note: Optional[str],
        performed_by: Optional[str] = None,
    ) -> RetakeAssignment:
        assignment = self._load_for_update(retake_id)
        return self.lifecycle.edit_note(assignment, note, performed_by=performed_by)

    def delete(self, retake_id: int, confirm: bool = False) -> None:
        if not confirm:
            # Refuse before touching the row
            raise RetakeValidationError(
                "Deleting a retake permanently discards its history; pass confirm=True to proceed."
            )
        assignment = self._load_for_update(retake_id)
        self.lifecycle.delete(assignment, confirm=confirm)

    def _load_for_update(self, retake_id: int) -> RetakeAssignment:
        try:
            return self.store.get_for_update(retake_id)
        except Exception:
            self.db.rollback()
            raise

    # Reads

    def get(self, retake_id: int) -> RetakeAssignment:
        return self.store.get(retake_id)

    def _working_set(self, criteria: RetakeCriteria):
        working = self.store.list(status=criteria.status, student_id=criteria.student_id)
        if criteria.rollup_scope == RollupScope.ALL_RECORDS:
            base = self.store.list(student_id=criteria.student_id)
        else:
            base = working
        return working, aggregation.compute_rollups(base)

    def list_filtered(self, criteria: Optional[RetakeCriteria] = None) -> List[RetakeAssignment]:
        """Fetch the working set, compute fresh rollups, then filter and order."""
        criteria = criteria or RetakeCriteria()
        working, rollups = self._working_set(criteria)
        return aggregation.apply_criteria(working, criteria, rollups)

    def at_risk_students(self, criteria: Optional[RetakeCriteria] = None) -> List[StudentRollup]:
        """Per-student rollups meeting the criteria's thresholds."""
        criteria = criteria or RetakeCriteria()
        _, rollups = self._working_set(criteria)
        return aggregation.at_risk_students(rollups, criteria)

    def history_for(self, retake_id: int) -> List[RetakeHistory]:
        return self.audit.for_assignment(retake_id)

    def recent_history(self, limit: int = RECENT_HISTORY_LIMIT) -> List[HistoryFeedItem]:
        return self.audit.recent(limit)

    def verify_history(self, retake_id: int) -> replay.VerificationResult:
        """Replay the stored history and compare it with the assignment row."""
        assignment = self.store.get(retake_id)
        result = replay.verify(assignment, self.audit.for_assignment(retake_id))
        if not result.consistent:
            logger.warning(
                f"Retake {retake_id} diverges from its history on: {', '.join(result.mismatched_fields)}"
            )
        return result
