"""
State machine that enforces the retake lifecycle invariants.

This is the core enforcement mechanism - every change to a RetakeAssignment
MUST go through here, and every change writes exactly one history entry in
the same transaction.

    Pending --mark_absent--> Absent
    Pending|Absent --postpone/edit_date--> (same status, new date)
    Pending|Absent --complete--> Completed (terminal)
"""
import logging
from datetime import date
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from retake_engine.errors import InvalidTransitionError, RetakeValidationError
from retake_engine.models.directory import Exam, ManagementStatus, Student
from retake_engine.models.domain import RetakeAssignment
from retake_engine.models.enums import HistoryAction, RetakeStatus
from retake_engine.services.audit_log import AuditLog
from retake_engine.services.store import RetakeStore

logger = logging.getLogger(__name__)


class RetakeLifecycle:
    """Enforces state transition invariants and counter rules."""

    def __init__(
        self,
        db: Session,
        store: Optional[RetakeStore] = None,
        audit: Optional[AuditLog] = None,
    ):
        self.db = db
        self.store = store or RetakeStore(db)
        self.audit = audit or AuditLog(db)

    def _require_open(self, assignment: RetakeAssignment, action: HistoryAction) -> None:
        """Completed is terminal for status, date and counters."""
        if not assignment.status.is_open:
            logger.warning(f"Refused {action.value} on completed retake {assignment.id}")
            raise InvalidTransitionError(
                f"REFUSAL: Retake {assignment.id} is already completed; "
                f"{action.value} is not allowed.",
                current_status=assignment.status,
                action=action.value,
            )

    def assign(
        self,
        exam: Exam,
        students: Sequence[Student],
        scheduled_date: date,
        performed_by: Optional[str] = None,
    ) -> List[RetakeAssignment]:
        """
        Create one Pending assignment per student for ``exam``.

        Siblings share the exam and the initial date but are independent
        afterwards. The whole batch commits or none of it does; an existing
        (student, exam) pair fails it with ConflictError.
        """
        if scheduled_date is None:
            raise RetakeValidationError("A scheduled date is required to assign a retake.")
        if not students:
            raise RetakeValidationError("Select at least one student.")

        created = []
        with self.store.transaction():
            for student in students:
                assignment = self.store.add(
                    RetakeAssignment(
                        student=student,
                        exam=exam,
                        status=RetakeStatus.PENDING,
                        scheduled_date=scheduled_date,
                        postpone_count=0,
                        absent_count=0,
                    )
                )
                self.audit.append(
                    assignment,
                    HistoryAction.ASSIGN,
                    new_date=scheduled_date,
                    new_status=RetakeStatus.PENDING,
                    performed_by=performed_by,
                )
                created.append(assignment)

        logger.info(
            f"Assigned exam {exam.id} retake to {len(created)} student(s) for {scheduled_date.isoformat()}"
        )
        return created

    def postpone(
        self,
        assignment: RetakeAssignment,
        new_date: date,
        note: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> RetakeAssignment:
        """
        Penalized reschedule.

        Invariants:
        - Not allowed once Completed
        - postpone_count increases by exactly 1
        - Status is unchanged (Pending stays Pending, Absent stays Absent)
        """
        with self.store.transaction():
            self._require_open(assignment, HistoryAction.POSTPONE)
            if new_date is None:
                raise RetakeValidationError("A new date is required to postpone a retake.")

            previous_date = assignment.scheduled_date
            assignment.scheduled_date = new_date
            assignment.postpone_count += 1

            self.audit.append(
                assignment,
                HistoryAction.POSTPONE,
                previous_date=previous_date,
                new_date=new_date,
                note=note,
                performed_by=performed_by,
            )

        logger.info(
            f"Postponed retake {assignment.id} to {new_date.isoformat()} "
            f"(postpone_count={assignment.postpone_count})"
        )
        return assignment

    def mark_absent(
        self,
        assignment: RetakeAssignment,
        note: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> RetakeAssignment:
        """
        Record a no-show.

        Invariants:
        - Only reachable from Pending
        - absent_count increases by exactly 1
        - scheduled_date is unchanged (it is the date that was missed)
        """
        with self.store.transaction():
            self._require_open(assignment, HistoryAction.ABSENT)
            if assignment.status != RetakeStatus.PENDING:
                logger.warning(f"Refused Absent on retake {assignment.id} in status {assignment.status.value}")
                raise InvalidTransitionError(
                    f"REFUSAL: Retake {assignment.id} is {assignment.status.value}; "
                    "only a Pending retake can be marked absent.",
                    current_status=assignment.status,
                    action=HistoryAction.ABSENT.value,
                )

            previous_status = assignment.status
            assignment.status = RetakeStatus.ABSENT
            assignment.absent_count += 1

            self.audit.append(
                assignment,
                HistoryAction.ABSENT,
                previous_date=assignment.scheduled_date,
                previous_status=previous_status,
                new_status=RetakeStatus.ABSENT,
                note=note,
                performed_by=performed_by,
            )

        logger.info(f"Marked retake {assignment.id} absent (absent_count={assignment.absent_count})")
        return assignment

    def complete(
        self,
        assignment: RetakeAssignment,
        note: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> RetakeAssignment:
        """Terminal fulfillment; reachable from Pending and Absent."""
        with self.store.transaction():
            self._require_open(assignment, HistoryAction.COMPLETE)

            previous_status = assignment.status
            assignment.status = RetakeStatus.COMPLETED

            self.audit.append(
                assignment,
                HistoryAction.COMPLETE,
                previous_status=previous_status,
                new_status=RetakeStatus.COMPLETED,
                note=note,
                performed_by=performed_by,
            )

        logger.info(f"Completed retake {assignment.id}")
        return assignment

    def edit_date(
        self,
        assignment: RetakeAssignment,
        new_date: date,
        performed_by: Optional[str] = None,
    ) -> RetakeAssignment:
        """
        Administrative correction of the scheduled date.

        Invariants:
        - Not allowed once Completed
        - postpone_count is NOT touched - this is not a postponement
        - The new date must differ from the current one
        """
        with self.store.transaction():
            self._require_open(assignment, HistoryAction.DATE_EDIT)
            if new_date is None:
                raise RetakeValidationError("A new date is required to edit the retake date.")
            if new_date == assignment.scheduled_date:
                raise RetakeValidationError("The date was not changed.")

            previous_date = assignment.scheduled_date
            assignment.scheduled_date = new_date

            self.audit.append(
                assignment,
                HistoryAction.DATE_EDIT,
                previous_date=previous_date,
                new_date=new_date,
                performed_by=performed_by,
            )

        logger.info(f"Corrected retake {assignment.id} date to {new_date.isoformat()}")
        return assignment

    def change_management_status(
        self,
        assignment: RetakeAssignment,
        status: ManagementStatus,
        performed_by: Optional[str] = None,
    ) -> RetakeAssignment:
        """
        Set the operator-facing workflow label.

        Still permitted after completion, as is edit_note. ``status`` must be a
        catalog entry already resolved by the caller.
        """
        with self.store.transaction():
            previous = assignment.management_status
            if status.name == previous:
                raise RetakeValidationError("The management status was not changed.")
            assignment.management_status_id = status.id
            assignment.management_status = status.name

            self.audit.append(
                assignment,
                HistoryAction.MANAGEMENT_STATUS_CHANGE,
                previous_management_status=previous,
                new_management_status=status.name,
                performed_by=performed_by,
            )

        logger.info(f"Retake {assignment.id} management status: {previous!r} -> {status.name!r}")
        return assignment

    def edit_note(
        self,
        assignment: RetakeAssignment,
        note: Optional[str],
        performed_by: Optional[str] = None,
    ) -> RetakeAssignment:
        """
        Correct the informational note on the assignment.

        Allowed in every status, including Completed. Status, date and
        counters are never touched. The history entry carries the new text
        in ``note``; a blank note clears it.
        """
        note = (note or "").strip() or None
        with self.store.transaction():
            if note == assignment.note:
                raise RetakeValidationError("The note was not changed.")
            assignment.note = note

            self.audit.append(
                assignment,
                HistoryAction.NOTE_EDIT,
                note=note,
                performed_by=performed_by,
            )

        logger.info(f"Edited note on retake {assignment.id}")
        return assignment

    def delete(self, assignment: RetakeAssignment, confirm: bool = False) -> None:
        """
        Administrative, irreversible removal of an assignment and its history.

        Sits outside the append-only contract and is never replayable, so the
        caller must pass ``confirm=True`` explicitly.
        """
        if not confirm:
            raise RetakeValidationError(
                "Deleting a retake permanently discards its history; pass confirm=True to proceed."
            )

        retake_id = assignment.id
        with self.store.transaction():
            discarded = len(assignment.history)
            self.store.delete(assignment)

        logger.warning(f"Deleted retake {retake_id} and discarded {discarded} history entries")
