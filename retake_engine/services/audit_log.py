"""Append-only retake history: recording and the two read paths."""
import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from retake_engine.config import MAX_RECENT_HISTORY_LIMIT, RECENT_HISTORY_LIMIT
from retake_engine.errors import NotFoundError, RetakeValidationError
from retake_engine.models.audit import RetakeHistory
from retake_engine.models.directory import Course, Exam, Student
from retake_engine.models.domain import RetakeAssignment
from retake_engine.models.enums import HistoryAction, RetakeStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryFeedItem:
    """A history entry with enough context to render the global feed."""
    entry: RetakeHistory
    student_id: int
    student_name: str
    exam_id: int
    exam_name: str
    exam_number: Optional[int]
    course_id: int
    course_name: str


class AuditLog:
    """Writes and reads RetakeHistory. Never updates or deletes entries."""

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        assignment: RetakeAssignment,
        action_type: HistoryAction,
        *,
        previous_date: Optional[date] = None,
        new_date: Optional[date] = None,
        previous_status: Optional[RetakeStatus] = None,
        new_status: Optional[RetakeStatus] = None,
        previous_management_status: Optional[str] = None,
        new_management_status: Optional[str] = None,
        note: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> RetakeHistory:
        """
        Record one mutation of ``assignment``.

        Must be called inside the same RetakeStore.transaction() as the
        mutation itself; the entry is flushed and committed with it.
        """
        entry = RetakeHistory(
            retake=assignment,
            action_type=action_type,
            previous_date=previous_date,
            new_date=new_date,
            previous_status=previous_status,
            new_status=new_status,
            previous_management_status=previous_management_status,
            new_management_status=new_management_status,
            note=note or None,
            performed_by=performed_by,
        )
        self.db.add(entry)
        logger.debug(f"Recorded {action_type.value} for retake {assignment.id or '(new)'}")
        return entry

    def for_assignment(self, retake_id: int) -> List[RetakeHistory]:
        """All entries for one assignment in append order (oldest first)."""
        exists = self.db.query(RetakeAssignment.id).filter(RetakeAssignment.id == retake_id).first()
        if exists is None:
            raise NotFoundError(f"Retake {retake_id} not found")
        return (
            self.db.query(RetakeHistory)
            .filter(RetakeHistory.retake_id == retake_id)
            .order_by(RetakeHistory.id)
            .all()
        )

    def recent(self, limit: int = RECENT_HISTORY_LIMIT) -> List[HistoryFeedItem]:
        """The most recent entries across all assignments, newest first."""
        if limit < 1 or limit > MAX_RECENT_HISTORY_LIMIT:
            raise RetakeValidationError(
                f"limit must be between 1 and {MAX_RECENT_HISTORY_LIMIT}, got {limit}"
            )

        rows = (
            self.db.query(
                RetakeHistory,
                Student.id,
                Student.name,
                Exam.id,
                Exam.name,
                Exam.exam_number,
                Course.id,
                Course.name,
            )
            .join(RetakeAssignment, RetakeHistory.retake_id == RetakeAssignment.id)
            .join(Student, RetakeAssignment.student_id == Student.id)
            .join(Exam, RetakeAssignment.exam_id == Exam.id)
            .join(Course, Exam.course_id == Course.id)
            .order_by(RetakeHistory.created_at.desc(), RetakeHistory.id.desc())
            .limit(limit)
            .all()
        )

        return [
            HistoryFeedItem(
                entry=entry,
                student_id=student_id,
                student_name=student_name,
                exam_id=exam_id,
                exam_name=exam_name,
                exam_number=exam_number,
                course_id=course_id,
                course_name=course_name,
            )
            for entry, student_id, student_name, exam_id, exam_name, exam_number, course_id, course_name in rows
        ]
