"""
Storage for retake assignments and the unit of work every mutation runs in.

Every mutating operation reads, validates, writes and appends history inside
``RetakeStore.transaction()``. Lost updates are prevented twice over: the row
is read ``FOR UPDATE`` where the dialect supports it, and the mapped
``version`` column makes a write against a stale version fail at flush.
"""
import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.exc import StaleDataError

from retake_engine.errors import ConflictError, NotFoundError
from retake_engine.models.directory import Exam
from retake_engine.models.domain import RetakeAssignment
from retake_engine.models.enums import RetakeStatus

logger = logging.getLogger(__name__)


class RetakeStore:
    """Loads, creates and deletes RetakeAssignment rows."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Commit on success, roll back on any error.

        StaleDataError (another writer bumped ``version`` first) and unique
        violations surface as ConflictError.
        """
        try:
            yield self.db
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            logger.warning(f"Concurrent modification detected, rolled back: {e}")
            raise ConflictError(
                "The retake was modified by someone else. Reload it and try again."
            ) from e
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity violation, rolled back: {e.orig}")
            raise ConflictError("A retake is already assigned for this student and exam.") from e
        except Exception:
            self.db.rollback()
            raise

    def _with_context(self, query):
        return query.options(
            joinedload(RetakeAssignment.student),
            joinedload(RetakeAssignment.exam).joinedload(Exam.course),
        )

    def get(self, retake_id: int) -> RetakeAssignment:
        """Return the assignment or raise NotFoundError."""
        assignment = self._with_context(
            self.db.query(RetakeAssignment).filter(RetakeAssignment.id == retake_id)
        ).first()
        if assignment is None:
            raise NotFoundError(f"Retake {retake_id} not found")
        return assignment

    def get_for_update(self, retake_id: int) -> RetakeAssignment:
        """
        Load the current row state for a mutation.

        Takes a row lock on dialects that support it (a no-op on SQLite) and
        refreshes any copy already in the identity map, so validation always
        sees the latest committed state.
        """
        assignment = (
            self.db.query(RetakeAssignment)
            .filter(RetakeAssignment.id == retake_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if assignment is None:
            raise NotFoundError(f"Retake {retake_id} not found")
        return assignment

    def existing_pairs(self, exam_id: int, student_ids: Iterable[int]) -> List[int]:
        """Student ids among ``student_ids`` that already have a retake for ``exam_id``."""
        student_ids = list(student_ids)
        if not student_ids:
            return []
        rows = (
            self.db.query(RetakeAssignment.student_id)
            .filter(
                RetakeAssignment.exam_id == exam_id,
                RetakeAssignment.student_id.in_(student_ids),
            )
            .all()
        )
        return [student_id for (student_id,) in rows]

    def add(self, assignment: RetakeAssignment) -> RetakeAssignment:
        self.db.add(assignment)
        return assignment

    def delete(self, assignment: RetakeAssignment) -> None:
        """Remove the assignment; its history goes with it via the relationship cascade."""
        self.db.delete(assignment)

    def list(
        self,
        status: Optional[RetakeStatus] = None,
        student_id: Optional[int] = None,
    ) -> List[RetakeAssignment]:
        """
        Fetch a working set, ordered by scheduled date.

        Only the coarse filters are applied here; everything else is done by
        the aggregation layer over the returned list.
        """
        query = self._with_context(self.db.query(RetakeAssignment))
        if status is not None:
            query = query.filter(RetakeAssignment.status == status)
        if student_id is not None:
            query = query.filter(RetakeAssignment.student_id == student_id)
        return query.order_by(RetakeAssignment.scheduled_date, RetakeAssignment.id).all()
