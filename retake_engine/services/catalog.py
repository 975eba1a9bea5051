"""Read-only lookups into the student directory, exam catalog and management-status catalog."""
import logging
from typing import List, Sequence

from sqlalchemy.orm import Session, joinedload

from retake_engine.errors import NotFoundError, RetakeValidationError
from retake_engine.models.directory import Exam, ManagementStatus, Student
from retake_engine.models.enums import StatusColor

logger = logging.getLogger(__name__)

# Seeded into an empty catalog, in display order
DEFAULT_MANAGEMENT_STATUSES = [
    ("Retake notice pending", StatusColor.WARNING),
    ("Retake notice sent", StatusColor.SUCCESS),
    ("Clinic absence 1: call needed", StatusColor.DANGER),
    ("Clinic absence 1: called", StatusColor.INFO),
    ("Clinic absence 2: call needed", StatusColor.DANGER),
    ("Clinic absence 2: called", StatusColor.INFO),
    ("Head counseling needed", StatusColor.DANGER),
    ("Head counseling in progress", StatusColor.WARNING),
    ("Head counseling done", StatusColor.SUCCESS),
]


def get_exam(db: Session, exam_id: int) -> Exam:
    exam = db.query(Exam).options(joinedload(Exam.course)).filter(Exam.id == exam_id).first()
    if exam is None:
        raise NotFoundError(f"Exam {exam_id} not found")
    return exam


def get_students(db: Session, student_ids: Sequence[int]) -> List[Student]:
    """
    Resolve every id, preserving the requested order.

    Raises NotFoundError naming the missing ids if any cannot be resolved.
    """
    found = {s.id: s for s in db.query(Student).filter(Student.id.in_(list(student_ids))).all()}
    missing = [sid for sid in student_ids if sid not in found]
    if missing:
        raise NotFoundError(f"Students not found: {', '.join(str(sid) for sid in missing)}")
    return [found[sid] for sid in student_ids]


def list_management_statuses(db: Session) -> List[ManagementStatus]:
    """The catalog in display order."""
    return db.query(ManagementStatus).order_by(ManagementStatus.display_order, ManagementStatus.id).all()


def resolve_management_status(db: Session, name: str) -> ManagementStatus:
    """Look up a catalog entry by its current name; unknown names are a validation error."""
    name = (name or "").strip()
    if not name:
        raise RetakeValidationError("A management status is required.")
    status = db.query(ManagementStatus).filter(ManagementStatus.name == name).first()
    if status is None:
        raise RetakeValidationError(f"Unknown management status: {name!r}")
    return status


def seed_default_management_statuses(db: Session) -> int:
    """Populate an empty catalog with the default labels. Returns the number inserted."""
    if db.query(ManagementStatus.id).first() is not None:
        return 0
    for order, (name, color) in enumerate(DEFAULT_MANAGEMENT_STATUSES, start=1):
        db.add(ManagementStatus(name=name, color=color, display_order=order))
    db.commit()
    logger.info(f"Seeded {len(DEFAULT_MANAGEMENT_STATUSES)} default management statuses")
    return len(DEFAULT_MANAGEMENT_STATUSES)
