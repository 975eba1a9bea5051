"""Domain model - the retake assignment the lifecycle operates on."""
from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from retake_engine.database import Base
from retake_engine.models.enums import RetakeStatus
from retake_engine.models.timestamps import utcnow


class RetakeAssignment(Base):
    """
    One student's obligation to retake one exam: Pending ⇄ Absent → Completed.

    Invariants enforced here:
    - Status is always one of the three allowed statuses
    - One assignment per (student, exam)
    - Every UPDATE bumps ``version``; a write against a stale version raises
      StaleDataError (translated to ConflictError by the store)

    Counter monotonicity and the terminal Completed state are enforced by
    RetakeLifecycle, the only writer of these rows.
    """
    __tablename__ = "retake_assignments"
    __table_args__ = (
        UniqueConstraint("student_id", "exam_id", name="uq_retake_student_exam"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)

    status = Column(SQLEnum(RetakeStatus), nullable=False, default=RetakeStatus.PENDING, index=True)
    scheduled_date = Column(Date, nullable=True)
    postpone_count = Column(Integer, nullable=False, default=0)
    absent_count = Column(Integer, nullable=False, default=0)

    # Weak reference into the management-status catalog (no FK) plus cached name
    management_status_id = Column(Integer, nullable=True)
    management_status = Column(String, nullable=True)

    # Informational remark on the assignment itself; editable in every status
    note = Column(String, nullable=True)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    student = relationship("Student")
    exam = relationship("Exam")
    history = relationship(
        "RetakeHistory",
        back_populates="retake",
        cascade="all, delete-orphan",
        order_by="RetakeHistory.id",
    )

    def __repr__(self) -> str:
        return (
            f"<RetakeAssignment {self.id} student={self.student_id} exam={self.exam_id} "
            f"{self.status} postponed={self.postpone_count} absent={self.absent_count}>"
        )
