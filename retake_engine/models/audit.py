"""
Retake history - the append-only audit trail of every assignment mutation.

Entries are written by RetakeLifecycle in the same transaction as the
mutation they describe, and replaying them in order reconstructs the
assignment's status, date and counters.
"""
from sqlalchemy import Column, Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, event
from sqlalchemy.orm import relationship

from retake_engine.database import Base
from retake_engine.errors import ImmutableHistoryError
from retake_engine.models.enums import HistoryAction, RetakeStatus
from retake_engine.models.timestamps import utcnow


class RetakeHistory(Base):
    """
    Immutable history entry for one mutation of one assignment.

    Invariants:
    - Once written, never edited
    - Deleted only together with its assignment (administrative delete)
    - Only the previous/new pair relevant to ``action_type`` is populated
    """
    __tablename__ = "retake_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    retake_id = Column(Integer, ForeignKey("retake_assignments.id"), nullable=False, index=True)
    action_type = Column(SQLEnum(HistoryAction), nullable=False, index=True)

    previous_date = Column(Date, nullable=True)
    new_date = Column(Date, nullable=True)
    previous_status = Column(SQLEnum(RetakeStatus), nullable=True)
    new_status = Column(SQLEnum(RetakeStatus), nullable=True)
    previous_management_status = Column(String, nullable=True)
    new_management_status = Column(String, nullable=True)

    note = Column(String, nullable=True)
    performed_by = Column(String, nullable=True)  # Nullable for system events
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    retake = relationship("RetakeAssignment", back_populates="history")


@event.listens_for(RetakeHistory, "before_update")
def _refuse_history_update(mapper, connection, target):
    raise ImmutableHistoryError(
        f"History entry {target.id} ({target.action_type.value}) is append-only and cannot be modified"
    )
