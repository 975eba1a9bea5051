"""
Per-student rollups and filtering over a working set of assignments.

Everything here is pure: no session access, no caching. Callers fetch the
working set, compute rollups from it, and filter against those rollups.
Rollups are recomputed on every call so they can never go stale across
mutations.
"""
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from retake_engine.models.domain import RetakeAssignment
from retake_engine.models.enums import RetakeStatus, RollupScope


class RetakeCriteria(BaseModel):
    """
    Filter criteria for listing retakes.

    ``status`` and ``student_id`` select the working set; the remaining
    fields narrow it. A ``min_*`` threshold of 0 is switched off.
    """
    status: Optional[RetakeStatus] = None
    student_id: Optional[int] = None

    course_id: Optional[int] = None
    exam_id: Optional[int] = None
    management_status: Optional[str] = None
    scheduled_date: Optional[date] = None
    search: Optional[str] = None
    hide_completed: bool = False

    min_incomplete_count: int = Field(0, ge=0)
    min_total_count: int = Field(0, ge=0)
    min_postpone_count: int = Field(0, ge=0)
    min_absent_count: int = Field(0, ge=0)
    min_postpone_absent_count: int = Field(0, ge=0)

    rollup_scope: RollupScope = RollupScope.WORKING_SET

    @property
    def thresholds(self) -> Dict[str, int]:
        """Active thresholds, keyed by the StudentRollup attribute they apply to."""
        pairs = {
            "incomplete_count": self.min_incomplete_count,
            "total_count": self.min_total_count,
            "postpone_count": self.min_postpone_count,
            "absent_count": self.min_absent_count,
            "postpone_absent_count": self.min_postpone_absent_count,
        }
        return {name: minimum for name, minimum in pairs.items() if minimum > 0}


@dataclass
class StudentRollup:
    student_id: int
    student_name: str
    incomplete_count: int = 0
    total_count: int = 0
    postpone_count: int = 0
    absent_count: int = 0

    @property
    def postpone_absent_count(self) -> int:
        return self.postpone_count + self.absent_count

    def meets(self, thresholds: Dict[str, int]) -> bool:
        return all(getattr(self, name) >= minimum for name, minimum in thresholds.items())


def compute_rollups(assignments: Iterable[RetakeAssignment]) -> Dict[int, StudentRollup]:
    """Sum counts per student over ``assignments``."""
    rollups: Dict[int, StudentRollup] = {}
    for a in assignments:
        rollup = rollups.get(a.student_id)
        if rollup is None:
            rollup = rollups[a.student_id] = StudentRollup(
                student_id=a.student_id,
                student_name=a.student.name,
            )
        rollup.total_count += 1
        if a.status.is_open:
            rollup.incomplete_count += 1
        rollup.postpone_count += a.postpone_count
        rollup.absent_count += a.absent_count
    return rollups


def matches(
    assignment: RetakeAssignment,
    criteria: RetakeCriteria,
    rollups: Dict[int, StudentRollup],
) -> bool:
    """True when ``assignment`` passes every predicate in ``criteria``."""
    if criteria.status is not None and assignment.status != criteria.status:
        return False
    if criteria.student_id is not None and assignment.student_id != criteria.student_id:
        return False
    if criteria.hide_completed and assignment.status == RetakeStatus.COMPLETED:
        return False
    if criteria.course_id is not None and assignment.exam.course_id != criteria.course_id:
        return False
    if criteria.exam_id is not None and assignment.exam_id != criteria.exam_id:
        return False
    if criteria.management_status is not None and assignment.management_status != criteria.management_status:
        return False
    if criteria.scheduled_date is not None and assignment.scheduled_date != criteria.scheduled_date:
        return False

    search = (criteria.search or "").strip().casefold()
    if search and search not in assignment.student.name.casefold():
        return False

    thresholds = criteria.thresholds
    if thresholds:
        rollup = rollups.get(assignment.student_id)
        if rollup is None or not rollup.meets(thresholds):
            return False
    return True


def _date_key(assignment: RetakeAssignment):
    # Undated retakes sort first
    return (assignment.scheduled_date is not None, assignment.scheduled_date or date.min)


def sort_key(criteria: RetakeCriteria):
    """Date order by default; grouped by student name when a threshold is active."""
    if criteria.thresholds:
        return lambda a: (a.student.name.casefold(), _date_key(a), a.id)
    return lambda a: (_date_key(a), a.id)


def apply_criteria(
    assignments: Iterable[RetakeAssignment],
    criteria: RetakeCriteria,
    rollups: Dict[int, StudentRollup],
) -> List[RetakeAssignment]:
    """Filter and order. Idempotent for a fixed rollup table."""
    kept = [a for a in assignments if matches(a, criteria, rollups)]
    kept.sort(key=sort_key(criteria))
    return kept


def at_risk_students(rollups: Dict[int, StudentRollup], criteria: RetakeCriteria) -> List[StudentRollup]:
    """Rollups of students meeting every active threshold, worst first."""
    thresholds = criteria.thresholds
    flagged = [r for r in rollups.values() if r.meets(thresholds)]
    flagged.sort(
        key=lambda r: (-r.incomplete_count, -r.postpone_absent_count, r.student_name.casefold(), r.student_id)
    )
    return flagged
