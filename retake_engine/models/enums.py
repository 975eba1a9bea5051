"""Enums for the retake engine - these define the valid values for statuses and history actions."""
from enum import Enum


class RetakeStatus(str, Enum):
    """The three states a RetakeAssignment can be in. Completed is terminal."""
    PENDING = "Pending"
    ABSENT = "Absent"
    COMPLETED = "Completed"

    @property
    def is_open(self) -> bool:
        return self is not RetakeStatus.COMPLETED


class HistoryAction(str, Enum):
    """One value per kind of mutation recorded in the retake history."""
    ASSIGN = "Assign"
    POSTPONE = "Postpone"
    ABSENT = "Absent"
    COMPLETE = "Complete"
    DATE_EDIT = "DateEdit"
    MANAGEMENT_STATUS_CHANGE = "ManagementStatusChange"
    NOTE_EDIT = "NoteEdit"


class StatusColor(str, Enum):
    """Badge colors a management-status catalog entry may use."""
    SUCCESS = "success"
    WARNING = "warning"
    DANGER = "danger"
    INFO = "info"
    NEUTRAL = "neutral"


class RollupScope(str, Enum):
    """Which assignments per-student rollups are computed over."""
    WORKING_SET = "working_set"
    ALL_RECORDS = "all_records"
