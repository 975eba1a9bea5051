"""Pydantic schemas for request/response validation."""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from retake_engine.models.enums import HistoryAction, RetakeStatus, StatusColor


# Reference schemas
class StudentSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    phone_number: Optional[str] = None
    school: Optional[str] = None


class CourseSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class ExamSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    exam_number: Optional[int] = None
    course: CourseSummary


class ManagementStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    color: StatusColor
    display_order: int


# Retake schemas
class RetakeAssign(BaseModel):
    exam_id: int
    student_ids: List[int] = Field(..., min_length=1)
    scheduled_date: date
    performed_by: Optional[str] = None


class RetakeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: int
    exam_id: int
    status: RetakeStatus
    scheduled_date: Optional[date]
    postpone_count: int
    absent_count: int
    management_status_id: Optional[int]
    management_status: Optional[str]
    note: Optional[str]
    created_at: datetime
    updated_at: datetime
    student: StudentSummary
    exam: ExamSummary


class RetakePostpone(BaseModel):
    new_date: date
    note: Optional[str] = Field(None, max_length=500)
    performed_by: Optional[str] = None


class RetakeNote(BaseModel):
    """Body for absent/complete; both fields optional."""
    note: Optional[str] = Field(None, max_length=500)
    performed_by: Optional[str] = None


class RetakeEditDate(BaseModel):
    new_date: date
    performed_by: Optional[str] = None


class RetakeNoteEdit(BaseModel):
    """Body for the note correction; an empty or missing note clears it."""
    note: Optional[str] = Field(None, max_length=500)
    performed_by: Optional[str] = None


class RetakeManagementStatusChange(BaseModel):
    management_status: str = Field(..., min_length=1, max_length=30)
    performed_by: Optional[str] = None


# History schemas
class HistoryEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    retake_id: int
    action_type: HistoryAction
    previous_date: Optional[date]
    new_date: Optional[date]
    previous_status: Optional[RetakeStatus]
    new_status: Optional[RetakeStatus]
    previous_management_status: Optional[str]
    new_management_status: Optional[str]
    note: Optional[str]
    performed_by: Optional[str]
    created_at: datetime


class HistoryFeedItemResponse(HistoryEntryResponse):
    """A history entry joined with the names needed by the global feed."""
    student_id: int
    student_name: str
    exam_id: int
    exam_name: str
    exam_number: Optional[int]
    course_id: int
    course_name: str


class ReplayedStateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: RetakeStatus
    scheduled_date: Optional[date]
    postpone_count: int
    absent_count: int


class HistoryVerificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    retake_id: int
    entry_count: int
    consistent: bool
    mismatched_fields: List[str]
    expected: ReplayedStateResponse
    actual: ReplayedStateResponse


# Aggregation schemas
class StudentRollupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    student_id: int
    student_name: str
    incomplete_count: int
    total_count: int
    postpone_count: int
    absent_count: int
    postpone_absent_count: int


# Error response
class ErrorResponse(BaseModel):
    """Response when an operation is refused or fails validation."""
    message: str
    current_status: Optional[RetakeStatus] = None
    action: Optional[str] = None
