"""API routes for the retake lifecycle."""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from retake_engine.api.schemas import (
    ErrorResponse,
    HistoryEntryResponse,
    HistoryFeedItemResponse,
    HistoryVerificationResponse,
    ManagementStatusResponse,
    RetakeAssign,
    RetakeEditDate,
    RetakeManagementStatusChange,
    RetakeNote,
    RetakeNoteEdit,
    RetakePostpone,
    RetakeResponse,
    StudentRollupResponse,
)
from retake_engine.config import MAX_RECENT_HISTORY_LIMIT, RECENT_HISTORY_LIMIT
from retake_engine.database import get_db
from retake_engine.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ReplayError,
    RetakeError,
    RetakeValidationError,
)
from retake_engine.models.enums import RetakeStatus, RollupScope
from retake_engine.services import catalog
from retake_engine.services.aggregation import RetakeCriteria
from retake_engine.services.facade import RetakeService

router = APIRouter()

REFUSAL_RESPONSES = {
    404: {"model": ErrorResponse, "description": "Retake not found"},
    409: {"model": ErrorResponse, "description": "Refused transition or concurrent modification"},
    422: {"model": ErrorResponse, "description": "Validation failed"},
}


def _http_error(e: RetakeError) -> HTTPException:
    """Map an engine error onto an HTTP status, keeping its details in the body."""
    detail = {"message": e.message}
    if isinstance(e, NotFoundError):
        code = 404
    elif isinstance(e, InvalidTransitionError):
        code = 409
        detail["current_status"] = e.current_status.value if e.current_status else None
        detail["action"] = e.action
    elif isinstance(e, (ConflictError, ReplayError)):
        code = 409
    elif isinstance(e, RetakeValidationError):
        code = 422
    else:
        code = 400
    return HTTPException(status_code=code, detail=detail)


def get_service(db: Session = Depends(get_db)) -> RetakeService:
    return RetakeService(db)


def retake_criteria(
    status_filter: Optional[RetakeStatus] = Query(None, alias="status"),
    student_id: Optional[int] = None,
    course_id: Optional[int] = None,
    exam_id: Optional[int] = None,
    management_status: Optional[str] = None,
    scheduled_date: Optional[date] = None,
    search: Optional[str] = None,
    hide_completed: bool = False,
    min_incomplete_count: int = Query(0, ge=0),
    min_total_count: int = Query(0, ge=0),
    min_postpone_count: int = Query(0, ge=0),
    min_absent_count: int = Query(0, ge=0),
    min_postpone_absent_count: int = Query(0, ge=0),
    rollup_scope: RollupScope = RollupScope.WORKING_SET,
) -> RetakeCriteria:
    """Build filter criteria from query parameters."""
    return RetakeCriteria(
        status=status_filter,
        student_id=student_id,
        course_id=course_id,
        exam_id=exam_id,
        management_status=management_status,
        scheduled_date=scheduled_date,
        search=search,
        hide_completed=hide_completed,
        min_incomplete_count=min_incomplete_count,
        min_total_count=min_total_count,
        min_postpone_count=min_postpone_count,
        min_absent_count=min_absent_count,
        min_postpone_absent_count=min_postpone_absent_count,
        rollup_scope=rollup_scope,
    )


# Assignment endpoints
@router.post("/retakes", response_model=List[RetakeResponse], status_code=status.HTTP_201_CREATED, responses=REFUSAL_RESPONSES)
def assign_retakes(assign_data: RetakeAssign, service: RetakeService = Depends(get_service)):
    """Assign one exam's retake to a batch of students, all sharing the initial date."""
    try:
        return service.assign_batch(
            exam_id=assign_data.exam_id,
            student_ids=assign_data.student_ids,
            scheduled_date=assign_data.scheduled_date,
            performed_by=assign_data.performed_by,
        )
    except RetakeError as e:
        raise _http_error(e)


@router.get("/retakes", response_model=List[RetakeResponse])
def list_retakes(
    criteria: RetakeCriteria = Depends(retake_criteria),
    service: RetakeService = Depends(get_service),
):
    """
    List retakes matching the filter criteria.

    Threshold filters (min_*) use per-student rollups recomputed from the
    working set on every request.
    """
    return service.list_filtered(criteria)


@router.get("/retakes/at-risk", response_model=List[StudentRollupResponse])
def list_at_risk_students(
    criteria: RetakeCriteria = Depends(retake_criteria),
    service: RetakeService = Depends(get_service),
):
    """Per-student rollups for students meeting every threshold, worst first."""
    return [StudentRollupResponse.model_validate(r) for r in service.at_risk_students(criteria)]


@router.get("/retakes/history", response_model=List[HistoryFeedItemResponse])
def recent_history(
    limit: int = Query(RECENT_HISTORY_LIMIT, ge=1, le=MAX_RECENT_HISTORY_LIMIT),
    service: RetakeService = Depends(get_service),
):
    """Most recent history entries across every retake, newest first."""
    try:
        items = service.recent_history(limit)
    except RetakeError as e:
        raise _http_error(e)

    return [
        HistoryFeedItemResponse(
            **HistoryEntryResponse.model_validate(item.entry).model_dump(),
            student_id=item.student_id,
            student_name=item.student_name,
            exam_id=item.exam_id,
            exam_name=item.exam_name,
            exam_number=item.exam_number,
            course_id=item.course_id,
            course_name=item.course_name,
        )
        for item in items
    ]


@router.get("/retakes/{retake_id}", response_model=RetakeResponse, responses=REFUSAL_RESPONSES)
def get_retake(retake_id: int, service: RetakeService = Depends(get_service)):
    try:
        return service.get(retake_id)
    except RetakeError as e:
        raise _http_error(e)


# Lifecycle endpoints
@router.patch("/retakes/{retake_id}/postpone", response_model=RetakeResponse, responses=REFUSAL_RESPONSES)
def postpone_retake(retake_id: int, postpone_data: RetakePostpone, service: RetakeService = Depends(get_service)):
    """
    Postpone a retake to a new date.
    Side effect: increments postpone_count - use edit-date for corrections.
    """
    try:
        service.postpone(
            retake_id,
            postpone_data.new_date,
            note=postpone_data.note,
            performed_by=postpone_data.performed_by,
        )
        return service.get(retake_id)
    except RetakeError as e:
        raise _http_error(e)


@router.patch("/retakes/{retake_id}/absent", response_model=RetakeResponse, responses=REFUSAL_RESPONSES)
def mark_retake_absent(
    retake_id: int,
    note_data: Optional[RetakeNote] = None,
    service: RetakeService = Depends(get_service),
):
    """Mark a Pending retake as missed. WILL REFUSE unless the retake is Pending."""
    note_data = note_data or RetakeNote()
    try:
        service.mark_absent(retake_id, note=note_data.note, performed_by=note_data.performed_by)
        return service.get(retake_id)
    except RetakeError as e:
        raise _http_error(e)


@router.patch("/retakes/{retake_id}/complete", response_model=RetakeResponse, responses=REFUSAL_RESPONSES)
def complete_retake(
    retake_id: int,
    note_data: Optional[RetakeNote] = None,
    service: RetakeService = Depends(get_service),
):
    """Mark a retake as completed. Completed is terminal."""
    note_data = note_data or RetakeNote()
    try:
        service.complete(retake_id, note=note_data.note, performed_by=note_data.performed_by)
        return service.get(retake_id)
    except RetakeError as e:
        raise _http_error(e)


@router.patch("/retakes/{retake_id}/edit-date", response_model=RetakeResponse, responses=REFUSAL_RESPONSES)
def edit_retake_date(retake_id: int, edit_data: RetakeEditDate, service: RetakeService = Depends(get_service)):
    """Correct a mistyped date. Does NOT count as a postponement."""
    try:
        service.edit_date(retake_id, edit_data.new_date, performed_by=edit_data.performed_by)
        return service.get(retake_id)
    except RetakeError as e:
        raise _http_error(e)


@router.patch("/retakes/{retake_id}/management-status", response_model=RetakeResponse, responses=REFUSAL_RESPONSES)
def change_retake_management_status(
    retake_id: int,
    status_data: RetakeManagementStatusChange,
    service: RetakeService = Depends(get_service),
):
    """Change the workflow label. Allowed in every status, including Completed."""
    try:
        service.change_management_status(
            retake_id,
            status_data.management_status,
            performed_by=status_data.performed_by,
        )
        return service.get(retake_id)
    except RetakeError as e:
        raise _http_error(e)


@router.patch("/retakes/{retake_id}/note", response_model=RetakeResponse, responses=REFUSAL_RESPONSES)
def edit_retake_note(retake_id: int, note_data: RetakeNoteEdit, service: RetakeService = Depends(get_service)):
    """Correct the retake's informational note. Allowed in every status, including Completed."""
    try:
        service.edit_note(retake_id, note_data.note, performed_by=note_data.performed_by)
        return service.get(retake_id)
    except RetakeError as e:
        raise _http_error(e)


@router.delete("/retakes/{retake_id}",status_code=status.HTTP_204_NO_CONTENT, responses=REFUSAL_RESPONSES)
def delete_retake(
    retake_id: int,
    confirm: bool = Query(False, description="Must be true: deletion discards the retake's history"),
    service: RetakeService = Depends(get_service),
):
    """Administrative delete. Irreversible; requires ?confirm=true."""
    try:
        service.delete(retake_id, confirm=confirm)
    except RetakeError as e:
        raise _http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# History endpoints
@router.get("/retakes/{retake_id}/history", response_model=List[HistoryEntryResponse], responses=REFUSAL_RESPONSES)
def retake_history(retake_id: int, service: RetakeService = Depends(get_service)):
    """History of one retake, oldest first."""
    try:
        return service.history_for(retake_id)
    except RetakeError as e:
        raise _http_error(e)


@router.get(
    "/retakes/{retake_id}/history/verify",
    response_model=HistoryVerificationResponse,
    responses=REFUSAL_RESPONSES,
)
def verify_retake_history(retake_id: int, service: RetakeService = Depends(get_service)):
    """Replay the history and report whether it reproduces the stored retake."""
    try:
        return HistoryVerificationResponse.model_validate(service.verify_history(retake_id))
    except RetakeError as e:
        raise _http_error(e)


# Catalog endpoints
@router.get("/management-statuses", response_model=List[ManagementStatusResponse])
def list_management_statuses(db: Session = Depends(get_db)):
    """The management-status catalog in display order."""
    return catalog.list_management_statuses(db)
