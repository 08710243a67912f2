"""Timer endpoints. Every response carries the authoritative server state."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, get_current_user
from ..database import get_db
from ..models import User
from ..schemas import (
    ActiveTimerResponse,
    TimeEntryNotesUpdate,
    TimeEntryResponse,
    TimerChangeResponse,
    TimerPauseRequest,
    TimerRequest,
    TimerSwitchResponse,
    WorkOrderResponse,
)
from ..use_cases.orchestration import SwitchFailed, TimerStarted, start_work_use_case, switch_active_timer_use_case
from ..use_cases.timer_use_cases import (
    TimerChange,
    get_active_timer_use_case,
    list_time_entries_use_case,
    pause_timer_use_case,
    resume_timer_use_case,
    stop_timer_use_case,
    update_time_entry_notes_use_case,
)

router = APIRouter(tags=["timer"])

_can_track_time = [Depends(PermissionChecker("canTrackTime"))]


def _change_response(change: TimerChange) -> TimerChangeResponse:
    return TimerChangeResponse(
        closed=TimeEntryResponse.model_validate(change.closed) if change.closed else None,
        opened=TimeEntryResponse.model_validate(change.opened) if change.opened else None,
        work_order=WorkOrderResponse.model_validate(change.work_order),
    )


@router.post("/timer/start", response_model=TimeEntryResponse, dependencies=_can_track_time)
def start_timer(
    data: TimerRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Start a work timer. 409 while another timer is active."""
    return start_work_use_case(db=db, work_order_id=data.work_order_id, current_user=current_user)


@router.post("/timer/switch", response_model=TimerSwitchResponse, dependencies=_can_track_time)
def switch_timer(
    data: TimerRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Stop the active timer, if any, and start one on the requested work order."""
    result = switch_active_timer_use_case(db=db, work_order_id=data.work_order_id, current_user=current_user)
    if isinstance(result, SwitchFailed):
        raise result.as_error()
    if isinstance(result, TimerStarted):
        return TimerSwitchResponse(outcome="started", opened=TimeEntryResponse.model_validate(result.opened))
    return TimerSwitchResponse(
        outcome="switched",
        closed=TimeEntryResponse.model_validate(result.closed),
        opened=TimeEntryResponse.model_validate(result.opened),
    )


@router.post("/timer/pause", response_model=TimerChangeResponse, dependencies=_can_track_time)
def pause_timer(
    data: TimerPauseRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    change = pause_timer_use_case(
        db=db,
        work_order_id=data.work_order_id,
        current_user=current_user,
        break_reason=data.break_reason,
        notes=data.notes,
    )
    return _change_response(change)


@router.post("/timer/resume", response_model=TimerChangeResponse, dependencies=_can_track_time)
def resume_timer(
    data: TimerRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    change = resume_timer_use_case(db=db, work_order_id=data.work_order_id, current_user=current_user)
    return _change_response(change)


@router.post("/timer/stop", response_model=TimerChangeResponse, dependencies=_can_track_time)
def stop_timer(
    data: TimerRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    change = stop_timer_use_case(db=db, work_order_id=data.work_order_id, current_user=current_user)
    return _change_response(change)


@router.get("/timer/active", response_model=Optional[ActiveTimerResponse])
def get_active_timer(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Current open entry of the caller, or null."""
    active = get_active_timer_use_case(db=db, current_user=current_user)
    if active is None:
        return None
    return ActiveTimerResponse(
        entry=TimeEntryResponse.model_validate(active.entry),
        work_order=WorkOrderResponse.model_validate(active.work_order),
        elapsed_seconds=active.elapsed_seconds,
    )


@router.get("/work-orders/{work_order_id}/time-entries", response_model=list[TimeEntryResponse])
def list_time_entries(
    work_order_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return list_time_entries_use_case(db=db, work_order_id=work_order_id, current_user=current_user)


@router.patch("/time-entries/{entry_id}", response_model=TimeEntryResponse)
def update_time_entry_notes(
    entry_id: UUID,
    data: TimeEntryNotesUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Only notes are editable; timing fields are server-owned."""
    return update_time_entry_notes_use_case(
        db=db,
        entry_id=entry_id,
        current_user=current_user,
        notes=data.notes,
    )
