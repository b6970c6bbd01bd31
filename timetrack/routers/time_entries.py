from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import User
from ..notifier import Notifier, get_notifier
from ..schemas import (
    CurrentTimeEntry,
    MessageResponse,
    TimeEntryCreate,
    TimeEntryList,
    TimeEntryOut,
    TimeEntryStart,
    TimeEntryStop,
    TimeEntryUpdate,
)
from ..security import get_current_user
from ..timers import TimerService

router = APIRouter(prefix="/time-entries", tags=["time-entries"])


def get_timer_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> TimerService:
    return TimerService(db, notifier)


@router.get("", response_model=TimeEntryList)
def list_time_entries(
    project_id: str | None = Query(default=None, alias="projectId"),
    is_running: bool | None = Query(default=None, alias="isRunning"),
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    page: int = Query(default=1),
    limit: int = Query(default=50),
    service: TimerService = Depends(get_timer_service),
    user: User = Depends(get_current_user),
):
    entries, pagination = service.list_entries(
        user,
        project_id=project_id,
        is_running=is_running,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return TimeEntryList(
        entries=[TimeEntryOut.model_validate(entry) for entry in entries],
        pagination=pagination,
    )


@router.post("/start", response_model=TimeEntryOut, status_code=status.HTTP_201_CREATED)
def start_timer(
    payload: TimeEntryStart | None = None,
    service: TimerService = Depends(get_timer_service),
    user: User = Depends(get_current_user),
):
    payload = payload or TimeEntryStart()
    return service.start(
        user,
        project_id=payload.project_id,
        task_id=payload.task_id,
        description=payload.description,
    )


@router.get("/current", response_model=CurrentTimeEntry)
def current_timer(
    service: TimerService = Depends(get_timer_service),
    user: User = Depends(get_current_user),
):
    entry = service.current(user)
    return CurrentTimeEntry(time_entry=TimeEntryOut.model_validate(entry) if entry else None)


@router.post("/{entry_id}/stop", response_model=TimeEntryOut)
def stop_timer(
    entry_id: str,
    payload: TimeEntryStop | None = None,
    service: TimerService = Depends(get_timer_service),
    user: User = Depends(get_current_user),
):
    end_time = payload.end_time if payload else None
    return service.stop(user, entry_id, end_time=end_time)


@router.post("", response_model=TimeEntryOut, status_code=status.HTTP_201_CREATED)
def create_time_entry(
    payload: TimeEntryCreate,
    service: TimerService = Depends(get_timer_service),
    user: User = Depends(get_current_user),
):
    return service.create(
        user,
        start_time=payload.start_time,
        end_time=payload.end_time,
        project_id=payload.project_id,
        task_id=payload.task_id,
        description=payload.description,
    )


@router.put("/{entry_id}", response_model=TimeEntryOut)
def update_time_entry(
    entry_id: str,
    payload: TimeEntryUpdate,
    service: TimerService = Depends(get_timer_service),
    user: User = Depends(get_current_user),
):
    return service.update(user, entry_id, payload)


@router.delete("/{entry_id}", response_model=MessageResponse)
def delete_time_entry(
    entry_id: str,
    service: TimerService = Depends(get_timer_service),
    user: User = Depends(get_current_user),
):
    service.delete(user, entry_id)
    return MessageResponse(message="Time entry deleted successfully")
