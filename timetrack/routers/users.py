from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import AlreadyExistsError, ValidationError
from ..models import Project, Task, TimeEntry, User, utcnow
from ..reports import entry_earnings, resolve_timezone, start_of_day, start_of_week
from ..schemas import (
    ChangePasswordRequest,
    CurrentTimerEarnings,
    DashboardEarnings,
    MessageResponse,
    PeriodEarnings,
    ProfileUpdate,
    RunningEntrySummary,
    UserOut,
    UserStats,
)
from ..security import get_current_user, get_user_by_email, hash_password, normalize_email, verify_password
from ..timers import elapsed_seconds

router = APIRouter(prefix="/users", tags=["users"])


def _count(db: Session, model, *conditions) -> int:
    return db.execute(select(func.count()).select_from(model).where(*conditions)).scalar_one()


def _tracked_seconds(db: Session, user_id: str, since=None) -> int:
    query = select(func.coalesce(func.sum(TimeEntry.duration), 0)).where(
        TimeEntry.user_id == user_id, TimeEntry.is_running.is_(False)
    )
    if since is not None:
        query = query.where(TimeEntry.start_time >= since)
    return int(db.execute(query).scalar_one())


def _period_earnings(db: Session, user_id: str, since) -> PeriodEarnings:
    # Entries orphaned from any project are left out of dashboard totals.
    entries = db.execute(
        select(TimeEntry).where(
            TimeEntry.user_id == user_id,
            TimeEntry.is_running.is_(False),
            TimeEntry.project_id.is_not(None),
            TimeEntry.start_time >= since,
        )
    ).scalars().all()
    return PeriodEarnings(
        earnings=sum(entry_earnings(entry) for entry in entries),
        duration=sum(entry.duration or 0 for entry in entries),
    )


def _running_entry(db: Session, user_id: str) -> TimeEntry | None:
    return db.execute(
        select(TimeEntry).where(TimeEntry.user_id == user_id, TimeEntry.is_running.is_(True))
    ).scalars().first()


@router.put("/profile", response_model=UserOut)
def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    fields = payload.model_fields_set
    if "email" in fields and payload.email:
        email = normalize_email(payload.email)
        if "@" not in email:
            raise ValidationError("Please enter a valid email address")
        existing = get_user_by_email(db, email)
        if existing and existing.id != user.id:
            raise AlreadyExistsError("Email is already taken", code="AUTH_EMAIL_TAKEN")
        user.email = email
    if "name" in fields and payload.name:
        user.name = payload.name.strip()
    if "default_hourly_rate" in fields:
        user.default_hourly_rate = payload.default_hourly_rate
    if "idle_timeout_seconds" in fields and payload.idle_timeout_seconds is not None:
        user.idle_timeout_seconds = payload.idle_timeout_seconds

    db.commit()
    db.refresh(user)
    return user


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if not verify_password(payload.current_password, user.password_hash):
        raise ValidationError("Current password is incorrect", code="AUTH_INVALID_PASSWORD")
    user.password_hash = hash_password(payload.new_password)
    db.commit()
    return MessageResponse(message="Password changed successfully")


@router.get("/stats", response_model=UserStats)
def stats(
    timezone: str | None = Query(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    tz = resolve_timezone(timezone)
    running = _running_entry(db, user.id)
    running_summary = None
    if running is not None:
        running_summary = RunningEntrySummary(
            id=running.id,
            start_time=running.start_time,
            project_name=running.project.name if running.project else None,
            project_color=running.project.color if running.project else None,
            task_name=running.task.name if running.task else None,
        )

    return UserStats(
        total_projects=_count(db, Project, Project.user_id == user.id),
        active_projects=_count(db, Project, Project.user_id == user.id, Project.is_active.is_(True)),
        total_tasks=_count(db, Task, Task.user_id == user.id),
        completed_tasks=_count(db, Task, Task.user_id == user.id, Task.is_completed.is_(True)),
        total_time_entries=_count(db, TimeEntry, TimeEntry.user_id == user.id),
        total_time_tracked=_tracked_seconds(db, user.id),
        this_week_time=_tracked_seconds(db, user.id, since=start_of_week(utcnow(), tz)),
        running_time_entry=running_summary,
    )


@router.get("/dashboard-earnings", response_model=DashboardEarnings)
def dashboard_earnings(
    timezone: str | None = Query(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    tz = resolve_timezone(timezone)
    now = utcnow()

    running = _running_entry(db, user.id)
    current = CurrentTimerEarnings(earnings=0.0, duration=0, is_running=False, hourly_rate=0.0)
    if running is not None:
        duration = elapsed_seconds(running.start_time, now)
        rate = running.hourly_rate_snapshot or 0
        current = CurrentTimerEarnings(
            earnings=rate * duration / 3600,
            duration=duration,
            is_running=True,
            hourly_rate=rate,
        )

    return DashboardEarnings(
        current_timer=current,
        today=_period_earnings(db, user.id, start_of_day(now, tz)),
        this_week=_period_earnings(db, user.id, start_of_week(now, tz)),
    )
