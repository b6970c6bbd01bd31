import math
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import ConflictError, NotRunningError, ValidationError
from .logging import get_logger
from .models import Project, Task, TimeEntry, User, as_naive_utc, utcnow
from .notifier import Notifier, NullNotifier, notify
from .rates import resolve_hourly_rate
from .resources import entry_payload, get_owned
from .schemas import Pagination, TimeEntryUpdate

logger = get_logger(__name__)

ALREADY_RUNNING_MESSAGE = "You already have a running time entry. Please stop it first."
MAX_PAGE_SIZE = 100
MAX_EDIT_HOURS = 24


def elapsed_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds from ``start`` to ``end``, floored (negative if reversed)."""
    return math.floor((end - start).total_seconds())


class TimerService:
    def __init__(
        self,
        db: Session,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.notifier = notifier or NullNotifier()
        self.clock = clock

    def current(self, user: User) -> TimeEntry | None:
        return self.db.execute(
            select(TimeEntry).where(TimeEntry.user_id == user.id, TimeEntry.is_running.is_(True))
        ).scalars().first()

    def list_entries(
        self,
        user: User,
        project_id: str | None = None,
        is_running: bool | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[TimeEntry], Pagination]:
        page = max(1, page)
        limit = min(MAX_PAGE_SIZE, max(1, limit))

        conditions = [TimeEntry.user_id == user.id]
        if project_id:
            conditions.append(TimeEntry.project_id == project_id)
        if is_running is not None:
            conditions.append(TimeEntry.is_running.is_(is_running))
        if start_date is not None:
            conditions.append(TimeEntry.start_time >= as_naive_utc(start_date))
        if end_date is not None:
            conditions.append(TimeEntry.start_time <= as_naive_utc(end_date))

        total = self.db.execute(
            select(func.count()).select_from(TimeEntry).where(*conditions)
        ).scalar_one()
        entries = self.db.execute(
            select(TimeEntry)
            .where(*conditions)
            .order_by(TimeEntry.start_time.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        pagination = Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit))
        return list(entries), pagination

    def start(
        self,
        user: User,
        project_id: str | None = None,
        task_id: str | None = None,
        description: str | None = None,
    ) -> TimeEntry:
        if self.current(user) is not None:
            raise ConflictError(ALREADY_RUNNING_MESSAGE)

        self._check_references(user, project_id, task_id)
        entry = TimeEntry(
            user_id=user.id,
            project_id=project_id,
            task_id=task_id,
            description=description,
            start_time=self.clock(),
            end_time=None,
            duration=None,
            is_running=True,
            hourly_rate_snapshot=resolve_hourly_rate(self.db, user.id, project_id, task_id),
        )
        self.db.add(entry)
        try:
            self.db.commit()
        except IntegrityError as exc:
            # uq_time_entries_running_user caught a racing start.
            self.db.rollback()
            logger.warning(f"Concurrent timer start rejected for user {user.id}")
            raise ConflictError(ALREADY_RUNNING_MESSAGE) from exc
        self.db.refresh(entry)

        logger.info(f"Timer {entry.id} started for user {user.id} at rate {entry.hourly_rate_snapshot}")
        notify(self.notifier, user.id, "time-entry", "started", entry_payload(entry))
        return entry

    def stop(self, user: User, entry_id: str, end_time: datetime | None = None) -> TimeEntry:
        entry = get_owned(self.db, TimeEntry, entry_id, user.id, "Time entry")
        if not entry.is_running:
            raise NotRunningError("Time entry is not running")

        stop_time = as_naive_utc(end_time) if end_time is not None else self.clock()
        entry.end_time = stop_time
        # Not clamped: an explicit end before the start is stored as given.
        entry.duration = elapsed_seconds(entry.start_time, stop_time)
        entry.is_running = False
        self.db.commit()
        self.db.refresh(entry)

        logger.info(f"Timer {entry.id} stopped for user {user.id} after {entry.duration}s")
        notify(self.notifier, user.id, "time-entry", "stopped", entry_payload(entry))
        return entry

    def create(
        self,
        user: User,
        start_time: datetime,
        end_time: datetime,
        project_id: str | None = None,
        task_id: str | None = None,
        description: str | None = None,
    ) -> TimeEntry:
        start = as_naive_utc(start_time)
        end = as_naive_utc(end_time)
        if end <= start:
            raise ValidationError("End time must be after start time")

        self._check_references(user, project_id, task_id)
        entry = TimeEntry(
            user_id=user.id,
            project_id=project_id,
            task_id=task_id,
            description=description,
            start_time=start,
            end_time=end,
            duration=elapsed_seconds(start, end),
            is_running=False,
            hourly_rate_snapshot=resolve_hourly_rate(self.db, user.id, project_id, task_id),
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)

        notify(self.notifier, user.id, "time-entry", "created", entry_payload(entry))
        return entry

    def update(self, user: User, entry_id: str, data: TimeEntryUpdate) -> TimeEntry:
        entry = get_owned(self.db, TimeEntry, entry_id, user.id, "Time entry")
        fields = data.model_fields_set

        if "project_id" in fields and data.project_id:
            get_owned(self.db, Project, data.project_id, user.id, "Project")
        if "task_id" in fields and data.task_id:
            get_owned(self.db, Task, data.task_id, user.id, "Task")

        start = as_naive_utc(data.start_time) if data.start_time else entry.start_time
        end = as_naive_utc(data.end_time) if data.end_time else entry.end_time
        duration = entry.duration

        if entry.is_running and data.end_time is not None:
            raise ValidationError("Cannot set an end time on a running time entry")

        if data.hours is not None:
            if entry.is_running:
                raise ValidationError("Cannot set hours on a running time entry")
            if not 0 < data.hours <= MAX_EDIT_HOURS:
                raise ValidationError(f"Hours must be between 0 and {MAX_EDIT_HOURS}")
            end = start + timedelta(hours=data.hours)
            duration = elapsed_seconds(start, end)
        elif data.start_time or data.end_time:
            # A running entry without an end keeps its (null) duration.
            if end is not None:
                if end <= start:
                    raise ValidationError("End time must be after start time")
                duration = elapsed_seconds(start, end)

        if "description" in fields:
            entry.description = data.description
        if "project_id" in fields:
            entry.project_id = data.project_id
        if "task_id" in fields:
            entry.task_id = data.task_id
        entry.start_time = start
        entry.end_time = end
        entry.duration = duration
        self.db.commit()
        self.db.refresh(entry)

        notify(self.notifier, user.id, "time-entry", "updated", entry_payload(entry))
        return entry

    def delete(self, user: User, entry_id: str) -> None:
        entry = get_owned(self.db, TimeEntry, entry_id, user.id, "Time entry")
        self.db.delete(entry)
        self.db.commit()
        notify(self.notifier, user.id, "time-entry", "deleted", {"id": entry_id})

    def _check_references(self, user: User, project_id: str | None, task_id: str | None) -> None:
        if project_id:
            get_owned(self.db, Project, project_id, user.id, "Project")
        if task_id:
            get_owned(self.db, Task, task_id, user.id, "Task")
