import csv
import io
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from .logging import get_logger
from .models import TimeEntry, as_naive_utc
from .schemas import (
    DailyBreakdown,
    DetailedEntry,
    DetailedReport,
    EarningsReport,
    MonthlyEarnings,
    ProjectBreakdown,
    ProjectEarnings,
    SummaryReport,
    TimeEntryOut,
)

logger = get_logger(__name__)

NO_PROJECT_ID = "no-project"
NO_PROJECT_NAME = "No Project"
NO_PROJECT_COLOR = "#6B7280"

EXPORT_HEADERS = [
    "Date",
    "Start Time",
    "End Time",
    "Duration (hours)",
    "Description",
    "Project",
    "Task",
    "Hourly Rate",
    "Earnings",
]
EXPORT_FILENAME = "timetrack-export.csv"

UTC = timezone.utc


def resolve_timezone(name: str | None) -> tzinfo:
    """Return the named zone, or UTC when absent or unknown."""
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Invalid timezone provided: {name}, falling back to UTC")
        return UTC


def to_local(value: datetime, tz: tzinfo) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz)


def entry_hours(entry: TimeEntry) -> float:
    return (entry.duration or 0) / 3600


def entry_earnings(entry: TimeEntry) -> float:
    return (entry.hourly_rate_snapshot or 0) * entry_hours(entry)


def completed_entries(
    db: Session,
    user_id: str,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    project_id: str | None = None,
    task_id: str | None = None,
) -> list[TimeEntry]:
    """Load the user's stopped entries matching the report filters."""
    query = (
        select(TimeEntry)
        .options(selectinload(TimeEntry.project), selectinload(TimeEntry.task))
        .where(TimeEntry.user_id == user_id, TimeEntry.is_running.is_(False))
    )
    if start_date is not None:
        query = query.where(TimeEntry.start_time >= as_naive_utc(start_date))
    if end_date is not None:
        query = query.where(TimeEntry.start_time <= as_naive_utc(end_date))
    if project_id:
        query = query.where(TimeEntry.project_id == project_id)
    if task_id:
        query = query.where(TimeEntry.task_id == task_id)
    return list(db.execute(query.order_by(TimeEntry.start_time.asc())).scalars().all())


def _project_key(entry: TimeEntry) -> tuple[str, str, str]:
    if entry.project is None:
        return NO_PROJECT_ID, NO_PROJECT_NAME, NO_PROJECT_COLOR
    return entry.project.id, entry.project.name, entry.project.color


def build_summary(entries: Sequence[TimeEntry], tz: tzinfo = UTC) -> SummaryReport:
    projects: dict[str, ProjectBreakdown] = {}
    days: dict[str, DailyBreakdown] = {}
    total_duration = 0
    total_earnings = 0.0

    for entry in entries:
        duration = entry.duration or 0
        earnings = entry_earnings(entry)
        total_duration += duration
        total_earnings += earnings

        project_id, project_name, color = _project_key(entry)
        project = projects.setdefault(
            project_id,
            ProjectBreakdown(project_id=project_id, project_name=project_name, color=color),
        )
        project.total_duration += duration
        project.total_earnings += earnings
        project.entry_count += 1

        day_key = to_local(entry.start_time, tz).strftime("%Y-%m-%d")
        day = days.setdefault(day_key, DailyBreakdown(date=day_key))
        day.total_duration += duration
        day.total_earnings += earnings
        day.entry_count += 1

    count = len(entries)
    return SummaryReport(
        total_duration=total_duration,
        total_earnings=total_earnings,
        entry_count=count,
        average_session_duration=total_duration / count if count else 0,
        project_breakdown=list(projects.values()),
        daily_breakdown=sorted(days.values(), key=lambda d: d.date),
    )


def build_earnings(entries: Sequence[TimeEntry], tz: tzinfo = UTC) -> EarningsReport:
    projects: dict[str, ProjectEarnings] = {}
    months: dict[str, MonthlyEarnings] = {}
    total_earnings = 0.0
    total_hours = 0.0

    for entry in entries:
        hours = entry_hours(entry)
        earnings = entry_earnings(entry)
        total_hours += hours
        total_earnings += earnings

        project_id, project_name, color = _project_key(entry)
        project = projects.setdefault(
            project_id,
            ProjectEarnings(project_id=project_id, project_name=project_name, color=color),
        )
        project.total_earnings += earnings
        project.total_hours += hours

        month_key = to_local(entry.start_time, tz).strftime("%Y-%m")
        month = months.setdefault(month_key, MonthlyEarnings(month=month_key))
        month.total_earnings += earnings
        month.total_hours += hours

    for project in projects.values():
        project.average_rate = project.total_earnings / project.total_hours if project.total_hours > 0 else 0

    return EarningsReport(
        total_earnings=total_earnings,
        total_hours=total_hours,
        average_hourly_rate=total_earnings / total_hours if total_hours > 0 else 0,
        project_breakdown=list(projects.values()),
        monthly_trend=sorted(months.values(), key=lambda m: m.month),
    )


def build_detailed(entries: Sequence[TimeEntry]) -> DetailedReport:
    rows = [
        DetailedEntry(
            **TimeEntryOut.model_validate(entry).model_dump(),
            earnings=entry_earnings(entry),
        )
        for entry in sorted(entries, key=lambda e: e.start_time, reverse=True)
    ]
    return DetailedReport(time_entries=rows, total_entries=len(rows))


def export_rows(entries: Iterable[TimeEntry], tz: tzinfo = UTC) -> list[list[str]]:
    rows = []
    for entry in sorted(entries, key=lambda e: e.start_time):
        start = to_local(entry.start_time, tz)
        end = to_local(entry.end_time, tz) if entry.end_time else None
        rate = entry.hourly_rate_snapshot
        rows.append([
            start.strftime("%Y-%m-%d"),
            start.strftime("%H:%M:%S"),
            end.strftime("%H:%M:%S") if end else "",
            f"{entry_hours(entry):.2f}",
            entry.description or "",
            entry.project.name if entry.project else "",
            entry.task.name if entry.task else "",
            f"{rate:.2f}" if rate is not None else "0.00",
            f"{entry_earnings(entry):.2f}",
        ])
    return rows


def render_csv(rows: Iterable[Sequence[str]]) -> str:
    """Header plus rows, every field double-quoted, ``\\n`` line endings."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)
    writer.writerows(rows)
    return buffer.getvalue()


def start_of_day(now: datetime, tz: tzinfo) -> datetime:
    """Local midnight of ``now`` in ``tz``, as naive UTC."""
    local = to_local(now, tz)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return as_naive_utc(midnight)


def start_of_week(now: datetime, tz: tzinfo) -> datetime:
    """Local midnight of the most recent Sunday, as naive UTC."""
    local = to_local(now, tz)
    days_since_sunday = (local.weekday() + 1) % 7
    sunday = (local - timedelta(days=days_since_sunday)).replace(hour=0, minute=0, second=0, microsecond=0)
    return as_naive_utc(sunday)
