from datetime import datetime, timezone
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel


def _iso_utc(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


UTCDateTime = Annotated[datetime, PlainSerializer(_iso_utc, return_type=str, when_used="json")]

HexColor = Annotated[str, Field(pattern=r"^#[0-9A-Fa-f]{6}$")]
PositiveRate = Annotated[float, Field(gt=0)]
IdleTimeout = Annotated[int, Field(ge=60, le=7200)]


class APIModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MessageResponse(APIModel):
    message: str


# Auth and users


class RegisterRequest(APIModel):
    name: str = Field(min_length=2, max_length=50)
    email: str
    password: str = Field(min_length=6, max_length=100)
    default_hourly_rate: PositiveRate | None = None
    idle_timeout_seconds: IdleTimeout | None = None


class UserOut(APIModel):
    id: str
    name: str
    email: str
    default_hourly_rate: float | None = None
    idle_timeout_seconds: int
    created_at: UTCDateTime
    updated_at: UTCDateTime


class TokenResponse(APIModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut | None = None


class ProfileUpdate(APIModel):
    name: str | None = Field(default=None, min_length=2, max_length=50)
    email: str | None = None
    default_hourly_rate: float | None = Field(default=None, ge=0)
    idle_timeout_seconds: IdleTimeout | None = None


class ChangePasswordRequest(APIModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6, max_length=100)


class RunningEntrySummary(APIModel):
    id: str
    start_time: UTCDateTime
    project_name: str | None = None
    project_color: str | None = None
    task_name: str | None = None


class UserStats(APIModel):
    total_projects: int
    active_projects: int
    total_tasks: int
    completed_tasks: int
    total_time_entries: int
    total_time_tracked: int
    this_week_time: int
    running_time_entry: RunningEntrySummary | None = None


class CurrentTimerEarnings(APIModel):
    earnings: float
    duration: int
    is_running: bool
    hourly_rate: float


class PeriodEarnings(APIModel):
    earnings: float
    duration: int


class DashboardEarnings(APIModel):
    current_timer: CurrentTimerEarnings
    today: PeriodEarnings
    this_week: PeriodEarnings


# Projects and tasks


class ProjectRef(APIModel):
    id: str
    name: str
    color: str


class TaskRef(APIModel):
    id: str
    name: str


class ProjectCreate(APIModel):
    name: str = Field(min_length=1)
    description: str | None = None
    color: HexColor | None = None
    hourly_rate: PositiveRate | None = None


class ProjectUpdate(APIModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    color: HexColor | None = None
    hourly_rate: PositiveRate | None = None
    is_active: bool | None = None


class ProjectOut(APIModel):
    id: str
    name: str
    description: str | None = None
    color: str
    hourly_rate: float | None = None
    is_active: bool
    created_at: UTCDateTime
    updated_at: UTCDateTime


class ProjectTaskOut(APIModel):
    id: str
    name: str
    description: str | None = None
    is_completed: bool
    hourly_rate: float | None = None
    created_at: UTCDateTime


class ProjectDetail(ProjectOut):
    tasks: list[ProjectTaskOut] = []


class TaskCreate(APIModel):
    name: str = Field(min_length=1)
    description: str | None = None
    project_id: str
    hourly_rate: PositiveRate | None = None


class TaskUpdate(APIModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    is_completed: bool | None = None
    hourly_rate: PositiveRate | None = None


class TaskOut(APIModel):
    id: str
    name: str
    description: str | None = None
    is_completed: bool
    hourly_rate: float | None = None
    project_id: str
    created_at: UTCDateTime
    updated_at: UTCDateTime
    project: ProjectRef


# Time entries


class TimeEntryStart(APIModel):
    description: str | None = None
    project_id: str | None = None
    task_id: str | None = None


class TimeEntryStop(APIModel):
    end_time: datetime | None = None


class TimeEntryCreate(APIModel):
    description: str | None = None
    start_time: datetime
    end_time: datetime
    project_id: str | None = None
    task_id: str | None = None


class TimeEntryUpdate(APIModel):
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    hours: float | None = None
    project_id: str | None = None
    task_id: str | None = None


class TimeEntryOut(APIModel):
    id: str
    description: str | None = None
    start_time: UTCDateTime
    end_time: UTCDateTime | None = None
    duration: int | None = None
    is_running: bool
    hourly_rate_snapshot: float | None = None
    project_id: str | None = None
    task_id: str | None = None
    created_at: UTCDateTime
    updated_at: UTCDateTime
    project: ProjectRef | None = None
    task: TaskRef | None = None


class Pagination(APIModel):
    page: int
    limit: int
    total: int
    pages: int


class TimeEntryList(APIModel):
    entries: list[TimeEntryOut]
    pagination: Pagination


class CurrentTimeEntry(APIModel):
    time_entry: TimeEntryOut | None = None


# Reports


class ProjectBreakdown(APIModel):
    project_id: str
    project_name: str
    color: str
    total_duration: int = 0
    total_earnings: float = 0.0
    entry_count: int = 0


class DailyBreakdown(APIModel):
    date: str
    total_duration: int = 0
    total_earnings: float = 0.0
    entry_count: int = 0


class SummaryReport(APIModel):
    total_duration: int
    total_earnings: float
    entry_count: int
    average_session_duration: float
    project_breakdown: list[ProjectBreakdown]
    daily_breakdown: list[DailyBreakdown]


class ProjectEarnings(APIModel):
    project_id: str
    project_name: str
    color: str
    total_earnings: float = 0.0
    total_hours: float = 0.0
    average_rate: float = 0.0


class MonthlyEarnings(APIModel):
    month: str
    total_earnings: float = 0.0
    total_hours: float = 0.0


class EarningsReport(APIModel):
    total_earnings: float
    total_hours: float
    average_hourly_rate: float
    project_breakdown: list[ProjectEarnings]
    monthly_trend: list[MonthlyEarnings]


class DetailedEntry(TimeEntryOut):
    earnings: float


class DetailedReport(APIModel):
    time_entries: list[DetailedEntry]
    total_entries: int
