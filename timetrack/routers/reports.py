from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import TimeEntry, User
from ..reports import (
    EXPORT_FILENAME,
    build_detailed,
    build_earnings,
    build_summary,
    completed_entries,
    export_rows,
    render_csv,
    resolve_timezone,
)
from ..schemas import DetailedReport, EarningsReport, SummaryReport
from ..security import get_current_user

router = APIRouter(prefix="/reports", tags=["reports"])


class ReportQuery:
    """Filters shared by every report endpoint."""

    def __init__(
        self,
        start_date: datetime | None = Query(default=None, alias="startDate"),
        end_date: datetime | None = Query(default=None, alias="endDate"),
        project_id: str | None = Query(default=None, alias="projectId"),
        task_id: str | None = Query(default=None, alias="taskId"),
        timezone: str | None = Query(default=None),
    ):
        self.start_date = start_date
        self.end_date = end_date
        self.project_id = project_id
        self.task_id = task_id
        self.timezone = timezone


def _entries(db: Session, user: User, params: ReportQuery) -> list[TimeEntry]:
    return completed_entries(
        db,
        user.id,
        start_date=params.start_date,
        end_date=params.end_date,
        project_id=params.project_id,
        task_id=params.task_id,
    )


@router.get("/summary", response_model=SummaryReport)
def summary(
    params: ReportQuery = Depends(),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return build_summary(_entries(db, user, params), resolve_timezone(params.timezone))


@router.get("/detailed", response_model=DetailedReport)
def detailed(
    params: ReportQuery = Depends(),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return build_detailed(_entries(db, user, params))


@router.get("/earnings", response_model=EarningsReport)
def earnings(
    params: ReportQuery = Depends(),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return build_earnings(_entries(db, user, params), resolve_timezone(params.timezone))


@router.get("/export")
def export(
    params: ReportQuery = Depends(),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    rows = export_rows(_entries(db, user, params), resolve_timezone(params.timezone))
    return Response(
        content=render_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )
