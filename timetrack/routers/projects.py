from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Project, User
from ..notifier import Notifier, get_notifier, notify
from ..resources import delete_project, get_owned, project_payload
from ..schemas import MessageResponse, ProjectCreate, ProjectDetail, ProjectOut, ProjectUpdate
from ..security import get_current_user

router = APIRouter(prefix="/projects", tags=["projects"])

DEFAULT_COLOR = "#3B82F6"


@router.get("", response_model=list[ProjectOut])
def list_projects(
    is_active: bool | None = Query(default=None, alias="isActive"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = select(Project).where(Project.user_id == user.id)
    if is_active is not None:
        query = query.where(Project.is_active.is_(is_active))
    return db.execute(query.order_by(Project.created_at.desc())).scalars().all()


@router.post("", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    project = Project(
        user_id=user.id,
        name=payload.name,
        description=payload.description,
        color=payload.color or DEFAULT_COLOR,
        hourly_rate=payload.hourly_rate,
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    notify(notifier, user.id, "project", "created", project_payload(project))
    return project


@router.get("/{project_id}", response_model=ProjectDetail)
def get_project(
    project_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return get_owned(db, Project, project_id, user.id, "Project")


@router.put("/{project_id}", response_model=ProjectOut)
def update_project(
    project_id: str,
    payload: ProjectUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    project = get_owned(db, Project, project_id, user.id, "Project")
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field in ("name", "color", "is_active") and value is None:
            continue
        setattr(project, field, value)
    db.commit()
    db.refresh(project)
    notify(notifier, user.id, "project", "updated", project_payload(project))
    return project


@router.delete("/{project_id}", response_model=MessageResponse)
def remove_project(
    project_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    project = get_owned(db, Project, project_id, user.id, "Project")
    delete_project(db, project)
    notify(notifier, user.id, "project", "deleted", {"id": project_id})
    return MessageResponse(message="Project deleted successfully")
