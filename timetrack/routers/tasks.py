from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Project, Task, User
from ..notifier import Notifier, get_notifier, notify
from ..resources import delete_task, get_owned, task_payload
from ..schemas import MessageResponse, TaskCreate, TaskOut, TaskUpdate
from ..security import get_current_user

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=list[TaskOut])
def list_tasks(
    project_id: str | None = Query(default=None, alias="projectId"),
    is_completed: bool | None = Query(default=None, alias="isCompleted"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = select(Task).where(Task.user_id == user.id)
    if project_id:
        query = query.where(Task.project_id == project_id)
    if is_completed is not None:
        query = query.where(Task.is_completed.is_(is_completed))
    return db.execute(query.order_by(Task.created_at.desc())).scalars().all()


@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    get_owned(db, Project, payload.project_id, user.id, "Project")
    task = Task(
        user_id=user.id,
        project_id=payload.project_id,
        name=payload.name,
        description=payload.description,
        hourly_rate=payload.hourly_rate,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    notify(notifier, user.id, "task", "created", task_payload(task))
    return task


@router.get("/{task_id}", response_model=TaskOut)
def get_task(
    task_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return get_owned(db, Task, task_id, user.id, "Task")


@router.put("/{task_id}", response_model=TaskOut)
def update_task(
    task_id: str,
    payload: TaskUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    task = get_owned(db, Task, task_id, user.id, "Task")
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field in ("name", "is_completed") and value is None:
            continue
        setattr(task, field, value)
    db.commit()
    db.refresh(task)
    notify(notifier, user.id, "task", "updated", task_payload(task))
    return task


@router.delete("/{task_id}", response_model=MessageResponse)
def remove_task(
    task_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    task = get_owned(db, Task, task_id, user.id, "Task")
    delete_task(db, task)
    notify(notifier, user.id, "task", "deleted", {"id": task_id})
    return MessageResponse(message="Task deleted successfully")
