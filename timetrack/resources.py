from typing import Any, TypeVar

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from .db import Base
from .errors import NotFoundError
from .logging import get_logger
from .models import Project, Task, TimeEntry
from .schemas import ProjectOut, TaskOut, TimeEntryOut

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


def get_owned(db: Session, model: type[ModelT], record_id: str | None, user_id: str, resource: str) -> ModelT:
    """Load a record by id scoped to its owner.

    Absent and foreign records raise the same ``NotFoundError``.
    """
    record = db.get(model, record_id) if record_id else None
    if record is None or record.user_id != user_id:
        raise NotFoundError(resource)
    return record


def project_payload(project: Project) -> dict[str, Any]:
    return ProjectOut.model_validate(project).model_dump(mode="json", by_alias=True)


def task_payload(task: Task) -> dict[str, Any]:
    return TaskOut.model_validate(task).model_dump(mode="json", by_alias=True)


def entry_payload(entry: TimeEntry) -> dict[str, Any]:
    return TimeEntryOut.model_validate(entry).model_dump(mode="json", by_alias=True)


def delete_project(db: Session, project: Project) -> int:
    """Delete a project and its tasks, keeping historical time entries.

    Entries of the project (or of its tasks) lose those references. Entries
    left with neither a project nor a task because of this deletion are purged.
    Returns the number of purged entries.
    """
    project_id = project.id
    task_ids = {task.id for task in project.tasks}
    conditions = [TimeEntry.project_id == project_id]
    if task_ids:
        conditions.append(TimeEntry.task_id.in_(task_ids))

    entries = db.execute(
        select(TimeEntry).where(TimeEntry.user_id == project.user_id, or_(*conditions))
    ).scalars().all()

    purged = 0
    for entry in entries:
        if entry.project_id == project_id:
            entry.project_id = None
        if entry.task_id in task_ids:
            entry.task_id = None
        if entry.project_id is None and entry.task_id is None:
            db.delete(entry)
            purged += 1

    db.delete(project)
    db.commit()
    logger.info(
        f"Deleted project {project_id} with {len(task_ids)} tasks, "
        f"detached {len(entries) - purged} entries, purged {purged}"
    )
    return purged


def delete_task(db: Session, task: Task) -> None:
    db.execute(
        update(TimeEntry).where(TimeEntry.task_id == task.id).values(task_id=None)
    )
    db.delete(task)
    db.commit()
