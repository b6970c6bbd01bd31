from sqlalchemy.orm import Session

from .models import Project, Task, User


def resolve_hourly_rate(
    db: Session,
    user_id: str,
    project_id: str | None = None,
    task_id: str | None = None,
) -> float | None:
    """Pick the hourly rate to snapshot onto a new time entry.

    Priority is task rate, then project rate, then the user's default rate.
    A missing task or project is not an error; it just has no rate.
    """
    if task_id:
        task = db.get(Task, task_id)
        if task is not None and task.hourly_rate is not None:
            return task.hourly_rate

    if project_id:
        project = db.get(Project, project_id)
        if project is not None and project.hourly_rate is not None:
            return project.hourly_rate

    user = db.get(User, user_id)
    if user is None:
        return None
    return user.default_hourly_rate
