"""Database operations on tasks.

Functions take an open Session and already-validated schemas, and return
ORM rows. A missing row is reported as ``None`` (or ``False`` for deletes);
turning that into an HTTP response is up to the routes.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from . import models, schemas

DEFAULT_LIMIT = 50
DEFAULT_OFFSET = 0


@dataclass(frozen=True)
class MutableField:
    """A task field that updates may write, with its storage coercion."""

    name: str
    column: str
    coerce: Callable[[Any], Any] = lambda value: value


# Only these names can ever reach the SET clause of an update.
MUTABLE_FIELDS: Tuple[MutableField, ...] = (
    MutableField("title", "title"),
    MutableField("description", "description"),
    MutableField("completed", "completed", lambda value: 1 if value else 0),
    MutableField("priority", "priority"),
)


def _assignments(data: BaseModel, names: Iterable[str]) -> Dict[str, Any]:
    wanted = set(names)
    return {
        field.column: field.coerce(getattr(data, field.name))
        for field in MUTABLE_FIELDS
        if field.name in wanted
    }


def _reload(db: Session, task_id: int) -> Optional[models.Task]:
    return db.get(models.Task, task_id, populate_existing=True)


def get_task(db: Session, task_id: int) -> Optional[models.Task]:
    return db.get(models.Task, task_id)


def list_tasks(db: Session, query: schemas.ListTasksQuery) -> Tuple[List[models.Task], int, int, int]:
    """Return one page of tasks, the total matching count, and the limit/offset used."""
    limit = query.limit if query.limit is not None else DEFAULT_LIMIT
    offset = query.offset if query.offset is not None else DEFAULT_OFFSET

    # the page and the count share the same predicate
    conditions = []
    if query.completed is not None:
        conditions.append(models.Task.completed == (1 if query.completed == "true" else 0))
    if query.priority is not None:
        conditions.append(models.Task.priority == query.priority)

    page = (
        select(models.Task)
        .where(*conditions)
        .order_by(models.Task.created_at.desc(), models.Task.id.desc())
        .limit(limit)
        .offset(offset)
    )
    tasks = list(db.scalars(page).all())
    total = db.scalar(select(func.count()).select_from(models.Task).where(*conditions))
    return tasks, total, limit, offset


def create_task(db: Session, task_in: schemas.TaskCreate) -> models.Task:
    task = models.Task(
        title=task_in.title,
        description=task_in.description,
        priority=task_in.priority,
    )
    db.add(task)
    db.commit()
    # picks up the id, defaults and timestamps computed by SQLite
    db.refresh(task)
    return task


def update_task(db: Session, task_id: int, task_in: schemas.TaskUpdate) -> Optional[models.Task]:
    if get_task(db, task_id) is None:
        return None

    # every mutable column is rewritten, changed or not
    values = _assignments(task_in, (field.name for field in MUTABLE_FIELDS))
    db.execute(update(models.Task).where(models.Task.id == task_id).values(**values))
    db.commit()
    return _reload(db, task_id)


def patch_fields(task_in: schemas.TaskPatch) -> List[str]:
    """Names of the mutable fields the client actually sent."""
    return [field.name for field in MUTABLE_FIELDS if field.name in task_in.model_fields_set]


def patch_task(db: Session, db_task: models.Task, task_in: schemas.TaskPatch) -> models.Task:
    """Write only the fields present in ``task_in`` to an existing row.

    Callers look the row up and reject an empty ``patch_fields(task_in)`` beforehand.
    """
    fields = patch_fields(task_in)
    if not fields:
        raise ValueError("patch_task called without any field to update")

    task_id = db_task.id
    values = _assignments(task_in, fields)
    db.execute(update(models.Task).where(models.Task.id == task_id).values(**values))
    db.commit()
    return _reload(db, task_id)


def delete_task(db: Session, task_id: int) -> bool:
    if get_task(db, task_id) is None:
        return False
    db.execute(delete(models.Task).where(models.Task.id == task_id))
    db.commit()
    return True
