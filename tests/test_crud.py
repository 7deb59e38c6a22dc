import time

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from task_api import crud, models, schemas


def _build_task_create(title="Test Task", description="Test description", priority="medium"):
    return schemas.TaskCreate(title=title, description=description, priority=priority)


# ============================================================
# CREATE / GET
# ============================================================

def test_create_task_crud(db_session):
    task = crud.create_task(db_session, _build_task_create())
    assert task.id is not None
    assert task.title == "Test Task"
    assert task.completed == 0
    assert task.created_at == task.updated_at


def test_get_task_crud(db_session):
    created = crud.create_task(db_session, _build_task_create(title="Find me"))
    fetched = crud.get_task(db_session, created.id)
    assert fetched is not None
    assert fetched.title == "Find me"
    assert crud.get_task(db_session, created.id + 1000) is None


# ============================================================
# LIST
# ============================================================

def test_list_tasks_defaults(db_session):
    for i in range(3):
        crud.create_task(db_session, _build_task_create(title=f"Task {i}"))

    tasks, total, limit, offset = crud.list_tasks(db_session, schemas.ListTasksQuery())
    assert (total, limit, offset) == (3, crud.DEFAULT_LIMIT, crud.DEFAULT_OFFSET)
    assert [task.title for task in tasks] == ["Task 2", "Task 1", "Task 0"]


def test_list_tasks_count_ignores_paging(db_session):
    for i in range(5):
        crud.create_task(db_session, _build_task_create(priority="high" if i % 2 else "low"))

    query = schemas.ListTasksQuery(priority="low", limit=1, offset=1)
    tasks, total, limit, offset = crud.list_tasks(db_session, query)
    assert len(tasks) == 1
    assert total == 3
    assert (limit, offset) == (1, 1)


# ============================================================
# UPDATE / PATCH
# ============================================================

def test_update_task_crud(db_session):
    created = crud.create_task(db_session, _build_task_create())
    updated = crud.update_task(
        db_session,
        created.id,
        schemas.TaskUpdate(title="Updated", description=None, completed=True, priority="high"),
    )
    assert updated.title == "Updated"
    assert updated.description is None
    assert updated.completed == 1
    assert updated.priority == "high"


def test_update_missing_task_crud(db_session):
    task_in = schemas.TaskUpdate(title="x", description=None, completed=False, priority="low")
    assert crud.update_task(db_session, 12345, task_in) is None


def test_patch_fields_follows_sent_keys():
    assert crud.patch_fields(schemas.TaskPatch()) == []
    assert crud.patch_fields(schemas.TaskPatch(description=None)) == ["description"]
    assert crud.patch_fields(schemas.TaskPatch.model_validate({"priority": "low", "title": "t"})) == [
        "title",
        "priority",
    ]


def test_patch_task_crud(db_session):
    created = crud.create_task(db_session, _build_task_create(title="Keep", priority="low"))
    created_at = created.created_at
    time.sleep(0.01)

    patched = crud.patch_task(db_session, created, schemas.TaskPatch(completed=True))
    assert patched.completed == 1
    assert patched.title == "Keep"
    assert patched.priority == "low"
    assert patched.created_at == created_at
    assert patched.updated_at > created_at


def test_patch_task_without_fields_raises(db_session):
    created = crud.create_task(db_session, _build_task_create())
    with pytest.raises(ValueError):
        crud.patch_task(db_session, created, schemas.TaskPatch())


# ============================================================
# DELETE
# ============================================================

def test_delete_task_crud(db_session):
    created = crud.create_task(db_session, _build_task_create())
    assert crud.delete_task(db_session, created.id) is True
    assert crud.get_task(db_session, created.id) is None
    assert crud.delete_task(db_session, created.id) is False


# ============================================================
# STORAGE INVARIANTS
# ============================================================

def test_storage_rejects_unknown_priority(db_session):
    db_session.add(models.Task(title="Bad", priority="urgent"))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_trigger_refreshes_updated_at_on_raw_update(db_session):
    created = crud.create_task(db_session, _build_task_create())
    time.sleep(0.01)

    db_session.execute(text("UPDATE tasks SET completed = 1 WHERE id = :id"), {"id": created.id})
    db_session.commit()

    row = db_session.execute(
        text("SELECT created_at, updated_at FROM tasks WHERE id = :id"), {"id": created.id}
    ).one()
    assert row.created_at == created.created_at
    assert row.updated_at > row.created_at
