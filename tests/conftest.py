import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete

from task_api import models
from task_api.config import Settings
from task_api.main import create_app


def make_settings(**overrides) -> Settings:
    values = {"ENVIRONMENT": "test", "DB_PATH": ":memory:"}
    values.update(overrides)
    # _env_file=None: a developer's .env must not leak into the tests
    return Settings(_env_file=None, **values)


# ============================================================
# APP + DATABASE (in-memory SQLite, one connection)
# ============================================================

@pytest.fixture(scope="session")
def app():
    return create_app(make_settings())


@pytest.fixture(scope="session")
def client(app):
    # the context manager runs the lifespan: initialize() / close()
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def clean_db(client, app):
    """Empty the tasks table before each test."""
    db = app.state.database.session()
    try:
        db.execute(delete(models.Task))
        db.commit()
    finally:
        db.close()
    yield


@pytest.fixture
def db_session(app):
    db = app.state.database.session()
    try:
        yield db
    finally:
        db.close()


# ============================================================
# HELPERS
# ============================================================

@pytest.fixture
def seed_task(client):
    """Create a task through the API and return its JSON representation."""

    def _seed(**overrides):
        body = {"title": "Seeded Task", "description": "A task created for testing", "priority": "medium"}
        body.update(overrides)
        resp = client.post("/tasks", json=body)
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]

    return _seed
