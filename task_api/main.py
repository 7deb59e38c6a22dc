import logging
import time
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import Depends, FastAPI, Path, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from . import crud, schemas
from .config import Settings
from .database import Database, get_db
from .errors import BadRequestError, NotFoundError, register_error_handlers, utc_timestamp

logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "X-XSS-Protection": "0",
    "Cross-Origin-Resource-Policy": "same-origin",
}

TaskId = Annotated[int, Path(ge=1, le=schemas.MAX_SQLITE_INT, description="Task id, a positive integer")]

# documented error envelopes; every non-2xx body has this shape
ERRORS = {
    status.HTTP_400_BAD_REQUEST: {"model": schemas.ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": schemas.ErrorResponse},
}
ERRORS_WITH_404 = {**ERRORS, status.HTTP_404_NOT_FOUND: {"model": schemas.ErrorResponse}}


def _not_found(task_id: int) -> NotFoundError:
    return NotFoundError(f"Task with id {task_id} not found")


@asynccontextmanager
async def lifespan(app: FastAPI):
    database: Database = app.state.database
    database.initialize()
    logger.info(
        "Task API running on http://%s:%s (environment: %s)",
        app.state.settings.HOST,
        app.state.settings.PORT,
        app.state.settings.ENVIRONMENT,
    )
    yield
    logger.info("Shutting down the application...")
    database.close()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = Database(settings)

    register_error_handlers(app, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.CORS_ORIGIN],
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def secure_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    if not settings.is_test:

        @app.middleware("http")
        async def log_requests(request: Request, call_next):
            logger.info("--> %s %s", request.method, request.url.path)
            start = time.perf_counter()
            response = await call_next(request)
            elapsed = (time.perf_counter() - start) * 1000
            logger.info("<-- %s %s %s %dms", request.method, request.url.path, response.status_code, elapsed)
            return response

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "timestamp": utc_timestamp(),
            "uptime": round(time.monotonic() - STARTED_AT, 3),
            "environment": settings.ENVIRONMENT,
        }

    @app.get("/")
    async def api_info():
        return {
            "name": settings.APP_NAME,
            "version": settings.VERSION,
            "description": "REST API for task management (FastAPI + SQLite)",
            "endpoints": {
                "health": "GET /health",
                "tasks": {
                    "list": "GET /tasks",
                    "get": "GET /tasks/:id",
                    "create": "POST /tasks",
                    "update": "PUT /tasks/:id",
                    "patch": "PATCH /tasks/:id",
                    "delete": "DELETE /tasks/:id",
                },
            },
        }

    @app.get("/tasks", response_model=schemas.TaskPage, responses=ERRORS)
    async def list_tasks(
        query: Annotated[schemas.ListTasksQuery, Query()],
        db: Session = Depends(get_db),
    ):
        tasks, total, limit, offset = crud.list_tasks(db, query)
        return schemas.TaskPage(
            data=[schemas.TaskOut.model_validate(task) for task in tasks],
            pagination=schemas.Pagination(
                total=total,
                limit=limit,
                offset=offset,
                has_more=offset + len(tasks) < total,
            ),
        )

    @app.get("/tasks/{task_id}", response_model=schemas.TaskEnvelope, responses=ERRORS_WITH_404)
    async def get_task(task_id: TaskId, db: Session = Depends(get_db)):
        task = crud.get_task(db, task_id)
        if not task:
            raise _not_found(task_id)
        return schemas.TaskEnvelope(data=schemas.TaskOut.model_validate(task))

    @app.post(
        "/tasks",
        response_model=schemas.TaskMessageEnvelope,
        status_code=status.HTTP_201_CREATED,
        responses=ERRORS,
    )
    async def create_task(task_in: schemas.TaskCreate, db: Session = Depends(get_db)):
        task = crud.create_task(db, task_in)
        return schemas.TaskMessageEnvelope(
            message="Task created successfully",
            data=schemas.TaskOut.model_validate(task),
        )

    @app.put("/tasks/{task_id}", response_model=schemas.TaskMessageEnvelope, responses=ERRORS_WITH_404)
    async def update_task(task_id: TaskId, task_in: schemas.TaskUpdate, db: Session = Depends(get_db)):
        task = crud.update_task(db, task_id, task_in)
        if not task:
            raise _not_found(task_id)
        return schemas.TaskMessageEnvelope(
            message="Task updated successfully",
            data=schemas.TaskOut.model_validate(task),
        )

    @app.patch("/tasks/{task_id}", response_model=schemas.TaskMessageEnvelope, responses=ERRORS_WITH_404)
    async def patch_task(task_id: TaskId, task_in: schemas.TaskPatch, db: Session = Depends(get_db)):
        db_task = crud.get_task(db, task_id)
        if not db_task:
            raise _not_found(task_id)
        if not crud.patch_fields(task_in):
            raise BadRequestError("No valid fields to update")
        task = crud.patch_task(db, db_task, task_in)
        return schemas.TaskMessageEnvelope(
            message="Task updated successfully",
            data=schemas.TaskOut.model_validate(task),
        )

    @app.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT, responses=ERRORS_WITH_404)
    async def delete_task(task_id: TaskId, db: Session = Depends(get_db)):
        if not crud.delete_task(db, task_id):
            raise _not_found(task_id)
        return None

    return app


def run() -> None:
    import uvicorn

    settings = Settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # uvicorn traps SIGINT/SIGTERM, stops accepting connections and waits
    # at most SHUTDOWN_TIMEOUT seconds for in-flight requests before the
    # lifespan shutdown closes the database.
    uvicorn.run(
        create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        timeout_graceful_shutdown=settings.SHUTDOWN_TIMEOUT,
        log_config=None,
    )


app = create_app()


if __name__ == "__main__":
    run()
