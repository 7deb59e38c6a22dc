from typing import Annotated, Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StringConstraints, field_validator

Priority = Literal["low", "medium", "high"]

# largest value SQLite can bind as INTEGER
MAX_SQLITE_INT = 2**63 - 1

# whitespace is stripped before the length bounds are checked
Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
Description = Annotated[str, StringConstraints(strip_whitespace=True, max_length=1000)]


class TaskCreate(BaseModel):
    title: Title
    description: Optional[Description] = None
    priority: Priority = "medium"


class TaskUpdate(BaseModel):
    """Full replacement: every mutable field must be sent, description may be null."""

    title: Title
    description: Optional[Description]
    completed: StrictBool
    priority: Priority


class TaskPatch(BaseModel):
    """Partial update. Only the fields actually sent end up in ``model_fields_set``."""

    title: Optional[Title] = None
    description: Optional[Description] = None
    completed: Optional[StrictBool] = None
    priority: Optional[Priority] = None

    @field_validator("title", "completed", "priority", mode="before")
    @classmethod
    def not_null(cls, value):
        # only description can be cleared with an explicit null
        if value is None:
            raise ValueError("Field may be omitted but cannot be null")
        return value


class ListTasksQuery(BaseModel):
    completed: Optional[Literal["true", "false"]] = None
    priority: Optional[Priority] = None
    limit: Optional[int] = Field(default=None, ge=1, le=100)
    offset: Optional[int] = Field(default=None, ge=0, le=MAX_SQLITE_INT)


class TaskOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    completed: int
    priority: Priority
    created_at: str
    updated_at: str

    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool = Field(serialization_alias="hasMore")


class TaskEnvelope(BaseModel):
    data: TaskOut


class TaskMessageEnvelope(BaseModel):
    message: str
    data: TaskOut


class TaskPage(BaseModel):
    data: List[TaskOut]
    pagination: Pagination


class ErrorDetail(BaseModel):
    field: str
    message: str
    value: Optional[Any] = None


class ErrorResponse(BaseModel):
    error: str
    message: str
    timestamp: str
    details: Optional[List[ErrorDetail]] = None
