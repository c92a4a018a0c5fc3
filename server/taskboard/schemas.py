"""
Pydantic schemas for the Taskboard API.
"""

from __future__ import annotations

from typing import Annotated, Generic, Optional, TypeVar

from pydantic import (
    BaseModel,
    EmailStr,
    Field,
    StringConstraints,
    model_serializer,
    model_validator,
)

from taskboard.db import TaskPriority, TaskStatus
from taskboard.policy import Role

Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
Password = Annotated[str, StringConstraints(min_length=6, max_length=128)]

T = TypeVar("T")


def _reject_explicit_nulls(model: BaseModel, fields: tuple[str, ...]) -> None:
    for name in fields:
        if name in model.model_fields_set and getattr(model, name) is None:
            raise ValueError(f"{name} cannot be null")


class FieldError(BaseModel):
    field: str
    message: str


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None
    errors: Optional[list[FieldError]] = None

    @model_serializer(mode="wrap")
    def _omit_empty(self, handler):
        body = handler(self)
        for key in ("message", "data", "errors"):
            if body.get(key) is None:
                body.pop(key, None)
        return body


class RegisterRequest(BaseModel):
    name: Name
    email: EmailStr
    password: Password


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class ProfileUpdateRequest(BaseModel):
    name: Optional[Name] = None
    email: Optional[EmailStr] = None
    password: Optional[Password] = None

    @model_validator(mode="after")
    def _no_nulls(self):
        _reject_explicit_nulls(self, ("name", "email", "password"))
        return self


class UserUpdateRequest(BaseModel):
    name: Optional[Name] = None
    email: Optional[EmailStr] = None
    role: Optional[Role] = None

    @model_validator(mode="after")
    def _no_nulls(self):
        _reject_explicit_nulls(self, ("name", "email", "role"))
        return self


class TaskCreateRequest(BaseModel):
    title: Title
    description: Optional[str] = Field(default=None, max_length=10_000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None


class TaskUpdateRequest(BaseModel):
    """Partial update: only fields present in the request body are applied."""

    title: Optional[Title] = None
    description: Optional[str] = Field(default=None, max_length=10_000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None

    @model_validator(mode="after")
    def _no_nulls(self):
        # description may be cleared with null; the rest may not.
        _reject_explicit_nulls(self, ("title", "status", "priority"))
        return self


class UserOut(BaseModel):
    id: str
    name: str
    email: str
    role: Role
    created_at: float
    updated_at: float


class TaskOut(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    user_id: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    created_at: float
    updated_at: float


class TaskStats(BaseModel):
    total: int
    pending: int
    in_progress: int
    completed: int


class AuthData(BaseModel):
    user: UserOut
    token: str


class UserData(BaseModel):
    user: UserOut


class UserListData(BaseModel):
    users: list[UserOut]
    count: int


class TaskData(BaseModel):
    task: TaskOut


class TaskListData(BaseModel):
    tasks: list[TaskOut]
    count: int


class StatsData(BaseModel):
    stats: TaskStats
