"""
HTTP routes for the Taskboard API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from taskboard.db import DbClient, DuplicateEmailError, TaskRecord, TaskStatus, UserRecord
from taskboard.dependencies import (
    get_admin_principal,
    get_auth_service,
    get_current_principal,
    get_db_client,
)
from taskboard.errors import InvalidToken, NotFound, ValidationError
from taskboard.policy import Principal
from taskboard.schemas import (
    AuthData,
    Envelope,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    StatsData,
    TaskCreateRequest,
    TaskData,
    TaskListData,
    TaskOut,
    TaskStats,
    TaskUpdateRequest,
    UserData,
    UserListData,
    UserOut,
    UserUpdateRequest,
)
from taskboard.security import AuthService

logger = logging.getLogger(__name__)

router = APIRouter()
auth_router = APIRouter(prefix="/auth", tags=["auth"])
task_router = APIRouter(prefix="/tasks", tags=["tasks"])
user_router = APIRouter(prefix="/users", tags=["users"])

TASK_NOT_FOUND = "Task not found"


def _user_out(user: UserRecord) -> UserOut:
    return UserOut(**user.as_dict())


def _task_out(task: TaskRecord) -> TaskOut:
    return TaskOut(**task.as_dict())


def _duplicate_email() -> ValidationError:
    return ValidationError(
        "User with this email already exists",
        errors=[{"field": "email", "message": "Email is already registered"}],
    )


def _require_changes(fields: dict) -> dict:
    if not fields:
        raise ValidationError("No fields to update")
    return fields


# -- auth -------------------------------------------------------------------


@auth_router.post("/register", response_model=Envelope[AuthData], status_code=201)
def register(
    payload: RegisterRequest,
    db: DbClient = Depends(get_db_client),
    auth: AuthService = Depends(get_auth_service),
):
    if db.get_user_by_email(payload.email):
        raise _duplicate_email()
    try:
        user = db.create_user(
            payload.name, payload.email, auth.hash_password(payload.password)
        )
    except DuplicateEmailError:
        raise _duplicate_email()
    logger.info("Registered user %s", user.id)
    return Envelope(
        message="User registered successfully",
        data=AuthData(user=_user_out(user), token=auth.issue_token(user)),
    )


@auth_router.post("/login", response_model=Envelope[AuthData])
def login(
    payload: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
):
    user, token = auth.authenticate(payload.email, payload.password)
    return Envelope(
        message="Login successful",
        data=AuthData(user=_user_out(user), token=token),
    )


@auth_router.get("/profile", response_model=Envelope[UserData])
def get_profile(
    principal: Principal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    user = db.get_user(principal.user_id)
    if not user:
        raise NotFound("User not found")
    return Envelope(data=UserData(user=_user_out(user)))


@auth_router.put("/profile", response_model=Envelope[UserData])
def update_profile(
    payload: ProfileUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
    auth: AuthService = Depends(get_auth_service),
):
    fields = _require_changes(payload.model_dump(exclude_unset=True))
    if "password" in fields:
        fields["password_hash"] = auth.hash_password(fields.pop("password"))
    try:
        user = db.update_user(principal.user_id, fields)
    except DuplicateEmailError:
        raise _duplicate_email()
    if not user:
        raise NotFound("User not found")
    return Envelope(message="Profile updated successfully", data=UserData(user=_user_out(user)))


# -- tasks ------------------------------------------------------------------


@task_router.get("", response_model=Envelope[TaskListData])
def list_tasks(
    status: Optional[TaskStatus] = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    tasks = db.list_tasks(principal, status=status)
    return Envelope(
        data=TaskListData(tasks=[_task_out(t) for t in tasks], count=len(tasks))
    )


@task_router.post("", response_model=Envelope[TaskData], status_code=201)
def create_task(
    payload: TaskCreateRequest,
    principal: Principal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    if db.get_user(principal.user_id) is None:
        # The token outlived its user.
        raise InvalidToken()
    task = db.create_task(principal, payload.model_dump(exclude_none=True))
    return Envelope(message="Task created successfully", data=TaskData(task=_task_out(task)))


@task_router.get("/stats", response_model=Envelope[StatsData])
def task_stats(
    principal: Principal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    stats = db.task_stats(principal)
    return Envelope(data=StatsData(stats=TaskStats(**stats)))


@task_router.get("/{task_id}", response_model=Envelope[TaskData])
def get_task(
    task_id: str,
    principal: Principal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    task = db.get_task(principal, task_id)
    if not task:
        raise NotFound(TASK_NOT_FOUND)
    return Envelope(data=TaskData(task=_task_out(task)))


@task_router.put("/{task_id}", response_model=Envelope[TaskData])
def update_task(
    task_id: str,
    payload: TaskUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    fields = _require_changes(payload.model_dump(exclude_unset=True))
    task = db.update_task(principal, task_id, fields)
    if not task:
        raise NotFound(TASK_NOT_FOUND)
    return Envelope(message="Task updated successfully", data=TaskData(task=_task_out(task)))


@task_router.delete("/{task_id}", response_model=Envelope)
def delete_task(
    task_id: str,
    principal: Principal = Depends(get_current_principal),
    db: DbClient = Depends(get_db_client),
):
    if not db.delete_task(principal, task_id):
        raise NotFound(TASK_NOT_FOUND)
    return Envelope(message="Task deleted successfully")


# -- users (administrators only) --------------------------------------------


@user_router.get("", response_model=Envelope[UserListData])
def list_users(
    principal: Principal = Depends(get_admin_principal),
    db: DbClient = Depends(get_db_client),
):
    users = db.list_users()
    return Envelope(
        data=UserListData(users=[_user_out(u) for u in users], count=len(users))
    )


@user_router.get("/{user_id}", response_model=Envelope[UserData])
def get_user(
    user_id: str,
    principal: Principal = Depends(get_admin_principal),
    db: DbClient = Depends(get_db_client),
):
    user = db.get_user(user_id)
    if not user:
        raise NotFound("User not found")
    return Envelope(data=UserData(user=_user_out(user)))


@user_router.put("/{user_id}", response_model=Envelope[UserData])
def update_user(
    user_id: str,
    payload: UserUpdateRequest,
    principal: Principal = Depends(get_admin_principal),
    db: DbClient = Depends(get_db_client),
):
    fields = _require_changes(payload.model_dump(exclude_unset=True))
    try:
        user = db.update_user(user_id, fields)
    except DuplicateEmailError:
        raise _duplicate_email()
    if not user:
        raise NotFound("User not found")
    logger.info("Administrator %s updated user %s", principal.user_id, user_id)
    return Envelope(message="User updated successfully", data=UserData(user=_user_out(user)))


@user_router.delete("/{user_id}", response_model=Envelope)
def delete_user(
    user_id: str,
    principal: Principal = Depends(get_admin_principal),
    db: DbClient = Depends(get_db_client),
):
    if user_id == principal.user_id:
        raise ValidationError("You cannot delete your own account")
    if not db.delete_user(user_id):
        raise NotFound("User not found")
    logger.info("Administrator %s deleted user %s", principal.user_id, user_id)
    return Envelope(message="User deleted successfully")


router.include_router(auth_router)
router.include_router(task_router)
router.include_router(user_router)
