"""
Database abstraction for Postgres and an in-memory test implementation.

Both clients hold the credential store (users) and the task store. Task
operations take the calling ``Principal`` and apply the ownership policy as a
row filter, so a task the caller may not see behaves exactly like a missing
one.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional, Protocol

from sqlalchemy import (
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    case,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, joinedload, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from taskboard.policy import Principal, Role, can_access


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


USER_UPDATE_FIELDS = ("name", "email", "role", "password_hash")
TASK_UPDATE_FIELDS = ("title", "description", "status", "priority")


class DuplicateEmailError(ValueError):
    """Raised when a user record would reuse an email that is already taken."""


def normalize_email(email: str) -> str:
    return email.strip().lower()


class DbClient(Protocol):
    """Interface for database access."""

    def create_user(
        self, name: str, email: str, password_hash: str, role: Role = Role.USER
    ) -> "UserRecord":
        ...

    def get_user(self, user_id: str) -> Optional["UserRecord"]:
        ...

    def get_user_by_email(self, email: str) -> Optional["UserRecord"]:
        ...

    def list_users(self) -> list["UserRecord"]:
        ...

    def update_user(self, user_id: str, fields: dict) -> Optional["UserRecord"]:
        ...

    def delete_user(self, user_id: str) -> bool:
        ...

    def list_tasks(
        self, principal: Principal, status: Optional[TaskStatus] = None
    ) -> list["TaskRecord"]:
        ...

    def get_task(self, principal: Principal, task_id: str) -> Optional["TaskRecord"]:
        ...

    def create_task(self, principal: Principal, fields: dict) -> "TaskRecord":
        ...

    def update_task(
        self, principal: Principal, task_id: str, fields: dict
    ) -> Optional["TaskRecord"]:
        ...

    def delete_task(self, principal: Principal, task_id: str) -> bool:
        ...

    def task_stats(self, principal: Principal) -> dict[str, int]:
        ...


@dataclass
class UserRecord:
    id: str
    name: str
    email: str
    password_hash: str
    role: Role = Role.USER
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class TaskRecord:
    id: str
    title: str
    user_id: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())
    user_name: Optional[str] = None
    user_email: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_email": self.user_email,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


def _empty_stats() -> dict[str, int]:
    return {"total": 0, "pending": 0, "in_progress": 0, "completed": 0}


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.tasks: Dict[str, TaskRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.tasks.clear()

    def _email_taken(self, email: str, exclude_id: Optional[str] = None) -> bool:
        return any(
            user.email == email and user.id != exclude_id
            for user in self.users.values()
        )

    def create_user(
        self, name: str, email: str, password_hash: str, role: Role = Role.USER
    ) -> UserRecord:
        email = normalize_email(email)
        if self._email_taken(email):
            raise DuplicateEmailError(email)
        record = UserRecord(
            id=uuid.uuid4().hex,
            name=name,
            email=email,
            password_hash=password_hash,
            role=Role(role),
        )
        self.users[record.id] = record
        return record

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self.users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        email = normalize_email(email)
        for user in self.users.values():
            if user.email == email:
                return user
        return None

    def list_users(self) -> list[UserRecord]:
        return sorted(
            reversed(list(self.users.values())),
            key=lambda user: user.created_at,
            reverse=True,
        )

    def update_user(self, user_id: str, fields: dict) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        if not user:
            return None
        changes = {k: v for k, v in fields.items() if k in USER_UPDATE_FIELDS}
        if "email" in changes:
            changes["email"] = normalize_email(changes["email"])
            if self._email_taken(changes["email"], exclude_id=user_id):
                raise DuplicateEmailError(changes["email"])
        if "role" in changes:
            changes["role"] = Role(changes["role"])
        for key, value in changes.items():
            setattr(user, key, value)
        user.updated_at = time.time()
        return user

    def delete_user(self, user_id: str) -> bool:
        if user_id not in self.users:
            return False
        del self.users[user_id]
        for task_id in [t.id for t in self.tasks.values() if t.user_id == user_id]:
            del self.tasks[task_id]
        return True

    def _with_owner(self, task: TaskRecord) -> TaskRecord:
        owner = self.users.get(task.user_id)
        return replace(
            task,
            user_name=owner.name if owner else None,
            user_email=owner.email if owner else None,
        )

    def _visible(self, principal: Principal) -> list[TaskRecord]:
        return [t for t in self.tasks.values() if can_access(principal, t.user_id)]

    def list_tasks(
        self, principal: Principal, status: Optional[TaskStatus] = None
    ) -> list[TaskRecord]:
        tasks = self._visible(principal)
        if status is not None:
            tasks = [t for t in tasks if t.status == status]
        # Newest first; ties keep the most recent insertion first.
        tasks = sorted(reversed(tasks), key=lambda t: t.created_at, reverse=True)
        return [self._with_owner(t) for t in tasks]

    def get_task(self, principal: Principal, task_id: str) -> Optional[TaskRecord]:
        task = self.tasks.get(task_id)
        if not task or not can_access(principal, task.user_id):
            return None
        return self._with_owner(task)

    def create_task(self, principal: Principal, fields: dict) -> TaskRecord:
        record = TaskRecord(
            id=uuid.uuid4().hex,
            title=fields["title"],
            description=fields.get("description"),
            status=TaskStatus(fields.get("status") or TaskStatus.PENDING),
            priority=TaskPriority(fields.get("priority") or TaskPriority.MEDIUM),
            user_id=principal.user_id,
        )
        self.tasks[record.id] = record
        return self._with_owner(record)

    def update_task(
        self, principal: Principal, task_id: str, fields: dict
    ) -> Optional[TaskRecord]:
        task = self.tasks.get(task_id)
        if not task or not can_access(principal, task.user_id):
            return None
        for key, value in fields.items():
            if key not in TASK_UPDATE_FIELDS:
                continue
            if key == "status":
                value = TaskStatus(value)
            elif key == "priority":
                value = TaskPriority(value)
            setattr(task, key, value)
        task.updated_at = time.time()
        return self._with_owner(task)

    def delete_task(self, principal: Principal, task_id: str) -> bool:
        task = self.tasks.get(task_id)
        if not task or not can_access(principal, task.user_id):
            return False
        del self.tasks[task_id]
        return True

    def task_stats(self, principal: Principal) -> dict[str, int]:
        stats = _empty_stats()
        for task in self._visible(principal):
            stats["total"] += 1
            stats[task.status.value] += 1
        return stats


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        engine_kwargs: dict = {"future": True, "pool_pre_ping": True}
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # One shared connection, so every session and thread sees the same database.
            engine_kwargs.update(
                poolclass=StaticPool, connect_args={"check_same_thread": False}
            )
        else:
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            name=row.name,
            email=row.email,
            password_hash=row.password_hash,
            role=Role(row.role),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_task_record(self, row: "TaskRow") -> TaskRecord:
        owner = row.owner
        return TaskRecord(
            id=row.id,
            title=row.title,
            description=row.description,
            status=TaskStatus(row.status),
            priority=TaskPriority(row.priority),
            user_id=row.user_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
            user_name=owner.name if owner else None,
            user_email=owner.email if owner else None,
        )

    def _email_taken(
        self, session: Session, email: str, exclude_id: Optional[str] = None
    ) -> bool:
        stmt = select(UserRow.id).where(UserRow.email == normalize_email(email))
        if exclude_id is not None:
            stmt = stmt.where(UserRow.id != exclude_id)
        return session.execute(stmt.limit(1)).first() is not None

    def _task_query(self, principal: Principal):
        stmt = select(TaskRow).options(joinedload(TaskRow.owner))
        if not principal.is_admin:
            stmt = stmt.where(TaskRow.user_id == principal.user_id)
        return stmt

    def create_user(
        self, name: str, email: str, password_hash: str, role: Role = Role.USER
    ) -> UserRecord:
        now = time.time()
        email = normalize_email(email)
        with self.Session() as session:
            row = UserRow(
                id=uuid.uuid4().hex,
                name=name,
                email=email,
                password_hash=password_hash,
                role=Role(role).value,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                if self._email_taken(session, email):
                    raise DuplicateEmailError(email) from exc
                raise
            session.refresh(row)
            return self._to_user_record(row)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            return self._to_user_record(row)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self.Session() as session:
            stmt = select(UserRow).where(UserRow.email == normalize_email(email))
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return None
            return self._to_user_record(row)

    def list_users(self) -> list[UserRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(UserRow).order_by(UserRow.created_at.desc())
            ).scalars()
            return [self._to_user_record(row) for row in rows]

    def update_user(self, user_id: str, fields: dict) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            for key, value in fields.items():
                if key not in USER_UPDATE_FIELDS:
                    continue
                if key == "email":
                    value = normalize_email(value)
                elif key == "role":
                    value = Role(value).value
                setattr(row, key, value)
            row.updated_at = time.time()
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                email = fields.get("email")
                if email and self._email_taken(session, email, exclude_id=user_id):
                    raise DuplicateEmailError(normalize_email(email)) from exc
                raise
            session.refresh(row)
            return self._to_user_record(row)

    def delete_user(self, user_id: str) -> bool:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def list_tasks(
        self, principal: Principal, status: Optional[TaskStatus] = None
    ) -> list[TaskRecord]:
        with self.Session() as session:
            stmt = self._task_query(principal)
            if status is not None:
                stmt = stmt.where(TaskRow.status == TaskStatus(status).value)
            stmt = stmt.order_by(TaskRow.created_at.desc())
            rows = session.execute(stmt).scalars().all()
            return [self._to_task_record(row) for row in rows]

    def get_task(self, principal: Principal, task_id: str) -> Optional[TaskRecord]:
        with self.Session() as session:
            stmt = self._task_query(principal).where(TaskRow.id == task_id)
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return None
            return self._to_task_record(row)

    def create_task(self, principal: Principal, fields: dict) -> TaskRecord:
        now = time.time()
        with self.Session() as session:
            row = TaskRow(
                id=uuid.uuid4().hex,
                title=fields["title"],
                description=fields.get("description"),
                status=TaskStatus(fields.get("status") or TaskStatus.PENDING).value,
                priority=TaskPriority(
                    fields.get("priority") or TaskPriority.MEDIUM
                ).value,
                user_id=principal.user_id,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_task_record(row)

    def update_task(
        self, principal: Principal, task_id: str, fields: dict
    ) -> Optional[TaskRecord]:
        with self.Session() as session:
            stmt = self._task_query(principal).where(TaskRow.id == task_id)
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return None
            for key, value in fields.items():
                if key not in TASK_UPDATE_FIELDS:
                    continue
                if key == "status":
                    value = TaskStatus(value).value
                elif key == "priority":
                    value = TaskPriority(value).value
                setattr(row, key, value)
            row.updated_at = time.time()
            session.commit()
            session.refresh(row)
            return self._to_task_record(row)

    def delete_task(self, principal: Principal, task_id: str) -> bool:
        with self.Session() as session:
            stmt = self._task_query(principal).where(TaskRow.id == task_id)
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def task_stats(self, principal: Principal) -> dict[str, int]:
        counts = [func.count(TaskRow.id)]
        for status in TaskStatus:
            counts.append(func.count(case((TaskRow.status == status.value, 1))))
        stmt = select(*counts)
        if not principal.is_admin:
            stmt = stmt.where(TaskRow.user_id == principal.user_id)
        with self.Session() as session:
            row = session.execute(stmt).one()
        stats = _empty_stats()
        stats["total"] = int(row[0] or 0)
        for status, value in zip(TaskStatus, row[1:]):
            stats[status.value] = int(value or 0)
        return stats


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('user', 'admin')", name="ck_users_role"),
        Index("idx_users_email", "email"),
    )

    id = Column(String(32), primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column("password", String(255), nullable=False)
    role = Column(String(50), nullable=False, default=Role.USER.value)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)

    tasks = relationship(
        "TaskRow",
        back_populates="owner",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class TaskRow(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed')",
            name="ck_tasks_status",
        ),
        CheckConstraint(
            "priority IN ('low', 'medium', 'high')", name="ck_tasks_priority"
        ),
        Index("idx_tasks_user_id", "user_id"),
        Index("idx_tasks_status", "status"),
    )

    id = Column(String(32), primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(50), nullable=False, default=TaskStatus.PENDING.value)
    priority = Column(String(50), nullable=False, default=TaskPriority.MEDIUM.value)
    user_id = Column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)

    owner = relationship("UserRow", back_populates="tasks")
