"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Every Subject, Note and StudySession row is owned by exactly one `User`
through `owner_id`; all queries in the repositories filter on it.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    """Allowed lifecycle states of a study session."""
    planned = "planned"
    completed = "completed"
    canceled = "canceled"


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `username`: unique login name
    - `email`: unique contact address
    - `password_hash`: hashed password string (never store plaintext)
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Subject(SQLModel, table=True):
    """A subject of study owned by a user."""
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key='user.id', index=True)
    name: str
    description: Optional[str] = None
    color: Optional[str] = '#FFD700'
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Note(SQLModel, table=True):
    """A note attached to a `Subject` of the same owner."""
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key='user.id', index=True)
    subject_id: int = Field(foreign_key='subject.id', index=True)
    title: str = Field(index=True)
    content: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class StudySession(SQLModel, table=True):
    """A planned block of study time `[start_at, end_at]` for a subject.

    `subject_id` is deliberately not a foreign key: deleting a subject
    leaves its sessions in place, pointing at the removed id.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key='user.id', index=True)
    subject_id: int = Field(index=True)
    title: Optional[str] = Field(default=None, max_length=120)
    notes: Optional[str] = None
    start_at: datetime = Field(index=True)
    end_at: datetime
    status: SessionStatus = Field(default=SessionStatus.planned)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
