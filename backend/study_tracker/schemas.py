"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. Field names travel as camelCase on the
wire (`subjectId`, `startAt`) while snake_case is still accepted on input.
Request fields are optional at this layer; presence rules live in the
services so the same checks apply to every caller.
"""

from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import SessionStatus

# Largest id a signed 64-bit integer column holds.
MAX_ID = 2**63 - 1

DbId = Annotated[int, Field(ge=1, le=MAX_ID)]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Auth / users

class RegisterIn(ApiModel):
    """Payload for user registration."""
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class LoginIn(ApiModel):
    username: Optional[str] = None
    password: Optional[str] = None


class TokenOut(ApiModel):
    """Authentication response containing a bearer token."""
    message: str
    token: str


class UserOut(ApiModel):
    """User record without the password hash."""
    id: int
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: datetime


class UserEnvelope(ApiModel):
    user: UserOut


class UserSummary(ApiModel):
    id: int
    username: str


# Notes

class NoteIn(ApiModel):
    title: Optional[str] = None
    content: Optional[str] = None


class NotePatch(ApiModel):
    """Partial note update; `subjectId` moves the note to another subject."""
    title: Optional[str] = None
    content: Optional[str] = None
    subject_id: Optional[DbId] = None


class NoteOut(ApiModel):
    id: int
    owner_id: int
    subject_id: int
    title: str
    content: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# Subjects

class SubjectIn(ApiModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None


class SubjectPatch(ApiModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None


class SubjectOut(ApiModel):
    id: int
    owner_id: int
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class SubjectWithNotesOut(SubjectOut):
    """Subject enriched with its notes, newest first (dashboard view)."""
    notes: List[NoteOut] = []

    @classmethod
    def build(cls, subject, notes) -> "SubjectWithNotesOut":
        out = cls.model_validate(subject)
        out.notes = [NoteOut.model_validate(n) for n in notes]
        return out


class SubjectDeletedOut(ApiModel):
    message: str
    subject: SubjectOut


class UserWithSubjects(ApiModel):
    id: int
    username: str
    subjects: List[SubjectWithNotesOut]


class MessageOut(ApiModel):
    message: str


# Study sessions

class SessionIn(ApiModel):
    """Create payload; status is not accepted, new sessions are `planned`."""
    subject_id: Optional[DbId] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    title: Optional[str] = None
    notes: Optional[str] = None


class SessionPatch(ApiModel):
    subject_id: Optional[DbId] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    title: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[SessionStatus] = None


class SessionOut(ApiModel):
    id: int
    owner_id: int
    subject_id: int
    title: Optional[str] = None
    notes: Optional[str] = None
    start_at: datetime
    end_at: datetime
    status: SessionStatus
    created_at: datetime
    updated_at: datetime
