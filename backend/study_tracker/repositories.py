"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
subjects, notes, study sessions). Owned aggregates are always looked up
by `(id, owner_id)` together, so a row belonging to somebody else is
indistinguishable from a missing one. Repositories return SQLModel
objects and perform commits/refreshes where appropriate.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from . import models
from .errors import UnexpectedError


class UserRepository:
    """Credential store: CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_username(self, username: str) -> Optional[models.User]:
        """Return a `User` by username or `None` if not found."""
        stmt = select(models.User).where(models.User.username == username)
        return self.session.exec(stmt).first()

    def get_by_email(self, email: str) -> Optional[models.User]:
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def list_all(self) -> List[models.User]:
        stmt = select(models.User).order_by(models.User.id)
        return self.session.exec(stmt).all()


class SubjectRepository:
    """CRUD operations for `Subject` rows scoped to an owner."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, subject: models.Subject) -> models.Subject:
        self.session.add(subject)
        self.session.commit()
        self.session.refresh(subject)
        return subject

    def get_owned(self, subject_id: int, owner_id: int) -> Optional[models.Subject]:
        """Return the subject only if it exists and belongs to `owner_id`."""
        stmt = select(models.Subject).where(
            models.Subject.id == subject_id,
            models.Subject.owner_id == owner_id
        )
        return self.session.exec(stmt).first()

    def list_for_owner(self, owner_id: int) -> List[models.Subject]:
        """Return the owner's subjects, most recently created first."""
        stmt = (
            select(models.Subject)
            .where(models.Subject.owner_id == owner_id)
            .order_by(models.Subject.created_at.desc(), models.Subject.id.desc())
        )
        return self.session.exec(stmt).all()

    def save(self, subject: models.Subject) -> models.Subject:
        self.session.add(subject)
        self.session.commit()
        self.session.refresh(subject)
        return subject

    def delete_with_notes(self, subject: models.Subject) -> int:
        """Delete `subject` and every note of the same owner under it.

        Both deletes share one commit, so a failure leaves neither applied.
        Returns the number of notes removed.
        """
        notes = NoteRepository(self.session).list_for_subject(subject.owner_id, subject.id)
        try:
            for n in notes:
                self.session.delete(n)
            # notes reference the subject row, remove them first
            self.session.flush()
            self.session.delete(subject)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise UnexpectedError("Failed to delete subject") from exc
        return len(notes)


class NoteRepository:
    """CRUD and search helpers for `Note` rows scoped to an owner."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, note: models.Note) -> models.Note:
        self.session.add(note)
        self.session.commit()
        self.session.refresh(note)
        return note

    def get_owned(self, note_id: int, owner_id: int) -> Optional[models.Note]:
        stmt = select(models.Note).where(
            models.Note.id == note_id,
            models.Note.owner_id == owner_id
        )
        return self.session.exec(stmt).first()

    def list_for_owner(self, owner_id: int) -> List[models.Note]:
        stmt = (
            select(models.Note)
            .where(models.Note.owner_id == owner_id)
            .order_by(models.Note.created_at.desc(), models.Note.id.desc())
        )
        return self.session.exec(stmt).all()

    def list_for_subject(self, owner_id: int, subject_id: int) -> List[models.Note]:
        stmt = (
            select(models.Note)
            .where(models.Note.owner_id == owner_id, models.Note.subject_id == subject_id)
            .order_by(models.Note.created_at.desc(), models.Note.id.desc())
        )
        return self.session.exec(stmt).all()

    def search_titles(self, owner_id: int, query: str) -> List[models.Note]:
        """Case-insensitive substring match on the title.

        `autoescape` makes `%` and `_` in `query` match literally, so the
        filter behaves like a plain "contains" on every backend.
        """
        stmt = (
            select(models.Note)
            .where(
                models.Note.owner_id == owner_id,
                func.lower(models.Note.title).contains(query.lower(), autoescape=True)
            )
            .order_by(models.Note.created_at.desc(), models.Note.id.desc())
        )
        return self.session.exec(stmt).all()

    def save(self, note: models.Note) -> models.Note:
        self.session.add(note)
        self.session.commit()
        self.session.refresh(note)
        return note

    def delete(self, note: models.Note) -> None:
        self.session.delete(note)
        self.session.commit()


class StudySessionRepository:
    """CRUD and range queries for `StudySession` rows."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, study_session: models.StudySession) -> models.StudySession:
        self.session.add(study_session)
        self.session.commit()
        self.session.refresh(study_session)
        return study_session

    def get_owned(self, session_id: int, owner_id: int) -> Optional[models.StudySession]:
        stmt = select(models.StudySession).where(
            models.StudySession.id == session_id,
            models.StudySession.owner_id == owner_id
        )
        return self.session.exec(stmt).first()

    def list_for_owner(
        self,
        owner_id: int,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
        subject_id: Optional[int] = None,
    ) -> List[models.StudySession]:
        """Return sessions overlapping `[range_start, range_end]`, earliest first.

        A session overlaps when `start_at <= range_end` and
        `end_at >= range_start`; an omitted bound is unbounded.
        """
        stmt = select(models.StudySession).where(models.StudySession.owner_id == owner_id)
        if range_end is not None:
            stmt = stmt.where(models.StudySession.start_at <= range_end)
        if range_start is not None:
            stmt = stmt.where(models.StudySession.end_at >= range_start)
        if subject_id is not None:
            stmt = stmt.where(models.StudySession.subject_id == subject_id)
        stmt = stmt.order_by(models.StudySession.start_at, models.StudySession.id)
        return self.session.exec(stmt).all()

    def save(self, study_session: models.StudySession) -> models.StudySession:
        self.session.add(study_session)
        self.session.commit()
        self.session.refresh(study_session)
        return study_session

    def delete(self, study_session: models.StudySession) -> None:
        self.session.delete(study_session)
        self.session.commit()
