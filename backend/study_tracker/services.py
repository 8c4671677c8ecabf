"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories.
Services are intentionally thin: they perform validation, enforce
ownership and persist aggregates via repositories. Failures are raised
as the typed errors from `errors`, which the HTTP layer maps to status
codes.

Ownership is always resolved with a single `(id, owner_id)` lookup, so a
resource owned by another user yields the same "not found" outcome as a
missing one.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from . import models, repositories
from .auth import issue_token
from .config import settings
from .errors import ValidationError, AuthError, ForbiddenError, NotFoundError, ConflictError

PWD_CTX = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
    pbkdf2_sha256__default_rounds=settings.PASSWORD_HASH_ROUNDS,
)
SESSION_TITLE_MAX = 120

logger = logging.getLogger("study_tracker.services")


def _has_text(value) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    """Empty strings clear optional text fields."""
    return value if value else None


def _as_utc(value: datetime) -> datetime:
    """Normalise to aware UTC; naive input is taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _strip_immutable(patch: dict) -> dict:
    """Copy a patch without the fields no update may change."""
    patch = dict(patch)
    for key in ('id', 'owner_id', 'created_at', 'updated_at'):
        patch.pop(key, None)
    return patch


class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, username: Optional[str], email: Optional[str], password: Optional[str],
                 first_name: Optional[str] = None, last_name: Optional[str] = None) -> str:
        """Create a new user with a hashed password and return a token.

        Username uniqueness is checked before email uniqueness.
        """
        if not (_has_text(username) and _has_text(email) and password):
            raise ValidationError("username, email and password are required.")
        if self.user_repo.get_by_username(username):
            raise ConflictError("Username already taken.")
        if self.user_repo.get_by_email(email):
            raise ConflictError("Email already in use.")
        u = models.User(
            username=username,
            email=email,
            password_hash=PWD_CTX.hash(password),
            first_name=first_name,
            last_name=last_name,
        )
        try:
            user = self.user_repo.create(u)
        except IntegrityError:
            # lost a race with a concurrent registration
            self.session.rollback()
            raise ConflictError("Username or email already in use.")
        logger.info("user_registered id=%s username=%s", user.id, user.username)
        return issue_token(user.id, user.username)

    def authenticate(self, username: Optional[str], password: Optional[str]) -> str:
        """Verify credentials and return a signed token.

        Unknown users and wrong passwords raise the same `AuthError` so
        callers cannot tell which check failed.
        """
        if not username or not password:
            raise ValidationError("username and password are required.")
        user = self.user_repo.get_by_username(username)
        if not user or not PWD_CTX.verify(password, user.password_hash):
            logger.info("login_failed username=%s", username)
            raise AuthError("Invalid credentials.")
        return issue_token(user.id, user.username)


class SubjectService:
    """Create, read, update and delete subjects for their owner."""
    def __init__(self, session: Session):
        self.session = session
        self.subject_repo = repositories.SubjectRepository(session)
        self.note_repo = repositories.NoteRepository(session)

    def get_owned(self, owner_id: int, subject_id: int) -> models.Subject:
        subject = self.subject_repo.get_owned(subject_id, owner_id)
        if not subject:
            raise NotFoundError("Subject not found")
        return subject

    def create(self, owner_id: int, data: dict) -> models.Subject:
        if not _has_text(data.get('name')):
            raise ValidationError("name is required")
        subject = models.Subject(
            owner_id=owner_id,
            name=data['name'],
            description=_blank_to_none(data.get('description')),
        )
        if data.get('color'):
            subject.color = data['color']
        return self.subject_repo.create(subject)

    def list_for_owner(self, owner_id: int) -> List[Tuple[models.Subject, List[models.Note]]]:
        """Return `(subject, notes)` pairs, newest subjects and notes first."""
        return [
            (s, self.note_repo.list_for_subject(owner_id, s.id))
            for s in self.subject_repo.list_for_owner(owner_id)
        ]

    def get(self, owner_id: int, subject_id: int) -> Tuple[models.Subject, List[models.Note]]:
        subject = self.get_owned(owner_id, subject_id)
        return subject, self.note_repo.list_for_subject(owner_id, subject.id)

    def update(self, owner_id: int, subject_id: int, patch: dict) -> models.Subject:
        """Apply a partial update; unset fields keep their value."""
        subject = self.get_owned(owner_id, subject_id)
        patch = _strip_immutable(patch)
        if 'name' in patch:
            if not _has_text(patch['name']):
                raise ValidationError("name cannot be empty")
            subject.name = patch['name']
        if 'description' in patch:
            subject.description = _blank_to_none(patch['description'])
        if 'color' in patch:
            subject.color = _blank_to_none(patch['color'])
        subject.updated_at = models.utcnow()
        return self.subject_repo.save(subject)

    def delete(self, owner_id: int, subject_id: int) -> models.Subject:
        """Delete the subject and its notes; return a detached copy of it.

        Study sessions pointing at the subject are left untouched.
        """
        subject = self.get_owned(owner_id, subject_id)
        snapshot = models.Subject(**subject.model_dump())
        removed = self.subject_repo.delete_with_notes(subject)
        logger.info("subject_deleted id=%s owner=%s notes_removed=%s", snapshot.id, owner_id, removed)
        return snapshot


class NoteService:
    """Notes, always created under a subject of the same owner."""
    def __init__(self, session: Session):
        self.session = session
        self.note_repo = repositories.NoteRepository(session)
        self.subjects = SubjectService(session)

    def _get_owned(self, owner_id: int, note_id: int, subject_id: Optional[int] = None) -> models.Note:
        """Resolve a note for its owner, optionally scoped to one subject."""
        if subject_id is not None:
            self.subjects.get_owned(owner_id, subject_id)
        note = self.note_repo.get_owned(note_id, owner_id)
        if not note or (subject_id is not None and note.subject_id != subject_id):
            raise NotFoundError("Note not found")
        return note

    def create(self, owner_id: int, subject_id: int, data: dict) -> models.Note:
        subject = self.subjects.get_owned(owner_id, subject_id)
        if not _has_text(data.get('title')):
            raise ValidationError("title is required")
        note = models.Note(
            owner_id=owner_id,
            subject_id=subject.id,
            title=data['title'],
            content=_blank_to_none(data.get('content')),
        )
        return self.note_repo.create(note)

    def list_for_owner(self, owner_id: int) -> List[models.Note]:
        return self.note_repo.list_for_owner(owner_id)

    def list_for_subject(self, owner_id: int, subject_id: int) -> List[models.Note]:
        self.subjects.get_owned(owner_id, subject_id)
        return self.note_repo.list_for_subject(owner_id, subject_id)

    def search(self, owner_id: int, query: Optional[str]) -> List[models.Note]:
        """Case-insensitive title search within the owner's notes."""
        if not _has_text(query):
            raise ValidationError("Search query is required")
        return self.note_repo.search_titles(owner_id, query)

    def get(self, owner_id: int, note_id: int) -> models.Note:
        return self._get_owned(owner_id, note_id)

    def update(self, owner_id: int, note_id: int, patch: dict, subject_id: Optional[int] = None) -> models.Note:
        note = self._get_owned(owner_id, note_id, subject_id)
        patch = _strip_immutable(patch)
        if 'title' in patch:
            if not _has_text(patch['title']):
                raise ValidationError("title cannot be empty")
            note.title = patch['title']
        if 'content' in patch:
            note.content = _blank_to_none(patch['content'])
        new_subject_id = patch.get('subject_id')
        if new_subject_id is not None and new_subject_id != note.subject_id:
            note.subject_id = self.subjects.get_owned(owner_id, new_subject_id).id
        note.updated_at = models.utcnow()
        return self.note_repo.save(note)

    def delete(self, owner_id: int, note_id: int, subject_id: Optional[int] = None) -> None:
        note = self._get_owned(owner_id, note_id, subject_id)
        self.note_repo.delete(note)


class StudySessionService:
    """Schedule study sessions as `[start_at, end_at]` intervals."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.StudySessionRepository(session)
        self.subject_repo = repositories.SubjectRepository(session)

    @staticmethod
    def _check_interval(start_at: datetime, end_at: datetime):
        if end_at <= start_at:
            raise ValidationError("endAt must be after startAt")

    @staticmethod
    def _clean_title(title: Optional[str]) -> Optional[str]:
        title = _blank_to_none(title)
        if title is not None and len(title) > SESSION_TITLE_MAX:
            raise ValidationError(f"title must be at most {SESSION_TITLE_MAX} characters")
        return title

    def create(self, owner_id: int, data: dict) -> models.StudySession:
        """Create a `planned` session for one of the owner's subjects."""
        subject_id = data.get('subject_id')
        start_at = data.get('start_at')
        end_at = data.get('end_at')
        if subject_id is None or start_at is None or end_at is None:
            raise ValidationError("subjectId, startAt and endAt are required")
        if not self.subject_repo.get_owned(subject_id, owner_id):
            raise NotFoundError("Subject not found")
        start_at, end_at = _as_utc(start_at), _as_utc(end_at)
        self._check_interval(start_at, end_at)
        s = models.StudySession(
            owner_id=owner_id,
            subject_id=subject_id,
            start_at=start_at,
            end_at=end_at,
            title=self._clean_title(data.get('title')),
            notes=_blank_to_none(data.get('notes')),
            status=models.SessionStatus.planned,
        )
        return self.repo.create(s)

    def list_for_owner(self, owner_id: int, range_start: Optional[datetime] = None,
                       range_end: Optional[datetime] = None,
                       subject_id: Optional[int] = None) -> List[models.StudySession]:
        """Return sessions overlapping the optional range, earliest first."""
        range_start = _as_utc(range_start) if range_start is not None else None
        range_end = _as_utc(range_end) if range_end is not None else None
        if range_start is not None and range_end is not None and range_start > range_end:
            raise ValidationError("'from' must not be after 'to'")
        return self.repo.list_for_owner(owner_id, range_start, range_end, subject_id)

    def get(self, owner_id: int, session_id: int) -> models.StudySession:
        s = self.repo.get_owned(session_id, owner_id)
        if not s:
            raise NotFoundError("Session not found")
        return s

    def update(self, owner_id: int, session_id: int, patch: dict) -> models.StudySession:
        """Apply a partial update.

        Nulls for `subject_id`, `start_at`, `end_at` and `status` count as
        absent; empty `title`/`notes` clear the field. The interval is
        re-checked on the merged old/new bounds.
        """
        s = self.get(owner_id, session_id)
        patch = _strip_immutable(patch)
        updates = {}
        if patch.get('subject_id') is not None:
            if not self.subject_repo.get_owned(patch['subject_id'], owner_id):
                raise NotFoundError("Subject not found or not owned by user")
            updates['subject_id'] = patch['subject_id']
        if patch.get('start_at') is not None:
            updates['start_at'] = _as_utc(patch['start_at'])
        if patch.get('end_at') is not None:
            updates['end_at'] = _as_utc(patch['end_at'])
        if 'title' in patch:
            updates['title'] = self._clean_title(patch['title'])
        if 'notes' in patch:
            updates['notes'] = _blank_to_none(patch['notes'])
        if patch.get('status') is not None:
            try:
                updates['status'] = models.SessionStatus(patch['status'])
            except ValueError:
                raise ValidationError("status must be one of: planned, completed, canceled")
        if not updates:
            raise ValidationError("No valid fields provided to update")
        # stored values may come back naive depending on the backend
        self._check_interval(
            _as_utc(updates.get('start_at', s.start_at)),
            _as_utc(updates.get('end_at', s.end_at)),
        )
        for key, value in updates.items():
            setattr(s, key, value)
        s.updated_at = models.utcnow()
        return self.repo.save(s)

    def delete(self, owner_id: int, session_id: int) -> None:
        self.repo.delete(self.get(owner_id, session_id))


class UserDirectoryService:
    """Read-only user views: profile, directory and aggregate dashboard."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.subjects = SubjectService(session)

    def me(self, user_id: int) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("User not found.")
        return user

    def list_users(self) -> List[models.User]:
        return self.user_repo.list_all()

    def get_user(self, requester_id: int, user_id: int) -> models.User:
        """Users may only read their own record."""
        if requester_id != user_id:
            raise ForbiddenError("Unauthorized")
        return self.me(user_id)

    def users_with_subjects(self):
        """Return `(user, [(subject, notes), ...])` for every user."""
        return [(u, self.subjects.list_for_owner(u.id)) for u in self.user_repo.list_all()]
