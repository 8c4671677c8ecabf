"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the study tracker backend.
Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON responses. Services raise typed errors from
`errors`; the exception handlers below turn them into `{"error": ...}`
bodies with the matching status code.

Endpoints implemented:
- POST /auth/register (/auth/sign-up), POST /auth/login (/auth/sign-in)
- GET /auth/me
- GET, POST /subjects; GET, PUT, DELETE /subjects/{id}
- POST /subjects/{id}/notes; PUT, DELETE /subjects/{id}/notes/{note_id}
- GET /notes, GET /notes/search, GET, PUT, DELETE /notes/{id}
- GET, POST /sessions; GET, PUT, PATCH, DELETE /sessions/{id}
- GET /users, GET /users/subjects, GET /users/{id}
- GET /health
"""

from datetime import datetime
from typing import Annotated, List, Optional
import json
import logging
import time
import uuid

from fastapi import FastAPI, Depends, Path, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, HTMLResponse, Response
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import schemas, services
from .auth import CurrentUser, get_current_user
from .config import settings
from .database import create_db_and_tables, get_session
from .errors import StudyTrackerError, AuthError

app = FastAPI(title="Study Tracker API")
logger = logging.getLogger("study_tracker.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

# Path ids must fit the integer primary-key columns.
PathId = Annotated[int, Path(ge=1, le=schemas.MAX_ID)]

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


def _request_log_payload(request: Request, req_id: str, started: float, **extra) -> str:
    payload = {
        "request_id": req_id,
        "path": request.url.path,
        "method": request.method,
        **extra,
        "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
        "client": request.client.host if request.client else "unknown",
    }
    return json.dumps(payload, ensure_ascii=True)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("request_failed %s", _request_log_payload(request, req_id, started))
        raise
    response.headers["X-Request-ID"] = req_id
    logger.info(
        "request_done %s",
        _request_log_payload(request, req_id, started, status_code=response.status_code),
    )
    return response


# -------- Error mapping --------

@app.exception_handler(StudyTrackerError)
async def domain_error_handler(request: Request, exc: StudyTrackerError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)


def _describe_validation(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "invalid request"
    first = errors[0]
    raw_loc = first.get("loc") or ("",)
    loc = [str(p) for p in raw_loc if p not in ("body", "query", "path")]
    if raw_loc[0] == "path":
        return f"Invalid {'.'.join(loc) or 'path parameter'} format"
    return f"{'.'.join(loc)}: {first.get('msg')}" if loc else str(first.get("msg"))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # malformed input is a 400 here, not FastAPI's default 422
    return JSONResponse(status_code=400, content={"error": _describe_validation(exc)})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s", request.url.path)
    return JSONResponse(status_code=500, content={"error": "Unexpected server error"})


# -------- Auth --------

@app.post('/auth/register', status_code=201, response_model=schemas.TokenOut)
@app.post('/auth/sign-up', status_code=201, response_model=schemas.TokenOut, include_in_schema=False)
def register(payload: schemas.RegisterIn, db: Session = Depends(get_session)):
    """Register a new user and return a bearer token.

    Duplicate usernames and emails are rejected with 409; the username
    is checked first.
    """
    token = services.AuthService(db).register(
        payload.username, payload.email, payload.password,
        first_name=payload.first_name, last_name=payload.last_name,
    )
    return schemas.TokenOut(message="User created successfully", token=token)


@app.post('/auth/login', response_model=schemas.TokenOut)
@app.post('/auth/sign-in', response_model=schemas.TokenOut, include_in_schema=False)
def login(payload: schemas.LoginIn, db: Session = Depends(get_session)):
    """Authenticate a user and return a bearer token.

    The returned token contains `user_id` and `username` and is signed
    using the configured JWT secret.
    """
    token = services.AuthService(db).authenticate(payload.username, payload.password)
    return schemas.TokenOut(message="Login successful", token=token)


@app.get('/auth/me', response_model=schemas.UserEnvelope)
def me(db: Session = Depends(get_session), user: CurrentUser = Depends(get_current_user)):
    """Return the caller's own user record."""
    found = services.UserDirectoryService(db).me(user.user_id)
    return schemas.UserEnvelope(user=schemas.UserOut.model_validate(found))


# -------- Subjects --------

@app.get('/subjects', response_model=List[schemas.SubjectWithNotesOut])
def list_subjects(db: Session = Depends(get_session), user: CurrentUser = Depends(get_current_user)):
    """List the caller's subjects, newest first, each with its notes."""
    pairs = services.SubjectService(db).list_for_owner(user.user_id)
    return [schemas.SubjectWithNotesOut.build(s, notes) for s, notes in pairs]


@app.post('/subjects', status_code=201, response_model=schemas.SubjectOut)
def create_subject(payload: schemas.SubjectIn, db: Session = Depends(get_session),
                   user: CurrentUser = Depends(get_current_user)):
    return services.SubjectService(db).create(user.user_id, payload.model_dump(exclude_unset=True))


@app.get('/subjects/{subject_id}', response_model=schemas.SubjectWithNotesOut)
def get_subject(subject_id: PathId, db: Session = Depends(get_session),
                user: CurrentUser = Depends(get_current_user)):
    subject, notes = services.SubjectService(db).get(user.user_id, subject_id)
    return schemas.SubjectWithNotesOut.build(subject, notes)


@app.put('/subjects/{subject_id}', response_model=schemas.SubjectOut)
def update_subject(subject_id: PathId, payload: schemas.SubjectPatch, db: Session = Depends(get_session),
                   user: CurrentUser = Depends(get_current_user)):
    """Partially update a subject. Ownership can never be reassigned."""
    return services.SubjectService(db).update(user.user_id, subject_id, payload.model_dump(exclude_unset=True))


@app.delete('/subjects/{subject_id}', response_model=schemas.SubjectDeletedOut)
def delete_subject(subject_id: PathId, db: Session = Depends(get_session),
                   user: CurrentUser = Depends(get_current_user)):
    """Delete a subject together with all of its notes."""
    deleted = services.SubjectService(db).delete(user.user_id, subject_id)
    return schemas.SubjectDeletedOut(
        message="Subject and associated notes deleted successfully",
        subject=schemas.SubjectOut.model_validate(deleted),
    )


@app.post('/subjects/{subject_id}/notes', status_code=201, response_model=schemas.NoteOut)
def create_subject_note(subject_id: PathId, payload: schemas.NoteIn, db: Session = Depends(get_session),
                        user: CurrentUser = Depends(get_current_user)):
    """Create a note under one of the caller's subjects."""
    return services.NoteService(db).create(user.user_id, subject_id, payload.model_dump(exclude_unset=True))


@app.put('/subjects/{subject_id}/notes/{note_id}', response_model=schemas.NoteOut)
def update_subject_note(subject_id: PathId, note_id: PathId, payload: schemas.NotePatch,
                        db: Session = Depends(get_session), user: CurrentUser = Depends(get_current_user)):
    return services.NoteService(db).update(
        user.user_id, note_id, payload.model_dump(exclude_unset=True), subject_id=subject_id
    )


@app.delete('/subjects/{subject_id}/notes/{note_id}', response_model=schemas.MessageOut)
def delete_subject_note(subject_id: PathId, note_id: PathId, db: Session = Depends(get_session),
                        user: CurrentUser = Depends(get_current_user)):
    services.NoteService(db).delete(user.user_id, note_id, subject_id=subject_id)
    return schemas.MessageOut(message="Note deleted successfully")


# -------- Notes --------

@app.get('/notes', response_model=List[schemas.NoteOut])
def list_notes(db: Session = Depends(get_session), user: CurrentUser = Depends(get_current_user)):
    """List every note of the caller, newest first."""
    return services.NoteService(db).list_for_owner(user.user_id)


@app.get('/notes/search', response_model=List[schemas.NoteOut])
def search_notes(query: Optional[str] = None, db: Session = Depends(get_session),
                 user: CurrentUser = Depends(get_current_user)):
    """Case-insensitive search on note titles, e.g. `/notes/search?query=ch`."""
    return services.NoteService(db).search(user.user_id, query)


@app.get('/notes/{note_id}', response_model=schemas.NoteOut)
def get_note(note_id: PathId, db: Session = Depends(get_session), user: CurrentUser = Depends(get_current_user)):
    return services.NoteService(db).get(user.user_id, note_id)


@app.put('/notes/{note_id}', response_model=schemas.NoteOut)
def update_note(note_id: PathId, payload: schemas.NotePatch, db: Session = Depends(get_session),
                user: CurrentUser = Depends(get_current_user)):
    return services.NoteService(db).update(user.user_id, note_id, payload.model_dump(exclude_unset=True))


@app.delete('/notes/{note_id}', response_model=schemas.MessageOut)
def delete_note(note_id: PathId, db: Session = Depends(get_session), user: CurrentUser = Depends(get_current_user)):
    services.NoteService(db).delete(user.user_id, note_id)
    return schemas.MessageOut(message="Note deleted successfully")


# -------- Study sessions --------

@app.get('/sessions', response_model=List[schemas.SessionOut])
def list_sessions(
    range_from: Optional[datetime] = Query(None, alias='from'),
    range_to: Optional[datetime] = Query(None, alias='to'),
    subject_id: Optional[int] = Query(None, alias='subjectId', ge=1, le=schemas.MAX_ID),
    db: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    """List the caller's sessions, earliest first.

    With `from`/`to` only sessions overlapping that range are returned,
    which is what the weekly calendar view asks for.
    """
    return services.StudySessionService(db).list_for_owner(
        user.user_id, range_start=range_from, range_end=range_to, subject_id=subject_id
    )


@app.post('/sessions', status_code=201, response_model=schemas.SessionOut)
def create_session(payload: schemas.SessionIn, db: Session = Depends(get_session),
                   user: CurrentUser = Depends(get_current_user)):
    return services.StudySessionService(db).create(user.user_id, payload.model_dump(exclude_unset=True))


@app.get('/sessions/{session_id}', response_model=schemas.SessionOut)
def get_session_by_id(session_id: PathId, db: Session = Depends(get_session),
                      user: CurrentUser = Depends(get_current_user)):
    return services.StudySessionService(db).get(user.user_id, session_id)


@app.api_route('/sessions/{session_id}', methods=['PUT', 'PATCH'], response_model=schemas.SessionOut)
def update_session(session_id: PathId, payload: schemas.SessionPatch, db: Session = Depends(get_session),
                   user: CurrentUser = Depends(get_current_user)):
    """Partially update a session; the merged interval must stay valid."""
    return services.StudySessionService(db).update(user.user_id, session_id, payload.model_dump(exclude_unset=True))


@app.delete('/sessions/{session_id}', status_code=204)
def delete_session(session_id: PathId, db: Session = Depends(get_session),
                   user: CurrentUser = Depends(get_current_user)):
    services.StudySessionService(db).delete(user.user_id, session_id)
    return Response(status_code=204)


# -------- Users --------

@app.get('/users', response_model=List[schemas.UserSummary])
def list_users(db: Session = Depends(get_session), user: CurrentUser = Depends(get_current_user)):
    """Directory of usernames."""
    return services.UserDirectoryService(db).list_users()


@app.get('/users/subjects', response_model=List[schemas.UserWithSubjects])
def users_with_subjects(db: Session = Depends(get_session), user: CurrentUser = Depends(get_current_user)):
    """Every user with their subjects and notes (aggregate dashboard)."""
    out = []
    for u, pairs in services.UserDirectoryService(db).users_with_subjects():
        out.append(schemas.UserWithSubjects(
            id=u.id,
            username=u.username,
            subjects=[schemas.SubjectWithNotesOut.build(s, notes) for s, notes in pairs],
        ))
    return out


@app.get('/users/{user_id}', response_model=schemas.UserEnvelope)
def get_user(user_id: PathId, db: Session = Depends(get_session), user: CurrentUser = Depends(get_current_user)):
    """Return a user record; callers may only read their own."""
    found = services.UserDirectoryService(db).get_user(user.user_id, user_id)
    return schemas.UserEnvelope(user=schemas.UserOut.model_validate(found))


# -------- Misc --------

@app.get("/", response_class=HTMLResponse)
def home():
    """Minimal homepage for quick manual testing."""
    return """
    <!DOCTYPE html>
    <html>
    <head>
      <meta charset="UTF-8" />
      <title>Study Tracker API</title>
      <style>
        body { font-family: Arial, sans-serif; margin: 32px; }
        a { color: #0a6; }
        .card { max-width: 640px; padding: 16px; border: 1px solid #ddd; border-radius: 8px; }
      </style>
    </head>
    <body>
      <div class="card">
        <h1>Study Tracker API</h1>
        <p><a href="/docs">Swagger UI</a></p>
        <p>Use <code>/auth/register</code> or <code>/auth/login</code> to get a token, then send it as
        <code>Authorization: Bearer &lt;token&gt;</code> to <code>/subjects</code>, <code>/notes</code>
        or <code>/sessions</code>.</p>
      </div>
    </body>
    </html>
    """


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
