"""Domain error taxonomy.

Services raise these exceptions; the HTTP layer maps each one to a status
code through the `status_code` attribute and renders `{"error": message}`.
"""


class StudyTrackerError(Exception):
    """Base class for errors that carry an HTTP status."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StudyTrackerError):
    """Missing or malformed input."""
    status_code = 400


class AuthError(StudyTrackerError):
    """Bad credentials or an invalid bearer token."""
    status_code = 401


class ForbiddenError(StudyTrackerError):
    """Authenticated, but not allowed to touch the resource."""
    status_code = 403


class NotFoundError(StudyTrackerError):
    status_code = 404


class ConflictError(StudyTrackerError):
    """Unique username/email already taken."""
    status_code = 409


class UnexpectedError(StudyTrackerError):
    """Store failure surfaced to the caller without internal detail."""
    status_code = 500
