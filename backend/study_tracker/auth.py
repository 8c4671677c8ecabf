"""Token helpers and the FastAPI security dependency.

This module signs and verifies JWT bearer tokens and provides the
dependency `get_current_user` that every protected route declares. The
dependency validates the `Authorization: Bearer <token>` header and
returns the identity carried by the token; it never queries the
database.

Tokens carry `user_id` and `username`. No `exp` claim is added unless
`JWT_EXPIRE_HOURS` is set above zero, so by default a token stays valid
until the signing secret changes. There is no revocation list.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings
from .errors import AuthError

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    """Identity resolved from a verified token."""
    user_id: int
    username: str


def issue_token(user_id: int, username: str) -> str:
    """Sign a token bound to `{user_id, username}`."""
    payload = {"user_id": user_id, "username": username}
    if settings.JWT_EXPIRE_HOURS > 0:
        expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
        payload["exp"] = int(expire.timestamp())
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> CurrentUser:
    """Decode and verify a JWT token.

    Returns the identity on success or raises `AuthError` for a bad
    signature, a malformed or expired token, or missing claims.
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError('token expired')
    except jwt.InvalidTokenError:
        raise AuthError('invalid token')
    user_id = payload.get('user_id')
    username = payload.get('username')
    if not isinstance(user_id, int) or not username:
        raise AuthError('invalid token payload')
    return CurrentUser(user_id=user_id, username=username)


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme)) -> CurrentUser:
    """FastAPI dependency that returns the authenticated identity.

    Raises `AuthError` (401) when the header is missing, is not a bearer
    credential, or carries a token that fails verification.
    """
    if credentials is None or not credentials.credentials:
        raise AuthError('No token provided.')
    return decode_token(credentials.credentials)
