"""FastAPI dependencies for authentication and database access."""

from typing import Generator
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from swms_api.core.security import decode_session_token
from swms_api.db.session import SessionLocal
from swms_api.schemas.auth import UserSession


# Cookie and header names
COOKIE_NAME = "swms_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _session_token(request: Request) -> str | None:
    """Session JWT from the cookie, else from an Authorization: Bearer header."""
    token = request.cookies.get(COOKIE_NAME)
    if token:
        return token
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def get_optional_session(
    request: Request,
    db: Session = Depends(get_db),
) -> UserSession | None:
    """
    Session context, or None when the caller is not authenticated.

    Validates:
    - Session token exists (cookie or bearer)
    - JWT is valid and not expired
    - User exists and is active
    - Token version matches (for revocation support)
    """
    # Import here to avoid circular imports
    from swms_api.db.models import User

    token = _session_token(request)
    if not token:
        return None

    try:
        payload = decode_session_token(token)
        user_id = UUID(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        return None

    user = db.get(User, user_id)
    if not user or not user.is_active:
        return None
    if user.token_version != payload.get("token_version"):
        return None

    return UserSession(
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
    )


def get_current_session(
    session: UserSession | None = Depends(get_optional_session),
) -> UserSession:
    """
    Primary auth dependency for admin endpoints.

    Raises:
        HTTPException 401: Not authenticated
    """
    if session is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return session


def has_csrf_header(request: Request) -> bool:
    return request.headers.get(CSRF_HEADER) == CSRF_HEADER_VALUE
