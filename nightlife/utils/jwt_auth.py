"""
JWT session utilities for the admin back-office.
The session token travels in an httpOnly cookie; a Bearer header is accepted
as a fallback for API clients.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Header, HTTPException, Request, status
from jose import JWTError, jwt

from nightlife.config import settings
from nightlife.utils.auth import verify_password

ALGORITHM = "HS256"
SESSION_COOKIE_NAME = "admin_session"


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed session token.

    Args:
        data: Dictionary of claims to include in token
        expires_delta: Optional custom lifetime (defaults to ADMIN_SESSION_MAX_AGE)

    Returns:
        str: Encoded JWT token
    """
    to_encode = data.copy()
    now = datetime.now(timezone.utc)

    if expires_delta is None:
        expires_delta = timedelta(seconds=settings.ADMIN_SESSION_MAX_AGE)

    to_encode.update({
        "exp": now + expires_delta,
        "iat": now,
        "type": "access"
    })

    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify and decode a session token.

    Args:
        token: JWT token string

    Returns:
        dict: Decoded token payload

    Raises:
        HTTPException: 401 if token is invalid, expired, or malformed
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Unauthorized", "message": "Session is invalid or expired"}
        )

    if payload.get("type") != "access" or payload.get("role") != "admin":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Unauthorized", "message": "Token is not an admin session"}
        )

    return payload


def read_session_token(request: Request, authorization: Optional[str] = None) -> Optional[str]:
    """Session token from the cookie, else from an ``Authorization: Bearer`` header."""
    token = request.cookies.get(SESSION_COOKIE_NAME)

    if not token and authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            token = parts[1]

    return token


def require_admin_session(
    request: Request,
    authorization: Optional[str] = Header(None, description="Bearer token (fallback to the session cookie)")
) -> dict:
    """
    FastAPI dependency gating every admin route.

    Returns:
        dict: Decoded token payload

    Raises:
        HTTPException: 401 if the session is missing, invalid, or expired
    """
    token = read_session_token(request, authorization)

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Unauthorized", "message": "Authentication required"},
            headers={"WWW-Authenticate": "Bearer"}
        )

    return verify_token(token)


def authenticate_admin(password: str) -> dict:
    """
    Check the admin password and return the claims for a new session.

    Raises:
        HTTPException: 401 if password is invalid
        ValueError: If ADMIN_PASSWORD_HASH is not configured
    """
    if not settings.ADMIN_PASSWORD_HASH:
        raise ValueError("ADMIN_PASSWORD_HASH not configured")

    if not verify_password(password, settings.ADMIN_PASSWORD_HASH):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Invalid password"}
        )

    return {
        "role": "admin",
        "sub": "nightlife_admin"
    }
