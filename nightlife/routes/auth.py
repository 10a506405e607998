"""
Admin session routes: login, session check, logout.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from nightlife.config import settings
from nightlife.schemas import LoginRequest
from nightlife.utils.jwt_auth import (
    SESSION_COOKIE_NAME,
    authenticate_admin,
    create_access_token,
    read_session_token,
    verify_token,
)
from nightlife.utils.rate_limit import limiter, login_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/auth")


@router.post("")
@limiter.limit(login_limit)
async def login(request: Request, response: Response, credentials: LoginRequest):
    """
    Check the admin password and open a session.
    The session token is set as an httpOnly cookie and also returned in the
    body for API clients.

    Raises:
        HTTPException: 400 if the password is missing, 401 if it is wrong,
            500 if no password hash is configured, 429 when rate limited
    """
    if not credentials.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Password is required"}
        )

    try:
        claims = authenticate_admin(credentials.password)
    except ValueError as e:
        logger.error(f"Admin login unavailable: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Server configuration error"}
        )
    except HTTPException:
        logger.warning(f"Failed admin login from {request.client.host if request.client else 'unknown'}")
        raise

    token = create_access_token(claims)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.ADMIN_SESSION_MAX_AGE,
        httponly=True,
        secure=settings.ADMIN_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )
    logger.info("Admin session opened")
    return {
        "success": True,
        "message": "Authenticated successfully",
        "access_token": token,
        "token_type": "bearer",
        "expires_in": settings.ADMIN_SESSION_MAX_AGE,
    }


@router.get("")
async def check_session(
    request: Request,
    authorization: Optional[str] = Header(None)
):
    """Report whether the request carries a valid admin session."""
    unauthenticated = JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"authenticated": False})

    token = read_session_token(request, authorization)
    if not token:
        return unauthenticated

    try:
        verify_token(token)
    except HTTPException:
        return unauthenticated

    return {"authenticated": True}


@router.delete("")
async def logout(response: Response):
    """Clear the session cookie."""
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"success": True, "message": "Logged out successfully"}
