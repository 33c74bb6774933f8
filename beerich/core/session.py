"""
Session provider: resolves a request to the signed-in user.

The session is a JWT carried in the session cookie (browser forms) or in an
``Authorization: Bearer`` header (API clients).
"""
import logging
from typing import Optional

from fastapi import Request, Response

from beerich.core.config import settings
from beerich.core.security import create_access_token, decode_access_token
from beerich.db import dynamo
from beerich.models.user import UserPublic

logger = logging.getLogger(__name__)


class LoginRequired(Exception):
    """Raised when a protected route is requested without a valid session."""

    def __init__(self, redirect_to: str = "/"):
        self.redirect_to = redirect_to
        super().__init__(f"Login required to access {redirect_to}")


def _session_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("authorization")
    if authorization and authorization.startswith("Bearer "):
        return authorization.replace("Bearer ", "", 1)
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def get_user_id(request: Request) -> Optional[str]:
    token = _session_token(request)
    if not token:
        return None
    payload = decode_access_token(token)
    if not payload:
        return None
    return payload.get("sub")


def require_user_id(request: Request) -> str:
    """FastAPI dependency returning the user id or raising LoginRequired."""
    user_id = get_user_id(request)
    if not user_id:
        path = request.url.path
        if request.url.query:
            path = f"{path}?{request.url.query}"
        logger.warning(f"Unauthenticated request to {path}")
        raise LoginRequired(redirect_to=path)
    return user_id


def get_user(request: Request) -> Optional[UserPublic]:
    user_id = get_user_id(request)
    if not user_id:
        return None
    user = dynamo.get_user_by_id(user_id)
    if not user:
        return None
    return UserPublic(**user)


def create_user_session(response: Response, user_id: str) -> Response:
    token = create_access_token({"sub": user_id})
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )
    return response


def destroy_user_session(response: Response) -> Response:
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    return response
