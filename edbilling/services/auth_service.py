"""Session tokens for the billing API.

Browsers send the platform's session cookie; other platform services send the
same HS256 JWT as a Bearer token.
"""

from datetime import datetime, timedelta, UTC

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from edbilling.config import get_settings
from edbilling.constants import COOKIE_NAME
from edbilling.db.session import get_db
from edbilling.models.user import User


def create_jwt(user_id: int, expires_in: timedelta | None = None) -> str:
    settings = get_settings()
    expires_in = expires_in or timedelta(days=settings.jwt_expire_days)
    payload = {"sub": str(user_id), "exp": datetime.now(UTC) + expires_in}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _bearer_or_cookie(request: Request) -> str | None:
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get(COOKIE_NAME)


def _user_id_from_token(token: str) -> int:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
        return int(payload["sub"])
    except (jwt.InvalidTokenError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired session")


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """FastAPI dependency: the active user the request's token belongs to, or 401."""
    token = _bearer_or_cookie(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user_id = _user_id_from_token(token)

    result = await db.execute(select(User).where(User.id == user_id, User.is_active == True))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="User not found or deactivated")
    return user
