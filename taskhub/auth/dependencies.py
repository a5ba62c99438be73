from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth import security
from taskhub.auth.context import Actor
from taskhub.db.dependencies import get_db_session
from taskhub.project_manager.models import User
from taskhub.project_manager.repositories import UserRepository
from taskhub.utils import NotAuthenticated, NotFound

# --- OAuth2 Scheme ---
# auto_error is off so a missing token gets the same error body as a bad one
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def _credentials_exception(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_db(
    token: Optional[str] = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_db_session),
) -> User:
    """
    Dependency that verifies the bearer token and returns the SQLAlchemy User.

    The user is re-read on every request so a role change or a deleted
    account takes effect immediately instead of at token expiry.
    """
    if not token:
        raise _credentials_exception("No token, authorization denied")
    try:
        payload = security.decode_access_token(token)
        user = await UserRepository(session).find_by_id(payload["sub"])
    except (NotAuthenticated, NotFound):
        raise _credentials_exception("Token is not valid")

    if user is None:
        logger.debug("Token subject {} no longer exists", payload["sub"])
        raise _credentials_exception("Token is not valid")

    return user


async def get_current_actor(user: User = Depends(get_current_user_db)) -> Actor:
    """
    Dependency that returns the explicit actor context handed to handlers.
    """
    return Actor(id=user.id, role=user.role)
