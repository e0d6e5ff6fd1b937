"""FastAPI dependencies for auth."""

import logging
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.security import ACCESS, subject_of
from app.db.session import get_db
from app.users.models import User
from app.users.service import get_user_by_email

security = HTTPBearer(auto_error=False)
log = logging.getLogger(__name__)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Resolve Bearer token to current user; raise 401 if invalid or missing."""
    if not credentials:
        log.debug("Request missing Bearer token")
        raise _unauthorized("Not authenticated")
    email = subject_of(credentials.credentials, ACCESS)
    if not email:
        log.debug("Invalid or expired access token")
        raise _unauthorized("Invalid or expired token")
    user = await get_user_by_email(session, email)
    if not user:
        log.warning("Token valid but user not found: email=%s", email)
        raise _unauthorized("User not found")
    return user


async def get_current_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Require current user to be admin."""
    if not current_user.is_admin:
        log.warning("Non-admin user attempted admin action: email=%s", current_user.email)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin required",
        )
    return current_user
