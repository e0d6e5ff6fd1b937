"""User service: lookup, create editors, bootstrap the first admin."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.security import hash_password
from app.config import get_settings
from app.users.models import User, UserCreate

log = logging.getLogger(__name__)


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    """Return user by email or None."""
    result = await session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def create_user(session: AsyncSession, payload: UserCreate) -> User:
    """Create a user with the given password. Raises ValueError if the email is taken. Caller must commit."""
    if await get_user_by_email(session, payload.email):
        raise ValueError(f"User already exists: {payload.email}")
    user = User(
        email=payload.email,
        display_name=payload.display_name,
        password_hash=hash_password(payload.password),
        is_admin=payload.is_admin,
    )
    session.add(user)
    await session.flush()
    return user


async def ensure_admin_exists(session: AsyncSession) -> None:
    """
    If MEDIAHASH_ADMIN_EMAIL and MEDIAHASH_ADMIN_INITIAL_PASSWORD are set
    and no user exists with that email, create the first admin user.
    """
    settings = get_settings()
    if not settings.admin_email or not settings.admin_initial_password:
        return
    if await get_user_by_email(session, settings.admin_email):
        return
    log.info("Creating bootstrap admin user email=%s", settings.admin_email)
    session.add(
        User(
            email=settings.admin_email,
            display_name="Admin",
            password_hash=hash_password(settings.admin_initial_password),
            is_admin=True,
        )
    )
