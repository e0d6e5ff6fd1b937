"""User routes: login, refresh, me, admin create/list."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_admin, get_current_user
from app.auth.security import (
    REFRESH,
    create_access_token,
    create_refresh_token,
    subject_of,
    verify_password,
)
from app.config import get_settings
from app.db.session import get_db
from app.limiter import limiter
from app.users.models import RefreshRequest, TokenPair, User, UserCreate, UserLogin, UserResponse
from app.users.service import create_user, get_user_by_email

router = APIRouter(prefix="/api", tags=["users"])
log = logging.getLogger(__name__)


def _token_pair(email: str) -> TokenPair:
    return TokenPair(
        access_token=create_access_token(email),
        refresh_token=create_refresh_token(email),
        expires_in=get_settings().access_token_expire_minutes * 60,
    )


@router.post("/auth/login", response_model=TokenPair)
@limiter.limit("10/minute")
async def login(
    request: Request,
    body: UserLogin,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> TokenPair:
    """Login with email and password; returns access and refresh tokens."""
    user = await get_user_by_email(session, body.email)
    if not user or not verify_password(body.password, user.password_hash):
        log.warning("Login failed for email=%s", body.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    log.info("Login successful for email=%s", user.email)
    return _token_pair(user.email)


@router.post("/auth/refresh", response_model=TokenPair)
@limiter.limit("20/minute")
async def refresh(
    request: Request,
    body: RefreshRequest,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> TokenPair:
    """Exchange refresh token for new access and refresh tokens."""
    email = subject_of(body.refresh_token, REFRESH)
    if not email or not await get_user_by_email(session, email):
        log.warning("Refresh failed: invalid token or unknown user")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )
    return _token_pair(email)


@router.get("/users/me", response_model=UserResponse)
async def me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserResponse:
    """Return current authenticated user."""
    return UserResponse.model_validate(current_user)


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def admin_create_user(
    payload: UserCreate,
    current_user: Annotated[User, Depends(get_current_admin)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> UserResponse:
    """Create an editor or admin account (admin only)."""
    try:
        user = await create_user(session, payload)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    await session.refresh(user)
    log.info("Admin %s created user email=%s admin=%s", current_user.email, user.email, user.is_admin)
    return UserResponse.model_validate(user)


@router.get("/users", response_model=list[UserResponse])
async def admin_list_users(
    current_user: Annotated[User, Depends(get_current_admin)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> list[UserResponse]:
    """List all users (admin only)."""
    result = await session.execute(select(User).order_by(User.email))
    users = result.scalars().all()
    return [UserResponse.model_validate(u) for u in users]
