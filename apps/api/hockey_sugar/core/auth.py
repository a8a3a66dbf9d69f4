"""Authentication and role-based authorization dependencies.

Session tokens arrive either as the httpOnly session cookie (web) or as an
Authorization Bearer header (athlete devices). Role checks match the
UserRole enum exhaustively.
"""

import uuid
from typing import Annotated, assert_never

from fastapi import Cookie, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hockey_sugar.config import settings
from hockey_sugar.core.security import TokenData, decode_access_token
from hockey_sugar.database import get_db
from hockey_sugar.logging_config import get_logger
from hockey_sugar.models.user import User, UserRole
from hockey_sugar.services.glucose import is_linked

logger = get_logger(__name__)


async def get_current_user(
    request: Request,
    session_token: Annotated[str | None, Cookie(alias=settings.jwt_cookie_name)] = None,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the current user.

    Raises:
        HTTPException 401: If no valid credentials are found
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not session_token:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            session_token = auth_header[7:]

    if not session_token:
        raise credentials_exception

    payload = decode_access_token(session_token)
    if payload is None:
        raise credentials_exception

    try:
        token_data = TokenData(payload)
    except (KeyError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == token_data.user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise credentials_exception
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is disabled",
        )
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def can_manage_athletes(user: User) -> bool:
    """Parents, coaches and admins manage athletes; athletes do not."""
    if user.is_admin:
        return True
    match user.role:
        case UserRole.ADMIN | UserRole.PARENT | UserRole.COACH:
            return True
        case UserRole.ATHLETE:
            return False
        case _:
            assert_never(user.role)


def is_athlete(user: User) -> bool:
    match user.role:
        case UserRole.ATHLETE:
            return True
        case UserRole.ADMIN | UserRole.PARENT | UserRole.COACH:
            return user.is_athlete
        case _:
            assert_never(user.role)


def _forbidden(request: Request, user: User, required: str) -> HTTPException:
    logger.warning(
        "Unauthorized access attempt",
        user_id=str(user.id),
        user_role=user.role.value,
        required=required,
        path=request.url.path,
        method=request.method,
    )
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You don't have permission to access this resource",
    )


async def get_parent_user(current_user: CurrentUser, request: Request) -> User:
    """Require a parent, coach or admin."""
    if not can_manage_athletes(current_user):
        raise _forbidden(request, current_user, "parent")
    return current_user


async def get_athlete_user(current_user: CurrentUser, request: Request) -> User:
    """Require an athlete."""
    if not is_athlete(current_user):
        raise _forbidden(request, current_user, "athlete")
    return current_user


ParentUser = Annotated[User, Depends(get_parent_user)]
AthleteUser = Annotated[User, Depends(get_athlete_user)]


async def ensure_athlete_access(
    user: User,
    athlete_id: uuid.UUID,
    db: AsyncSession,
) -> None:
    """Allow the athlete themself, a linked parent/coach, or an admin.

    Raises:
        HTTPException 403: Otherwise
    """
    if user.is_admin or user.id == athlete_id:
        return

    match user.role:
        case UserRole.ADMIN:
            return
        case UserRole.PARENT | UserRole.COACH:
            if await is_linked(db, user.id, athlete_id):
                return
        case UserRole.ATHLETE:
            pass
        case _:
            assert_never(user.role)

    logger.warning(
        "Athlete access denied",
        user_id=str(user.id),
        athlete_id=str(athlete_id),
    )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You are not linked to this athlete",
    )
