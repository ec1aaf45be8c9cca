from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.services.auth_service import decode_token
from app.services.hierarchy_service import (
    AccessValidator,
    CallerContext,
    HierarchyAccessValidator,
)
from db.session import get_db


_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> User:
    """Resolve the current authenticated `User` from a Bearer JWT.

    Soft-deleted users are rejected by the session-wide deleted-row filter.

    Args:
        db: Async SQLAlchemy session.
        creds: Bearer token extracted from the request.

    Returns:
        The `User` instance corresponding to the JWT subject (email).
    """

    if creds is None or creds.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    try:
        claims = decode_token(creds.credentials)
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)

    subject = claims.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)

    result = await db.execute(
        select(User).where(User.email == subject).where(User.deleted_at.is_(None))
    )
    user: User | None = result.scalars().first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return user


async def get_current_caller(
    current_user: User = Depends(get_current_user),
) -> CallerContext:
    """Return the role and scope of the authenticated user."""

    return CallerContext.from_user(current_user)


async def get_access_validator(
    db: AsyncSession = Depends(get_db),
) -> AccessValidator:
    return HierarchyAccessValidator(db)


async def require_super_admin(
    caller: CallerContext = Depends(get_current_caller),
) -> CallerContext:
    """Ensure the caller has the ``SUPER_ADMIN`` role, otherwise raise 403."""

    if caller.role != User.Role.SUPER_ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return caller
