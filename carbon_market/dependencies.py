"""
FastAPI dependencies for authentication and authorization.

  get_current_user (JWT -> User)
      ├── get_current_member (User -> User)   [MEMBER role]
      └── require_admin (User -> User)        [ADMIN role]

Role-based access control:
  - MEMBER: Buys, owns and retires credits, submits projects and records
    impact. Every member query is scoped to the authenticated user.
  - ADMIN: Verifies projects and has read-only oversight of every
    transaction. Admins cannot buy credits; they have no profile or offset.

The payment gateway is a dependency too, so tests can substitute a fake
processor through app.dependency_overrides.
"""

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.database import get_db
from carbon_market.models.user import User, UserType
from carbon_market.security import decode_access_token


# Tokens come from "Authorization: Bearer <token>"; tokenUrl is used by Swagger UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Extract and validate the JWT token, then return the corresponding User.

    Raises:
        HTTPException 401: If the token is invalid or the user doesn't exist.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
        user_id_str: str | None = payload.get("sub")
        if user_id_str is None:
            raise credentials_exception
        user_id = uuid.UUID(user_id_str)
    except (JWTError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise credentials_exception

    return user


async def get_current_member(
    user: User = Depends(get_current_user),
) -> User:
    """
    Require a MEMBER. Used by every endpoint that buys, owns or retires
    credits, or touches the caller's impact ledger.

    Raises:
        HTTPException 403: If the user is an admin.
    """
    if user.user_type == UserType.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin accounts cannot access member endpoints. "
                   "Use /admin/* endpoints for read-only access.",
        )
    return user


async def require_admin(
    user: User = Depends(get_current_user),
) -> User:
    """
    Require the authenticated user to have the ADMIN role.

    Raises:
        HTTPException 403: If the user is not an admin.
    """
    if user.user_type != UserType.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
