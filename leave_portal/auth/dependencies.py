"""Auth dependencies — JWT validation and permission enforcement.

Tokens are issued elsewhere; this module only verifies them. ``sub`` is
the user id, and the role always comes from the database row rather than
the token so that a demotion takes effect immediately.
"""

from __future__ import annotations

import uuid
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_portal.config import settings
from leave_portal.database import get_db
from leave_portal.permissions.service import PermissionEngine
from leave_portal.users.models import User


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Validate JWT and return the authenticated, active User."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type", "access") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token subject.")

    result = await db.execute(
        select(User).where(User.id == user_id, User.is_active.is_(True))
    )
    user = result.scalars().first()
    if user is None:
        raise HTTPException(status_code=401, detail="User account is inactive or not found.")

    request.state.user_role = user.role
    return user


# ── Permission-based dependencies ───────────────────────────────────

def require_permission(permission_key: str) -> Callable:
    """Return a dependency that runs ``PermissionEngine.check`` for *permission_key*."""

    async def _check(
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> User:
        await PermissionEngine.for_session(db).require(user.id, permission_key)
        return user

    return _check


def require_admin_or_permission(permission_key: str) -> Callable:
    """Like ``require_permission`` but admins always pass."""

    async def _check(
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> User:
        await PermissionEngine.for_session(db).require_admin_or_permission(
            user.id, user.role, permission_key,
        )
        return user

    return _check
