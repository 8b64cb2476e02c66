"""Storage access for permissions.

``PermissionEngine`` only talks to this interface, so tests can hand it an
in-memory fake with the same coroutine methods.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leave_portal.permissions.models import Permission, UserPermission
from leave_portal.users.models import User


class PermissionRepository:
    """SQLAlchemy-backed permission store bound to one session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ── Lookups used by the engine ──────────────────────────────────

    async def find_user(self, user_id: uuid.UUID) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id, User.is_active.is_(True))
        )
        return result.scalars().first()

    async def find_active_permission(self, permission_key: str) -> Optional[Permission]:
        result = await self.db.execute(
            select(Permission).where(
                Permission.permission_key == permission_key,
                Permission.is_active.is_(True),
            )
        )
        return result.scalars().first()

    async def find_grant(
        self,
        user_id: uuid.UUID,
        permission_id: uuid.UUID,
    ) -> Optional[UserPermission]:
        result = await self.db.execute(
            select(UserPermission).where(
                UserPermission.user_id == user_id,
                UserPermission.permission_id == permission_id,
            )
        )
        return result.scalars().first()

    async def has_granted(self, user_id: uuid.UUID, permission_key: str) -> bool:
        """True iff an active permission with *permission_key* is granted to the user."""
        permission = await self.find_active_permission(permission_key)
        if permission is None:
            return False
        grant = await self.find_grant(user_id, permission.id)
        return grant is not None and grant.granted

    # ── Catalog / grant management ──────────────────────────────────

    async def find_permission(self, permission_id: uuid.UUID) -> Optional[Permission]:
        return await self.db.get(Permission, permission_id)

    async def find_permission_by_key(self, permission_key: str) -> Optional[Permission]:
        result = await self.db.execute(
            select(Permission).where(Permission.permission_key == permission_key)
        )
        return result.scalars().first()

    async def list_active_permissions(self) -> Sequence[Permission]:
        result = await self.db.execute(
            select(Permission)
            .where(Permission.is_active.is_(True))
            .order_by(Permission.category, Permission.permission_key)
        )
        return result.scalars().all()

    async def list_granted_permissions(self, user_id: uuid.UUID) -> Sequence[UserPermission]:
        result = await self.db.execute(
            select(UserPermission)
            .join(Permission, Permission.id == UserPermission.permission_id)
            .where(
                UserPermission.user_id == user_id,
                UserPermission.granted.is_(True),
                Permission.is_active.is_(True),
            )
            .options(selectinload(UserPermission.permission))
            .order_by(Permission.category, Permission.permission_key)
        )
        return result.scalars().all()

    async def list_granted_keys(self, user_id: uuid.UUID) -> list[str]:
        return [g.permission.permission_key for g in await self.list_granted_permissions(user_id)]

    async def list_active_keys(self) -> list[str]:
        return [p.permission_key for p in await self.list_active_permissions()]

    async def upsert_grant(
        self,
        user_id: uuid.UUID,
        permission_id: uuid.UUID,
        *,
        granted: bool,
        granted_by: Optional[uuid.UUID] = None,
    ) -> UserPermission:
        """Insert or flip a grant row; revocations stamp ``revoked_at``."""
        now = datetime.now(timezone.utc)
        grant = await self.find_grant(user_id, permission_id)
        if grant is None:
            grant = UserPermission(user_id=user_id, permission_id=permission_id)
            self.db.add(grant)
        grant.granted = granted
        if granted:
            grant.granted_by = granted_by
            grant.granted_at = now
            grant.revoked_at = None
        else:
            grant.revoked_at = now
        await self.db.flush()
        return grant

    async def add_permission(self, permission: Permission) -> Permission:
        self.db.add(permission)
        await self.db.flush()
        return permission
