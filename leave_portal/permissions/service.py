"""Permission service layer — evaluation engine and grant management.

Business logic:
  - PermissionEngine: single-key check driven by the BYPASS_POLICIES rule
    table, composite any/all checks, and the admin-or-permission mode
  - PermissionService: catalog seeding, assign / revoke / bulk-assign with
    the employee category restrictions, effective key listing for the UI
"""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from leave_portal.common.audit import create_audit_entry
from leave_portal.common.constants import (
    BYPASS_POLICIES,
    DEFAULT_BYPASS_POLICY,
    EMPLOYEE_RESTRICTED_CATEGORIES,
    REQUIRED_PERMISSIONS,
    BypassPolicy,
    UserRole,
    permission_category,
)
from leave_portal.common.exceptions import (
    NotFoundException,
    PermissionDeniedException,
    ValidationException,
)
from leave_portal.permissions.models import Permission
from leave_portal.permissions.repository import PermissionRepository
from leave_portal.permissions.schemas import (
    BulkAssignOut,
    InitializePermissionsOut,
    PermissionOut,
    UserPermissionOut,
)
from leave_portal.users.models import User

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════
# PermissionEngine
# ═════════════════════════════════════════════════════════════════════


class PermissionEngine:
    """Answers "may this user do *key*?" against an injected repository.

    Any failure while evaluating counts as a denial.
    """

    def __init__(
        self,
        repository: PermissionRepository,
        policies: Optional[dict[str, BypassPolicy]] = None,
    ) -> None:
        self.repository = repository
        self.policies = BYPASS_POLICIES if policies is None else policies

    @classmethod
    def for_session(cls, db: AsyncSession) -> PermissionEngine:
        return cls(PermissionRepository(db))

    def policy_for(self, permission_key: str) -> BypassPolicy:
        return self.policies.get(permission_key, DEFAULT_BYPASS_POLICY)

    # ── Single-key check ────────────────────────────────────────────

    async def check(self, user_id: uuid.UUID, permission_key: str) -> bool:
        try:
            allowed = await self._evaluate(user_id, permission_key)
        except Exception:
            logger.exception(
                "Permission check failed for user=%s key=%s; denying",
                user_id, permission_key,
            )
            return False
        if not allowed:
            logger.warning(
                "Permission denied: user=%s key=%s", user_id, permission_key,
            )
        return allowed

    async def _evaluate(self, user_id: uuid.UUID, permission_key: str) -> bool:
        user = await self.repository.find_user(user_id)
        if user is None:
            return False
        if self.policy_for(permission_key) == BypassPolicy.no_bypass:
            return await self.repository.has_granted(user_id, permission_key)
        if user.role == UserRole.admin:
            return True
        return await self.repository.has_granted(user_id, permission_key)

    # ── Composite checks ────────────────────────────────────────────

    async def check_any(self, user_id: uuid.UUID, permission_keys: Iterable[str]) -> bool:
        for key in permission_keys:
            if await self.check(user_id, key):
                return True
        return False

    async def check_all(self, user_id: uuid.UUID, permission_keys: Iterable[str]) -> bool:
        for key in permission_keys:
            if not await self.check(user_id, key):
                return False
        return True

    # ── Admin-or-permission mode ────────────────────────────────────

    async def check_admin_or_permission(
        self,
        user_id: uuid.UUID,
        role: UserRole,
        permission_key: str,
    ) -> bool:
        """Admins always pass, even for keys whose policy is no_bypass."""
        if role == UserRole.admin:
            return True
        return await self.check(user_id, permission_key)

    # ── Raising variants ────────────────────────────────────────────

    async def require(self, user_id: uuid.UUID, permission_key: str) -> None:
        if not await self.check(user_id, permission_key):
            raise PermissionDeniedException(permission_key)

    async def require_admin_or_permission(
        self,
        user_id: uuid.UUID,
        role: UserRole,
        permission_key: str,
    ) -> None:
        if not await self.check_admin_or_permission(user_id, role, permission_key):
            raise PermissionDeniedException(permission_key)


# ═════════════════════════════════════════════════════════════════════
# PermissionService
# ═════════════════════════════════════════════════════════════════════


class PermissionService:
    """Async permission catalog and grant operations."""

    @staticmethod
    async def _get_target_user(repo: PermissionRepository, user_id: uuid.UUID) -> User:
        user = await repo.find_user(user_id)
        if user is None:
            raise NotFoundException("User", user_id)
        return user

    @staticmethod
    async def _get_active_permission(
        repo: PermissionRepository,
        permission_id: uuid.UUID,
    ) -> Permission:
        permission = await repo.find_permission(permission_id)
        if permission is None or not permission.is_active:
            raise NotFoundException("Permission", permission_id)
        return permission

    @staticmethod
    def _assert_assignable(user: User, permission: Permission) -> None:
        """Employees can never hold department/employee/permission/leave-type rights."""
        if (
            user.role == UserRole.employee
            and permission.category.lower() in EMPLOYEE_RESTRICTED_CATEGORIES
        ):
            raise PermissionDeniedException(
                permission.permission_key,
                detail=(
                    f"Permissions in category '{permission.category}' cannot be "
                    "assigned to employees."
                ),
            )

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_permissions(db: AsyncSession, actor: User) -> list[PermissionOut]:
        engine = PermissionEngine.for_session(db)
        await engine.require_admin_or_permission(actor.id, actor.role, "permission.view")
        rows = await engine.repository.list_active_permissions()
        return [PermissionOut.model_validate(p) for p in rows]

    @staticmethod
    async def list_user_permissions(
        db: AsyncSession,
        actor: User,
        user_id: uuid.UUID,
    ) -> list[UserPermissionOut]:
        engine = PermissionEngine.for_session(db)
        if actor.id != user_id:
            await engine.require_admin_or_permission(actor.id, actor.role, "permission.view")
        await PermissionService._get_target_user(engine.repository, user_id)
        grants = await engine.repository.list_granted_permissions(user_id)
        return [UserPermissionOut.from_grant(g, g.permission) for g in grants]

    @staticmethod
    async def list_effective_keys(db: AsyncSession, user: User) -> list[str]:
        """Keys the UI may enable for *user*.

        Admins get every active key that admins bypass, plus any no_bypass
        key they were explicitly granted.
        """
        engine = PermissionEngine.for_session(db)
        granted = await engine.repository.list_granted_keys(user.id)
        if user.role != UserRole.admin:
            return sorted(granted)

        keys = {
            key
            for key in await engine.repository.list_active_keys()
            if engine.policy_for(key) == BypassPolicy.admin_bypass
        }
        keys.update(granted)
        return sorted(keys)

    # ─────────────────────────────────────────────────────────────────
    # Assign / revoke
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def assign(
        db: AsyncSession,
        actor: User,
        user_id: uuid.UUID,
        permission_id: uuid.UUID,
    ) -> UserPermissionOut:
        engine = PermissionEngine.for_session(db)
        await engine.require_admin_or_permission(actor.id, actor.role, "permission.assign")
        repo = engine.repository

        user = await PermissionService._get_target_user(repo, user_id)
        permission = await PermissionService._get_active_permission(repo, permission_id)
        PermissionService._assert_assignable(user, permission)

        grant = await repo.upsert_grant(
            user_id, permission_id, granted=True, granted_by=actor.id,
        )
        await create_audit_entry(
            db,
            action="grant",
            entity_type="user_permission",
            entity_id=grant.id,
            actor_id=actor.id,
            new_values={"user_id": user_id, "permission_key": permission.permission_key},
        )
        return UserPermissionOut.from_grant(grant, permission)

    @staticmethod
    async def revoke(
        db: AsyncSession,
        actor: User,
        user_id: uuid.UUID,
        permission_id: uuid.UUID,
    ) -> UserPermissionOut:
        engine = PermissionEngine.for_session(db)
        await engine.require_admin_or_permission(actor.id, actor.role, "permission.revoke")
        repo = engine.repository

        existing = await repo.find_grant(user_id, permission_id)
        if existing is None:
            raise NotFoundException("UserPermission", f"{user_id}/{permission_id}")
        permission = await repo.find_permission(permission_id)

        grant = await repo.upsert_grant(user_id, permission_id, granted=False)
        await create_audit_entry(
            db,
            action="revoke",
            entity_type="user_permission",
            entity_id=grant.id,
            actor_id=actor.id,
            old_values={"granted": True},
            new_values={"granted": False},
        )
        return UserPermissionOut.from_grant(grant, permission)

    @staticmethod
    async def bulk_assign(
        db: AsyncSession,
        actor: User,
        user_id: uuid.UUID,
        permission_ids: Sequence[uuid.UUID],
    ) -> BulkAssignOut:
        """Validate every id first; grant none unless all are assignable."""
        if not permission_ids:
            raise ValidationException({"permission_ids": ["At least one permission is required."]})

        engine = PermissionEngine.for_session(db)
        await engine.require_admin_or_permission(actor.id, actor.role, "permission.assign")
        repo = engine.repository

        user = await PermissionService._get_target_user(repo, user_id)
        permissions = [
            await PermissionService._get_active_permission(repo, pid)
            for pid in dict.fromkeys(permission_ids)
        ]
        for permission in permissions:
            PermissionService._assert_assignable(user, permission)

        for permission in permissions:
            grant = await repo.upsert_grant(
                user_id, permission.id, granted=True, granted_by=actor.id,
            )
            await create_audit_entry(
                db,
                action="grant",
                entity_type="user_permission",
                entity_id=grant.id,
                actor_id=actor.id,
                new_values={"user_id": user_id, "permission_key": permission.permission_key},
            )

        return BulkAssignOut(
            user_id=user_id,
            assigned=[p.permission_key for p in permissions],
        )

    # ─────────────────────────────────────────────────────────────────
    # Catalog seeding
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def initialize_required_permissions(
        db: AsyncSession,
        actor: Optional[User] = None,
    ) -> InitializePermissionsOut:
        """Insert any missing catalog keys. Safe to run repeatedly.

        ``actor=None`` is the bootstrap path used by the seeding script.
        """
        repo = PermissionRepository(db)
        if actor is not None:
            await PermissionEngine(repo).require_admin_or_permission(
                actor.id, actor.role, "permission.assign",
            )

        created: list[str] = []
        for key, name, description in REQUIRED_PERMISSIONS:
            if await repo.find_permission_by_key(key) is not None:
                continue
            await repo.add_permission(
                Permission(
                    permission_key=key,
                    permission_name=name,
                    description=description,
                    category=permission_category(key),
                    is_active=True,
                )
            )
            created.append(key)

        if created:
            logger.info("Seeded %d permissions: %s", len(created), ", ".join(created))
        return InitializePermissionsOut(
            created=created,
            existing=len(REQUIRED_PERMISSIONS) - len(created),
        )
