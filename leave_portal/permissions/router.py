"""Permission endpoints — catalog, effective keys, assign / revoke."""


import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leave_portal.auth.dependencies import get_current_user
from leave_portal.database import get_db
from leave_portal.permissions.schemas import (
    BulkAssignOut,
    BulkAssignRequest,
    InitializePermissionsOut,
    PermissionGrantRequest,
    PermissionKeysOut,
    PermissionOut,
    UserPermissionOut,
)
from leave_portal.permissions.service import PermissionService
from leave_portal.users.models import User

router = APIRouter(prefix="", tags=["permissions"])


# ── GET / — active catalog ──────────────────────────────────────────

@router.get("", response_model=list[PermissionOut])
async def list_permissions(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await PermissionService.list_permissions(db, user)


# ── GET /me — effective keys for the UI ─────────────────────────────
# NOTE: registered before /users/{user_id}.

@router.get("/me", response_model=PermissionKeysOut)
async def my_permissions(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Permission keys the current user can exercise."""
    keys = await PermissionService.list_effective_keys(db, user)
    return PermissionKeysOut(permissions=keys)


# ── GET /users/{user_id} ────────────────────────────────────────────

@router.get("/users/{user_id}", response_model=list[UserPermissionOut])
async def user_permissions(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await PermissionService.list_user_permissions(db, user, user_id)


# ── POST /assign ────────────────────────────────────────────────────

@router.post("/assign", response_model=UserPermissionOut)
async def assign_permission(
    body: PermissionGrantRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await PermissionService.assign(db, user, body.user_id, body.permission_id)


# ── POST /revoke ────────────────────────────────────────────────────

@router.post("/revoke", response_model=UserPermissionOut)
async def revoke_permission(
    body: PermissionGrantRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Soft-revoke: the grant row stays with granted=false."""
    return await PermissionService.revoke(db, user, body.user_id, body.permission_id)


# ── POST /bulk-assign ───────────────────────────────────────────────

@router.post("/bulk-assign", response_model=BulkAssignOut)
async def bulk_assign(
    body: BulkAssignRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await PermissionService.bulk_assign(db, user, body.user_id, body.permission_ids)


# ── POST /initialize ────────────────────────────────────────────────

@router.post("/initialize", response_model=InitializePermissionsOut)
async def initialize_permissions(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Seed any missing required permission keys."""
    return await PermissionService.initialize_required_permissions(db, user)
