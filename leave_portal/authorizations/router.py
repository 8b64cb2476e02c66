"""Authorization request endpoints."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leave_portal.auth.dependencies import get_current_user, require_permission
from leave_portal.authorizations.schemas import (
    AuthorizationCreate,
    AuthorizationDecision,
    AuthorizationOut,
    AuthorizationStats,
    AuthorizationUpdate,
)
from leave_portal.authorizations.service import AuthorizationService
from leave_portal.common.constants import AuthorizationStatus
from leave_portal.common.pagination import PaginatedResponse, PaginationParams
from leave_portal.database import get_db
from leave_portal.users.models import User

router = APIRouter(prefix="", tags=["authorizations"])


# ── POST / ──────────────────────────────────────────────────────────

@router.post("", response_model=AuthorizationOut, status_code=201)
async def create_authorization(
    body: AuthorizationCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await AuthorizationService.create_request(db, user, body)


# ── GET /my ─────────────────────────────────────────────────────────

@router.get("/my", response_model=PaginatedResponse[AuthorizationOut])
async def my_authorizations(
    status: Optional[AuthorizationStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await AuthorizationService.list_own(db, user, pagination, status=status)


# ── GET /stats ──────────────────────────────────────────────────────

@router.get("/stats", response_model=AuthorizationStats)
async def authorization_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await AuthorizationService.stats(db, user)


# ── GET / — everyone's requests ─────────────────────────────────────

@router.get("", response_model=PaginatedResponse[AuthorizationOut])
async def list_authorizations(
    status: Optional[AuthorizationStatus] = Query(None),
    authorization_type: Optional[str] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    pagination: PaginationParams = Depends(),
    user: User = Depends(require_permission("authorization.view_all")),
    db: AsyncSession = Depends(get_db),
):
    return await AuthorizationService.list_all(
        db, user, pagination,
        status=status, authorization_type=authorization_type, employee_id=employee_id,
    )


# ── GET /{request_id} ───────────────────────────────────────────────

@router.get("/{request_id}", response_model=AuthorizationOut)
async def get_authorization(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await AuthorizationService.get_request(db, user, request_id)


# ── PATCH /{request_id} ─────────────────────────────────────────────

@router.patch("/{request_id}", response_model=AuthorizationOut)
async def update_authorization(
    request_id: uuid.UUID,
    body: AuthorizationUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await AuthorizationService.update_request(db, user, request_id, body)


# ── DELETE /{request_id} ────────────────────────────────────────────

@router.delete("/{request_id}", status_code=204)
async def delete_authorization(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await AuthorizationService.delete_request(db, user, request_id)


# ── PUT /{request_id}/decision ──────────────────────────────────────

@router.put("/{request_id}/decision", response_model=AuthorizationOut)
async def decide_authorization(
    request_id: uuid.UUID,
    body: AuthorizationDecision,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject. Only pending requests can be decided."""
    return await AuthorizationService.decide(db, user, request_id, body)
