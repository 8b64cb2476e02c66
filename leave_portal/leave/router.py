"""Leave router — apply, edit, HOD / admin decisions, bulk, email links, balances.

All endpoints require authentication except the email-action link, where
the single-use token is the credential and the route is rate limited.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leave_portal.auth.dependencies import get_current_user, require_admin_or_permission
from leave_portal.common.constants import ApprovalStatus
from leave_portal.common.pagination import PaginatedResponse, PaginationParams
from leave_portal.common.rate_limit import EMAIL_ACTION_LIMIT, limiter
from leave_portal.database import get_db
from leave_portal.leave.schemas import (
    BalanceCreditRequest,
    BalanceSnapshot,
    BulkDecisionOut,
    BulkDecisionRequest,
    DecisionRequest,
    EmailActionOut,
    LeaveApplicationCreate,
    LeaveApplicationOut,
    LeaveApplicationUpdate,
    OverlapCheckOut,
)
from leave_portal.leave.service import LeaveService
from leave_portal.users.models import User

router = APIRouter(prefix="", tags=["leave"])


# ── POST / — apply ──────────────────────────────────────────────────

@router.post("", response_model=LeaveApplicationOut, status_code=201)
async def apply_leave(
    body: LeaveApplicationCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. Checks dates, overlap and remaining balance."""
    return await LeaveService.create_leave(db, user, body)


# ── GET /my ─────────────────────────────────────────────────────────
# NOTE: literal paths are registered before /{leave_id}.

@router.get("/my", response_model=PaginatedResponse[LeaveApplicationOut])
async def my_leaves(
    hod_status: Optional[ApprovalStatus] = Query(None),
    admin_status: Optional[ApprovalStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.list_my_leaves(
        db, user, pagination, hod_status=hod_status, admin_status=admin_status,
    )


# ── GET /worklist/hod ───────────────────────────────────────────────

@router.get("/worklist/hod", response_model=PaginatedResponse[LeaveApplicationOut])
async def hod_worklist(
    hod_status: Optional[ApprovalStatus] = Query(ApprovalStatus.pending),
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Leaves of the caller's reports / department awaiting HOD decision."""
    return await LeaveService.hod_worklist(db, user, pagination, hod_status=hod_status)


# ── GET /worklist/admin ─────────────────────────────────────────────

@router.get("/worklist/admin", response_model=PaginatedResponse[LeaveApplicationOut])
async def admin_worklist(
    admin_status: Optional[ApprovalStatus] = Query(ApprovalStatus.pending),
    hod_status: Optional[ApprovalStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.admin_worklist(
        db, user, pagination, admin_status=admin_status, hod_status=hod_status,
    )


# ── GET /overlap ────────────────────────────────────────────────────

@router.get("/overlap", response_model=OverlapCheckOut)
async def check_overlap(
    start_date: date = Query(...),
    end_date: date = Query(...),
    exclude_leave_id: Optional[uuid.UUID] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Pre-flight check used by the apply form."""
    return await LeaveService.check_overlap(db, user, start_date, end_date, exclude_leave_id)


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[BalanceSnapshot])
async def list_balances(
    employee_id: Optional[uuid.UUID] = Query(None),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.list_balances(db, user, employee_id=employee_id, year=year)


# ── POST /balances/{employee_id}/credit ─────────────────────────────

@router.post("/balances/{employee_id}/credit", response_model=BalanceSnapshot)
async def credit_balance(
    employee_id: uuid.UUID,
    body: BalanceCreditRequest,
    user: User = Depends(require_admin_or_permission("leave.balance.adjust")),
    db: AsyncSession = Depends(get_db),
):
    """HR correction: return days to an employee's balance."""
    return await LeaveService.credit_balance(db, user, employee_id, body)


# ── GET /email-action — single-use approval link ────────────────────

@router.get("/email-action", response_model=EmailActionOut)
@limiter.limit(EMAIL_ACTION_LIMIT)
async def email_action(
    request: Request,
    token: str = Query(..., min_length=1, max_length=128),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.decide_via_token(db, token)


# ── POST /bulk/hod-decision ─────────────────────────────────────────

@router.post("/bulk/hod-decision", response_model=BulkDecisionOut)
async def bulk_hod_decision(
    body: BulkDecisionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.bulk_hod_decision(
        db, user, body.leave_ids, body.status, body.comment,
    )


# ── POST /bulk/admin-decision ───────────────────────────────────────

@router.post("/bulk/admin-decision", response_model=BulkDecisionOut)
async def bulk_admin_decision(
    body: BulkDecisionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.bulk_admin_decision(
        db, user, body.leave_ids, body.status, body.comment,
    )


# ── GET /{leave_id} ─────────────────────────────────────────────────

@router.get("/{leave_id}", response_model=LeaveApplicationOut)
async def get_leave(
    leave_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave(db, user, leave_id)


# ── PATCH /{leave_id} ───────────────────────────────────────────────

@router.patch("/{leave_id}", response_model=LeaveApplicationOut)
async def update_leave(
    leave_id: uuid.UUID,
    body: LeaveApplicationUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Edit while the HOD decision is still pending."""
    return await LeaveService.update_leave(db, user, leave_id, body)


# ── DELETE /{leave_id} ──────────────────────────────────────────────

@router.delete("/{leave_id}", status_code=204)
async def delete_leave(
    leave_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await LeaveService.delete_leave(db, user, leave_id)


# ── PUT /{leave_id}/hod-decision ────────────────────────────────────

@router.put("/{leave_id}/hod-decision", response_model=LeaveApplicationOut)
async def hod_decision(
    leave_id: uuid.UUID,
    body: DecisionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.hod_decision(db, user, leave_id, body.status, body.comment)


# ── PUT /{leave_id}/admin-decision ──────────────────────────────────

@router.put("/{leave_id}/admin-decision", response_model=LeaveApplicationOut)
async def admin_decision(
    leave_id: uuid.UUID,
    body: DecisionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Final approval debits the balance; requires prior HOD approval."""
    return await LeaveService.admin_decision(db, user, leave_id, body.status, body.comment)
