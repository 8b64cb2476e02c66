"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update / *Request  → request bodies (write)
  - *Out                          → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leave_portal.common.constants import ApprovalStatus


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


class BalanceSnapshot(BaseModel):
    """``{total, used, remaining}`` for one employee / leave type / year."""

    employee_id: uuid.UUID
    leave_type: str
    year: int
    total: Decimal
    used: Decimal
    remaining: Decimal

    @classmethod
    def from_balance(cls, balance) -> BalanceSnapshot:
        return cls(
            employee_id=balance.employee_id,
            leave_type=balance.leave_type,
            year=balance.year,
            total=balance.total_balance,
            used=balance.used_balance,
            remaining=balance.remaining_balance,
        )


class BalanceCreditRequest(BaseModel):
    leave_type: str = Field(..., min_length=1, max_length=100)
    days: Decimal = Field(..., gt=0)
    year: Optional[int] = None
    reason: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Leave applications
# ═════════════════════════════════════════════════════════════════════


class LeaveApplicationCreate(BaseModel):
    """Date ordering and leave type existence are checked by the service."""

    leave_type: str = Field(..., min_length=1, max_length=100)
    start_date: date
    end_date: date
    reason: str = Field(..., min_length=1)
    employee_id: Optional[uuid.UUID] = Field(
        default=None, description="Admins only: file on behalf of this employee",
    )

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reason must not be blank.")
        return v


class LeaveApplicationUpdate(BaseModel):
    leave_type: Optional[str] = Field(default=None, min_length=1, max_length=100)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = Field(default=None, min_length=1)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("reason must not be blank.")
        return v


class LeaveApplicationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: str
    start_date: date
    end_date: date
    number_of_days: int
    reason: str
    hod_status: ApprovalStatus
    admin_status: ApprovalStatus
    overall_status: ApprovalStatus
    is_fully_approved: bool
    approved_by_hod: Optional[uuid.UUID] = None
    approved_by_admin: Optional[uuid.UUID] = None
    hod_remark: Optional[str] = None
    admin_remark: Optional[str] = None
    hod_decided_at: Optional[datetime] = None
    admin_decided_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ═════════════════════════════════════════════════════════════════════
# Decisions
# ═════════════════════════════════════════════════════════════════════


class DecisionRequest(BaseModel):
    status: ApprovalStatus
    comment: Optional[str] = Field(default=None, max_length=2000)


class BulkDecisionRequest(BaseModel):
    leave_ids: list[uuid.UUID] = Field(..., min_length=1, max_length=200)
    status: ApprovalStatus
    comment: Optional[str] = Field(default=None, max_length=2000)


class BulkFailure(BaseModel):
    id: uuid.UUID
    reason: str
    error_type: str


class BulkDecisionOut(BaseModel):
    succeeded: list[uuid.UUID]
    failed: list[BulkFailure]
    total: int
    succeeded_count: int
    failed_count: int


class EmailActionOut(BaseModel):
    message: str
    leave: LeaveApplicationOut


class OverlapCheckOut(BaseModel):
    has_overlap: bool
    conflict: Optional[dict[str, Any]] = None
