"""Leave ORM models: LeaveType, LeaveBalance, LeaveApplication, ApprovalToken."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leave_portal.common.constants import ApprovalAction, ApprovalStatus, ApprovalTier
from leave_portal.database import Base, utcnow


def _approval_status_type() -> sa.Enum:
    return sa.Enum(
        ApprovalStatus,
        name="approval_status",
        values_callable=lambda members: [m.value for m in members],
    )


class LeaveType(Base):
    """Read-only here; leave applications refer to it by ``name``."""

    __tablename__ = "leave_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(100), unique=True, nullable=False)
    code: Mapped[Optional[str]] = mapped_column(sa.String(10), unique=True)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    max_days: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0"),
    )
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.true(),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now(),
    )


class LeaveBalance(Base):
    """Per (employee, leave type, year) ledger row.

    remaining = total_balance - used_balance, never stored.
    """

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_type", "year", name="uq_leave_balance"
        ),
        sa.CheckConstraint("used_balance >= 0", name="ck_leave_balance_used_non_negative"),
        sa.CheckConstraint(
            "used_balance <= total_balance", name="ck_leave_balance_used_within_total"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    leave_type: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    total_balance: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), default=Decimal("0"), server_default=sa.text("0")
    )
    used_balance: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), default=Decimal("0"), server_default=sa.text("0")
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )

    @property
    def remaining_balance(self) -> Decimal:
        return Decimal(self.total_balance or 0) - Decimal(self.used_balance or 0)


class LeaveApplication(Base):
    """Leave request with two independent approval tiers.

    The pair (hod_status, admin_status) is the state; ``overall_status`` is
    derived and never stored.
    """

    __tablename__ = "leave_applications"
    __table_args__ = (
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_dates_ordered"),
        sa.CheckConstraint("number_of_days >= 1", name="ck_leave_days_positive"),
        sa.Index("ix_leave_applications_employee_dates", "employee_id", "start_date", "end_date"),
        sa.Index("ix_leave_applications_hod_status", "hod_status"),
        sa.Index("ix_leave_applications_admin_status", "admin_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    leave_type: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    number_of_days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)

    hod_status: Mapped[ApprovalStatus] = mapped_column(
        _approval_status_type(),
        nullable=False,
        default=ApprovalStatus.pending,
        server_default=ApprovalStatus.pending.value,
    )
    admin_status: Mapped[ApprovalStatus] = mapped_column(
        _approval_status_type(),
        nullable=False,
        default=ApprovalStatus.pending,
        server_default=ApprovalStatus.pending.value,
    )
    approved_by_hod: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id")
    )
    approved_by_admin: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id")
    )
    hod_remark: Mapped[Optional[str]] = mapped_column(sa.Text)
    admin_remark: Mapped[Optional[str]] = mapped_column(sa.Text)
    hod_decided_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    admin_decided_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )

    # ── Derived state ───────────────────────────────────────────────

    @property
    def is_fully_approved(self) -> bool:
        return (
            self.hod_status == ApprovalStatus.approved
            and self.admin_status == ApprovalStatus.approved
        )

    @property
    def is_rejected(self) -> bool:
        return ApprovalStatus.rejected in (self.hod_status, self.admin_status)

    @property
    def overall_status(self) -> ApprovalStatus:
        if self.is_rejected:
            return ApprovalStatus.rejected
        if self.is_fully_approved:
            return ApprovalStatus.approved
        return ApprovalStatus.pending

    @property
    def is_frozen(self) -> bool:
        """No edits or deletes once the HOD has decided."""
        return self.hod_status != ApprovalStatus.pending

    def __repr__(self) -> str:
        return (
            f"<LeaveApplication {self.leave_type} {self.start_date}..{self.end_date} "
            f"hod={self.hod_status.value} admin={self.admin_status.value}>"
        )


class ApprovalToken(Base):
    """Single-use email approval link. Only the sha256 of the secret is stored."""

    __tablename__ = "approval_tokens"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    token_hash: Mapped[str] = mapped_column(sa.String(64), unique=True, nullable=False)
    leave_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    approver_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    tier: Mapped[ApprovalTier] = mapped_column(
        sa.Enum(ApprovalTier, name="approval_tier"), nullable=False
    )
    action: Mapped[ApprovalAction] = mapped_column(
        sa.Enum(ApprovalAction, name="approval_action"), nullable=False
    )
    used: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.false()
    )
    used_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    expires_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
