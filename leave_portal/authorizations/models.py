"""Authorization request ORM model — single-stage access requests."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leave_portal.common.constants import AuthorizationPriority, AuthorizationStatus
from leave_portal.database import Base, utcnow


class AuthorizationRequest(Base):
    """Access / authorization request decided once, pending → approved|rejected."""

    __tablename__ = "authorizations"
    __table_args__ = (
        sa.Index("ix_authorizations_employee", "employee_id"),
        sa.Index("ix_authorizations_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    authorization_type: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    title: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    requested_access: Mapped[Optional[str]] = mapped_column(sa.Text)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    priority: Mapped[AuthorizationPriority] = mapped_column(
        sa.Enum(AuthorizationPriority, name="authorization_priority"),
        default=AuthorizationPriority.normal,
        server_default="normal",
    )
    status: Mapped[AuthorizationStatus] = mapped_column(
        sa.Enum(AuthorizationStatus, name="authorization_status"),
        nullable=False,
        default=AuthorizationStatus.pending,
        server_default="pending",
    )
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id")
    )
    approval_comment: Mapped[Optional[str]] = mapped_column(sa.Text)
    approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    expiry_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    requested_date: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )

    @property
    def is_pending(self) -> bool:
        return self.status == AuthorizationStatus.pending
