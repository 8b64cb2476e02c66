"""Authorization request schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leave_portal.common.constants import AuthorizationPriority, AuthorizationStatus


class AuthorizationCreate(BaseModel):
    authorization_type: str = Field(..., min_length=1, max_length=100)
    title: str = Field(..., min_length=1, max_length=200)
    reason: str = Field(..., min_length=1)
    description: Optional[str] = None
    requested_access: Optional[str] = None
    priority: AuthorizationPriority = AuthorizationPriority.normal
    expiry_date: Optional[date] = None

    @field_validator("authorization_type", "title", "reason")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank.")
        return v


class AuthorizationUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    reason: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    requested_access: Optional[str] = None
    priority: Optional[AuthorizationPriority] = None
    expiry_date: Optional[date] = None

    @field_validator("title", "reason")
    @classmethod
    def not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("must not be blank.")
        return v


class AuthorizationDecision(BaseModel):
    status: AuthorizationStatus
    approval_comment: Optional[str] = Field(default=None, max_length=2000)


class AuthorizationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    authorization_type: str
    title: str
    description: Optional[str] = None
    requested_access: Optional[str] = None
    reason: str
    priority: AuthorizationPriority
    status: AuthorizationStatus
    approved_by: Optional[uuid.UUID] = None
    approval_comment: Optional[str] = None
    approved_at: Optional[datetime] = None
    expiry_date: Optional[date] = None
    requested_date: datetime
    created_at: datetime
    updated_at: datetime


class AuthorizationStats(BaseModel):
    pending_count: int = 0
    approved_count: int = 0
    rejected_count: int = 0
    total_count: int = 0
