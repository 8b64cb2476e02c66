"""Permission Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PermissionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    permission_key: str
    permission_name: str
    description: Optional[str] = None
    category: str
    is_active: bool = True


class UserPermissionOut(BaseModel):
    """A grant row joined with its permission key."""

    user_id: uuid.UUID
    permission_id: uuid.UUID
    permission_key: Optional[str] = None
    category: Optional[str] = None
    granted: bool
    granted_by: Optional[uuid.UUID] = None
    granted_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None

    @classmethod
    def from_grant(cls, grant, permission) -> UserPermissionOut:
        return cls(
            user_id=grant.user_id,
            permission_id=grant.permission_id,
            permission_key=permission.permission_key if permission else None,
            category=permission.category if permission else None,
            granted=grant.granted,
            granted_by=grant.granted_by,
            granted_at=grant.granted_at,
            revoked_at=grant.revoked_at,
        )


class PermissionGrantRequest(BaseModel):
    user_id: uuid.UUID
    permission_id: uuid.UUID


class BulkAssignRequest(BaseModel):
    user_id: uuid.UUID
    permission_ids: list[uuid.UUID] = Field(..., min_length=1)


class BulkAssignOut(BaseModel):
    user_id: uuid.UUID
    assigned: list[str]


class InitializePermissionsOut(BaseModel):
    created: list[str]
    existing: int


class PermissionKeysOut(BaseModel):
    permissions: list[str]
