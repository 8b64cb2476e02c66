"""Notification endpoints — list and mark read."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leave_portal.auth.dependencies import get_current_user
from leave_portal.common.pagination import PaginationParams
from leave_portal.database import get_db
from leave_portal.notifications.schemas import (
    NotificationOut,
    NotificationPage,
)
from leave_portal.notifications.service import NotificationService
from leave_portal.users.models import User

router = APIRouter(prefix="", tags=["notifications"])


# ── GET / — list current user's notifications ───────────────────────

@router.get("", response_model=NotificationPage)
async def list_notifications(
    is_read: Optional[bool] = Query(default=None, description="Filter by read status"),
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService.get_notifications(
        db, user.id, pagination, is_read=is_read,
    )


# ── PUT /{notification_id}/read ─────────────────────────────────────

@router.put("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
    notification_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    notification = await NotificationService.mark_read(db, notification_id, user.id)
    return NotificationOut.model_validate(notification)
