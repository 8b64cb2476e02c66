"""Notification service — CRUD plus the leave-event dispatcher."""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leave_portal.common.constants import LeaveEventType, NotificationType
from leave_portal.common.exceptions import ForbiddenException, NotFoundException
from leave_portal.common.pagination import PaginationParams
from leave_portal.notifications.events import LeaveEvent, defer_event
from leave_portal.notifications.models import Notification
from leave_portal.notifications.schemas import (
    NotificationOut,
    NotificationPage,
    NotificationPageMeta,
)

logger = logging.getLogger(__name__)


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """Async notification operations."""

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        *,
        recipient_id: uuid.UUID,
        type: NotificationType = NotificationType.info,
        title: str,
        message: str,
        event_type: Optional[str] = None,
        action_url: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> Notification:
        """Create a new notification and flush to DB."""
        notification = Notification(
            recipient_id=recipient_id,
            type=type,
            event_type=event_type,
            title=title,
            message=message,
            action_url=action_url,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload,
        )
        db.add(notification)
        await db.flush()
        return notification

    @staticmethod
    async def get_notifications(
        db: AsyncSession,
        user_id: uuid.UUID,
        pagination: PaginationParams,
        *,
        is_read: Optional[bool] = None,
    ) -> NotificationPage:
        """Return paginated notifications for a user, newest first."""
        query = (
            select(Notification)
            .where(Notification.recipient_id == user_id)
            .order_by(Notification.created_at.desc())
        )
        if is_read is not None:
            query = query.where(Notification.is_read == is_read)

        count_q = query.with_only_columns(func.count()).order_by(None)
        total: int = (await db.execute(count_q)).scalar_one()

        rows = (
            await db.execute(
                query.offset(pagination.offset).limit(pagination.page_size)
            )
        ).scalars().all()

        total_pages = math.ceil(total / pagination.page_size) if total else 0
        unread = await NotificationService.get_unread_count(db, user_id)

        return NotificationPage(
            data=[NotificationOut.model_validate(n) for n in rows],
            meta=NotificationPageMeta(
                page=pagination.page,
                page_size=pagination.page_size,
                total=total,
                total_pages=total_pages,
                has_next=pagination.page < total_pages,
                has_prev=pagination.page > 1,
                unread=unread,
            ),
        )

    @staticmethod
    async def mark_read(
        db: AsyncSession,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Notification:
        """Mark a single notification as read. Verifies ownership."""
        notification = await db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundException("Notification", notification_id)
        if notification.recipient_id != user_id:
            raise ForbiddenException("You can only mark your own notifications as read.")

        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        await db.flush()
        return notification

    @staticmethod
    async def get_unread_count(db: AsyncSession, user_id: uuid.UUID) -> int:
        result = await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.recipient_id == user_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()


# ── Leave event dispatcher ──────────────────────────────────────────

_EVENT_COPY: dict[LeaveEventType, tuple[NotificationType, str, str]] = {
    LeaveEventType.leave_created: (
        NotificationType.info,
        "Leave Request Submitted",
        "Your {leave_type} leave from {start} to {end} ({days} day(s)) was submitted.",
    ),
    LeaveEventType.leave_updated: (
        NotificationType.info,
        "Leave Request Updated",
        "Your {leave_type} leave is now {start} to {end} ({days} day(s)).",
    ),
    LeaveEventType.leave_deleted: (
        NotificationType.info,
        "Leave Request Deleted",
        "Your {leave_type} leave from {start} to {end} was deleted.",
    ),
    LeaveEventType.leave_approved: (
        NotificationType.approval,
        "Leave Request Approved",
        "Your {leave_type} leave from {start} to {end} was approved by {tier}.",
    ),
    LeaveEventType.leave_rejected: (
        NotificationType.alert,
        "Leave Request Rejected",
        "Your {leave_type} leave from {start} to {end} was rejected by {tier}.",
    ),
    LeaveEventType.approval_requested: (
        NotificationType.action_required,
        "Leave Approval Needed",
        "A {leave_type} leave from {start} to {end} ({days} day(s)) needs your {tier} decision.",
    ),
}


async def publish_leave_event(
    db: AsyncSession,
    event: LeaveEvent,
    leave,  # leave_portal.leave.models.LeaveApplication
) -> None:
    """Persist in-app notifications for *event* and queue it for listeners.

    Runs in a savepoint so a failed notification insert cannot poison the
    caller's unit of work.
    """
    notification_type, title, template = _EVENT_COPY[event.type]
    message = template.format(
        leave_type=leave.leave_type,
        start=leave.start_date,
        end=leave.end_date,
        days=leave.number_of_days,
        tier=str(event.payload.get("tier", "")).upper() or "approver",
    )
    recipients = event.recipient_ids or (event.employee_id,)
    # Email action links are for the dispatcher only, never stored in-app
    stored_payload = {k: v for k, v in event.as_message().items() if k != "links"}

    try:
        async with db.begin_nested():
            for recipient_id in recipients:
                await NotificationService.create_notification(
                    db,
                    recipient_id=recipient_id,
                    type=notification_type,
                    event_type=event.type.value,
                    title=title,
                    message=message,
                    action_url=f"/leave/{leave.id}",
                    entity_type="leave_application",
                    entity_id=leave.id,
                    payload=stored_payload,
                )
    except SQLAlchemyError:
        logger.exception(
            "Could not store notifications for %s on leave=%s",
            event.type.value, event.leave_id,
        )

    defer_event(db, event)
