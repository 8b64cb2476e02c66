"""In-app notification schemas.

Rows are written by ``publish_leave_event`` when a leave is created,
edited, deleted, decided, or waiting on an approver. ``payload`` keeps the
event message minus any email action links.
"""


import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from leave_portal.common.constants import NotificationType
from leave_portal.common.pagination import PaginationMeta


class NotificationOut(BaseModel):
    """A notification as its recipient sees it."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    recipient_id: uuid.UUID
    type: NotificationType
    event_type: Optional[str] = None
    title: str
    message: str
    action_url: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[uuid.UUID] = None
    payload: Optional[dict[str, Any]] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class NotificationPageMeta(PaginationMeta):
    unread: int


class NotificationPage(BaseModel):
    """One page of the caller's inbox; ``meta.unread`` feeds the bell badge."""

    data: list[NotificationOut]
    meta: NotificationPageMeta
