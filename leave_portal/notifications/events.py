"""Outbound leave events.

The leave lifecycle raises a ``LeaveEvent`` after each change. Listeners
(an SSE relay, an email dispatcher) subscribe to the module-level
``event_bus``. Events wait on the session until it commits, so a rolled
back change is never announced. Delivery is best effort and a failing
listener never affects the request that produced the event.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from leave_portal.common.constants import ApprovalStatus, LeaveEventType
from leave_portal.database import after_commit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaveEvent:
    type: LeaveEventType
    leave_id: uuid.UUID
    employee_id: uuid.UUID
    status: ApprovalStatus
    recipient_ids: tuple[uuid.UUID, ...] = ()
    payload: dict[str, Any] = field(default_factory=dict)

    def as_message(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "leave_id": str(self.leave_id),
            "employee_id": str(self.employee_id),
            "status": self.status.value,
            **self.payload,
        }


EventListener = Callable[[LeaveEvent], Awaitable[None]]


class EventBus:
    """In-process fan-out to async listeners."""

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def publish(self, event: LeaveEvent) -> int:
        """Deliver to every listener; returns how many succeeded."""
        delivered = 0
        for listener in list(self._listeners):
            try:
                await listener(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "Leave event listener %r failed for %s on leave=%s",
                    listener, event.type.value, event.leave_id,
                )
        return delivered


event_bus = EventBus()


def defer_event(session: AsyncSession, event: LeaveEvent) -> None:
    """Publish *event* once *session* commits; dropped if it rolls back."""
    after_commit(session, partial(event_bus.publish, event))
