"""Date-overlap check for leave applications.

Two inclusive ranges [s1, e1] and [s2, e2] overlap iff s1 <= e2 and
s2 <= e1. A leave rejected on either tier no longer blocks new dates.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_portal.common.constants import ApprovalStatus
from leave_portal.leave.models import LeaveApplication


def ranges_overlap(s1: date, e1: date, s2: date, e2: date) -> bool:
    return s1 <= e2 and s2 <= e1


class OverlapChecker:

    @staticmethod
    async def find_overlap(
        db: AsyncSession,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
        exclude_leave_id: Optional[uuid.UUID] = None,
    ) -> Optional[LeaveApplication]:
        """Return the earliest live leave colliding with the range, if any."""
        query = (
            select(LeaveApplication)
            .where(
                LeaveApplication.employee_id == employee_id,
                LeaveApplication.start_date <= end_date,
                LeaveApplication.end_date >= start_date,
                LeaveApplication.hod_status != ApprovalStatus.rejected,
                LeaveApplication.admin_status != ApprovalStatus.rejected,
            )
            .order_by(LeaveApplication.start_date)
            .limit(1)
        )
        if exclude_leave_id is not None:
            query = query.where(LeaveApplication.id != exclude_leave_id)

        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    def describe_conflict(leave: LeaveApplication) -> dict[str, Any]:
        """Summary carried by OverlapConflict so the UI can explain the clash."""
        approved_tiers = [
            tier
            for tier, status in (("hod", leave.hod_status), ("admin", leave.admin_status))
            if status == ApprovalStatus.approved
        ]
        if leave.is_fully_approved:
            state = "approved"
        elif approved_tiers:
            state = f"approved by {' and '.join(t.upper() for t in approved_tiers)}, awaiting final approval"
        else:
            state = "pending"
        return {
            "leave_id": str(leave.id),
            "leave_type": leave.leave_type,
            "start_date": leave.start_date.isoformat(),
            "end_date": leave.end_date.isoformat(),
            "hod_status": leave.hod_status.value,
            "admin_status": leave.admin_status.value,
            "approved_tiers": approved_tiers,
            "state": state,
        }
