"""Leave balance ledger — the only code that mutates ``leave_balances``.

Debits happen once, when a leave becomes fully approved, through a
conditional UPDATE so the balance can never go negative and a racing
second debit simply matches zero rows.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leave_portal.common.exceptions import (
    InsufficientBalanceException,
    NotFoundException,
    ValidationException,
)
from leave_portal.database import utcnow
from leave_portal.leave.models import LeaveBalance
from leave_portal.leave.schemas import BalanceSnapshot

logger = logging.getLogger(__name__)

Days = Union[int, Decimal]


def _year(year: Optional[int]) -> int:
    return year if year is not None else date.today().year


class LeaveBalanceLedger:
    """Async balance reads, checks, debits and HR credits."""

    @staticmethod
    async def _find(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: str,
        year: Optional[int],
        *,
        refresh: bool = False,
    ) -> Optional[LeaveBalance]:
        query = select(LeaveBalance).where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type == leave_type,
            LeaveBalance.year == _year(year),
        )
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalars().first()

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: str,
        year: Optional[int] = None,
    ) -> BalanceSnapshot:
        balance = await LeaveBalanceLedger._find(db, employee_id, leave_type, year)
        if balance is None:
            raise NotFoundException("LeaveBalance", f"{employee_id}/{leave_type}/{_year(year)}")
        return BalanceSnapshot.from_balance(balance)

    @staticmethod
    async def list_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: Optional[int] = None,
    ) -> list[BalanceSnapshot]:
        result = await db.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.year == _year(year),
            )
            .order_by(LeaveBalance.leave_type)
        )
        rows: Sequence[LeaveBalance] = result.scalars().all()
        return [BalanceSnapshot.from_balance(b) for b in rows]

    @staticmethod
    async def has_sufficient_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: str,
        days: Days,
        year: Optional[int] = None,
    ) -> bool:
        balance = await LeaveBalanceLedger._find(db, employee_id, leave_type, year)
        if balance is None or not balance.total_balance:
            return False
        return balance.remaining_balance >= days

    @staticmethod
    async def ensure_can_request(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: str,
        days: Days,
        year: Optional[int] = None,
    ) -> BalanceSnapshot:
        """Raise InsufficientBalance unless *days* fit in the remaining balance.

        A missing row and a zero allocation both count as "no balance
        record", which is reported differently from an exhausted balance.
        """
        balance = await LeaveBalanceLedger._find(db, employee_id, leave_type, year)
        if balance is None or not balance.total_balance:
            raise InsufficientBalanceException(
                Decimal("0"), days, leave_type=leave_type, has_record=False,
            )
        if balance.remaining_balance < days:
            raise InsufficientBalanceException(
                balance.remaining_balance, days, leave_type=leave_type,
            )
        return BalanceSnapshot.from_balance(balance)

    # ── Mutations ───────────────────────────────────────────────────

    @staticmethod
    async def debit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: str,
        days: Days,
        year: Optional[int] = None,
    ) -> BalanceSnapshot:
        """Add *days* to used_balance iff they fit. Never clamps."""
        if days <= 0:
            raise ValidationException({"days": ["Days to debit must be positive."]})

        result = await db.execute(
            update(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type == leave_type,
                LeaveBalance.year == _year(year),
                LeaveBalance.total_balance - LeaveBalance.used_balance >= days,
            )
            .values(
                used_balance=LeaveBalance.used_balance + days,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        balance = await LeaveBalanceLedger._find(
            db, employee_id, leave_type, year, refresh=True,
        )
        if result.rowcount != 1:
            if balance is None or not balance.total_balance:
                raise InsufficientBalanceException(
                    Decimal("0"), days, leave_type=leave_type, has_record=False,
                )
            raise InsufficientBalanceException(
                balance.remaining_balance, days, leave_type=leave_type,
            )

        logger.info(
            "Debited %s day(s) of %s for employee=%s (remaining=%s)",
            days, leave_type, employee_id, balance.remaining_balance,
        )
        return BalanceSnapshot.from_balance(balance)

    @staticmethod
    async def credit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: str,
        days: Days,
        year: Optional[int] = None,
    ) -> BalanceSnapshot:
        """Give *days* back (HR correction). used_balance never drops below zero."""
        if days <= 0:
            raise ValidationException({"days": ["Days to credit must be positive."]})

        result = await db.execute(
            update(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type == leave_type,
                LeaveBalance.year == _year(year),
                LeaveBalance.used_balance >= days,
            )
            .values(
                used_balance=LeaveBalance.used_balance - days,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        balance = await LeaveBalanceLedger._find(
            db, employee_id, leave_type, year, refresh=True,
        )
        if balance is None:
            raise NotFoundException("LeaveBalance", f"{employee_id}/{leave_type}/{_year(year)}")
        if result.rowcount != 1:
            raise ValidationException(
                {"days": [f"Cannot credit {days} day(s); only {balance.used_balance} used."]}
            )

        logger.info(
            "Credited %s day(s) of %s for employee=%s (remaining=%s)",
            days, leave_type, employee_id, balance.remaining_balance,
        )
        return BalanceSnapshot.from_balance(balance)
