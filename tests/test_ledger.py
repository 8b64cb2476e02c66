"""Leave balance ledger tests — checks, debits and HR credits."""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest

from leave_portal.common.exceptions import (
    InsufficientBalanceException,
    NotFoundException,
    ValidationException,
)
from leave_portal.leave.ledger import LeaveBalanceLedger
from tests.conftest import _seed_balance, _seed_user


class TestBalanceChecks:

    async def test_sufficient_balance(self, db):
        employee = await _seed_user(db)
        await _seed_balance(db, employee.id, total=Decimal("12"), used=Decimal("9"))

        assert await LeaveBalanceLedger.has_sufficient_balance(db, employee.id, "Casual", 3, 2026)
        assert not await LeaveBalanceLedger.has_sufficient_balance(db, employee.id, "Casual", 4, 2026)

    async def test_missing_record_reports_no_record(self, db):
        employee = await _seed_user(db)
        with pytest.raises(InsufficientBalanceException) as exc_info:
            await LeaveBalanceLedger.ensure_can_request(db, employee.id, "Casual", 1, 2026)
        assert exc_info.value.has_record is False
        assert "contact HR" in exc_info.value.detail

    async def test_zero_allocation_counts_as_no_record(self, db):
        employee = await _seed_user(db)
        await _seed_balance(db, employee.id, total=Decimal("0"))
        with pytest.raises(InsufficientBalanceException) as exc_info:
            await LeaveBalanceLedger.ensure_can_request(db, employee.id, "Casual", 1, 2026)
        assert exc_info.value.has_record is False

    async def test_exhausted_balance_message(self, db):
        employee = await _seed_user(db)
        await _seed_balance(db, employee.id, total=Decimal("12"), used=Decimal("12"))
        with pytest.raises(InsufficientBalanceException) as exc_info:
            await LeaveBalanceLedger.ensure_can_request(db, employee.id, "Casual", 1, 2026)
        assert exc_info.value.has_record is True
        assert "exhausted" in exc_info.value.detail
        assert exc_info.value.extensions["remaining"] == 0.0

    async def test_too_small_balance_carries_numbers(self, db):
        employee = await _seed_user(db)
        await _seed_balance(db, employee.id, total=Decimal("12"), used=Decimal("10"))
        with pytest.raises(InsufficientBalanceException) as exc_info:
            await LeaveBalanceLedger.ensure_can_request(db, employee.id, "Casual", 3, 2026)
        assert exc_info.value.extensions["remaining"] == 2.0
        assert exc_info.value.extensions["requested"] == 3.0

    async def test_get_balance_missing_is_not_found(self, db):
        with pytest.raises(NotFoundException):
            await LeaveBalanceLedger.get_balance(db, uuid.uuid4(), "Casual", 2026)


class TestDebitAndCredit:

    async def test_debit_moves_used_and_remaining(self, db):
        employee = await _seed_user(db)
        await _seed_balance(db, employee.id, total=Decimal("12"), used=Decimal("2"))

        snapshot = await LeaveBalanceLedger.debit(db, employee.id, "Casual", 3, 2026)
        assert snapshot.used == Decimal("5")
        assert snapshot.remaining == Decimal("7")
        assert snapshot.total == Decimal("12")

    async def test_debit_to_exactly_zero(self, db):
        employee = await _seed_user(db)
        await _seed_balance(db, employee.id, total=Decimal("3"))
        snapshot = await LeaveBalanceLedger.debit(db, employee.id, "Casual", 3, 2026)
        assert snapshot.remaining == Decimal("0")

    async def test_debit_never_clamps(self, db):
        employee = await _seed_user(db)
        await _seed_balance(db, employee.id, total=Decimal("12"), used=Decimal("10"))

        with pytest.raises(InsufficientBalanceException):
            await LeaveBalanceLedger.debit(db, employee.id, "Casual", 3, 2026)

        snapshot = await LeaveBalanceLedger.get_balance(db, employee.id, "Casual", 2026)
        assert snapshot.used == Decimal("10")

    async def test_debit_without_record(self, db):
        employee = await _seed_user(db)
        with pytest.raises(InsufficientBalanceException) as exc_info:
            await LeaveBalanceLedger.debit(db, employee.id, "Casual", 1, 2026)
        assert exc_info.value.has_record is False

    async def test_debit_rejects_non_positive_days(self, db):
        employee = await _seed_user(db)
        await _seed_balance(db, employee.id)
        with pytest.raises(ValidationException):
            await LeaveBalanceLedger.debit(db, employee.id, "Casual", 0, 2026)

    async def test_credit_returns_days(self, db):
        employee = await _seed_user(db)
        await _seed_balance(db, employee.id, total=Decimal("12"), used=Decimal("5"))
        snapshot = await LeaveBalanceLedger.credit(db, employee.id, "Casual", 2, 2026)
        assert snapshot.used == Decimal("3")
        assert snapshot.remaining == Decimal("9")

    async def test_credit_cannot_push_used_below_zero(self, db):
        employee = await _seed_user(db)
        await _seed_balance(db, employee.id, total=Decimal("12"), used=Decimal("1"))
        with pytest.raises(ValidationException):
            await LeaveBalanceLedger.credit(db, employee.id, "Casual", 2, 2026)

    async def test_balances_are_per_year(self, db):
        employee = await _seed_user(db)
        await _seed_balance(db, employee.id, year=2026, total=Decimal("12"))
        await _seed_balance(db, employee.id, year=2027, total=Decimal("15"))

        await LeaveBalanceLedger.debit(db, employee.id, "Casual", 4, 2027)
        this_year = await LeaveBalanceLedger.get_balance(db, employee.id, "Casual", 2026)
        next_year = await LeaveBalanceLedger.get_balance(db, employee.id, "Casual", 2027)
        assert this_year.remaining == Decimal("12")
        assert next_year.remaining == Decimal("11")

    async def test_list_balances_sorted_by_type(self, db):
        employee = await _seed_user(db)
        await _seed_balance(db, employee.id, leave_type="Sick", total=Decimal("6"))
        await _seed_balance(db, employee.id, leave_type="Casual", total=Decimal("12"))

        rows = await LeaveBalanceLedger.list_balances(db, employee.id, 2026)
        assert [r.leave_type for r in rows] == ["Casual", "Sick"]
