"""Overlap detection tests."""

from __future__ import annotations

from datetime import date

import pytest

from leave_portal.leave.overlap import OverlapChecker, ranges_overlap
from tests.conftest import _seed_leave, _seed_user


@pytest.mark.parametrize(
    "s1, e1, s2, e2, expected",
    [
        (date(2026, 3, 10), date(2026, 3, 12), date(2026, 3, 12), date(2026, 3, 14), True),
        (date(2026, 3, 10), date(2026, 3, 12), date(2026, 3, 13), date(2026, 3, 14), False),
        (date(2026, 3, 10), date(2026, 3, 20), date(2026, 3, 12), date(2026, 3, 13), True),
        (date(2026, 3, 10), date(2026, 3, 10), date(2026, 3, 10), date(2026, 3, 10), True),
        (date(2026, 3, 14), date(2026, 3, 15), date(2026, 3, 10), date(2026, 3, 13), False),
    ],
)
def test_ranges_overlap_is_inclusive(s1, e1, s2, e2, expected):
    assert ranges_overlap(s1, e1, s2, e2) is expected
    assert ranges_overlap(s2, e2, s1, e1) is expected


class TestFindOverlap:

    async def test_shared_boundary_day_collides(self, db):
        employee = await _seed_user(db)
        existing = await _seed_leave(db, employee.id)

        found = await OverlapChecker.find_overlap(
            db, employee.id, date(2026, 3, 12), date(2026, 3, 14),
        )
        assert found is not None and found.id == existing.id

    async def test_adjacent_range_is_free(self, db):
        employee = await _seed_user(db)
        await _seed_leave(db, employee.id)
        assert await OverlapChecker.find_overlap(
            db, employee.id, date(2026, 3, 13), date(2026, 3, 14),
        ) is None

    async def test_rejected_on_either_tier_does_not_block(self, db):
        employee = await _seed_user(db)
        await _seed_leave(db, employee.id, hod_status="Rejected")
        await _seed_leave(
            db, employee.id,
            start_date=date(2026, 3, 20), end_date=date(2026, 3, 21),
            hod_status="Approved", admin_status="Rejected",
        )
        assert await OverlapChecker.find_overlap(
            db, employee.id, date(2026, 3, 1), date(2026, 3, 31),
        ) is None

    async def test_other_employees_do_not_collide(self, db):
        employee = await _seed_user(db)
        colleague = await _seed_user(db)
        await _seed_leave(db, colleague.id)
        assert await OverlapChecker.find_overlap(
            db, employee.id, date(2026, 3, 10), date(2026, 3, 12),
        ) is None

    async def test_exclude_self_when_editing(self, db):
        employee = await _seed_user(db)
        existing = await _seed_leave(db, employee.id)
        assert await OverlapChecker.find_overlap(
            db, employee.id, date(2026, 3, 11), date(2026, 3, 13),
            exclude_leave_id=existing.id,
        ) is None


class TestDescribeConflict:

    async def test_partially_approved_state(self, db):
        employee = await _seed_user(db)
        leave = await _seed_leave(db, employee.id, hod_status="Approved")

        conflict = OverlapChecker.describe_conflict(leave)
        assert conflict["approved_tiers"] == ["hod"]
        assert conflict["state"] == "approved by HOD, awaiting final approval"
        assert conflict["start_date"] == "2026-03-10"

    async def test_fully_approved_state(self, db):
        employee = await _seed_user(db)
        leave = await _seed_leave(
            db, employee.id, hod_status="Approved", admin_status="Approved",
        )
        assert OverlapChecker.describe_conflict(leave)["state"] == "approved"

    async def test_pending_state(self, db):
        employee = await _seed_user(db)
        leave = await _seed_leave(db, employee.id)
        conflict = OverlapChecker.describe_conflict(leave)
        assert conflict["state"] == "pending"
        assert conflict["approved_tiers"] == []
