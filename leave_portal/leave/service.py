"""Leave service layer — dual-tier approval lifecycle.

Business logic:
  - Create / update / delete with date validation, overlap and balance checks
  - HOD decision, then admin decision; approval at the admin tier requires
    prior HOD approval and debits the ledger in the same savepoint
  - Every tier transition is a conditional UPDATE keyed on the tier still
    being Pending, so a second decision gets AlreadyProcessed
  - Bulk decisions with per-id savepoints and a success/failure summary
  - Email approval links that run the same transitions as the API
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Awaitable, Callable, Optional, Sequence

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leave_portal.common.audit import create_audit_entry
from leave_portal.common.constants import (
    ACTION_TO_STATUS,
    ApprovalStatus,
    ApprovalTier,
    LeaveEventType,
    UserRole,
)
from leave_portal.common.exceptions import (
    AlreadyProcessedException,
    AppException,
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    OverlapConflictException,
    PermissionDeniedException,
    StorageException,
    ValidationException,
)
from leave_portal.common.pagination import PaginatedResponse, PaginationParams, paginate
from leave_portal.database import discard_after_commit, pending_after_commit, utcnow
from leave_portal.leave.ledger import LeaveBalanceLedger
from leave_portal.leave.models import LeaveApplication, LeaveType
from leave_portal.leave.overlap import OverlapChecker
from leave_portal.leave.schemas import (
    BalanceCreditRequest,
    BalanceSnapshot,
    BulkDecisionOut,
    BulkFailure,
    EmailActionOut,
    LeaveApplicationCreate,
    LeaveApplicationOut,
    LeaveApplicationUpdate,
    OverlapCheckOut,
)
from leave_portal.leave.tokens import ApprovalTokenService
from leave_portal.notifications.events import LeaveEvent
from leave_portal.notifications.service import publish_leave_event
from leave_portal.permissions.service import PermissionEngine
from leave_portal.users.models import User

logger = logging.getLogger(__name__)

# Name of the PostgreSQL exclusion constraint created by the initial migration
OVERLAP_CONSTRAINT = "ex_leave_applications_no_overlap"

Decider = Callable[
    [AsyncSession, User, uuid.UUID, ApprovalStatus, Optional[str]],
    Awaitable[LeaveApplicationOut],
]


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: applications, tier decisions, bulk, email links."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_leave(
        db: AsyncSession,
        leave_id: uuid.UUID,
        *,
        refresh: bool = False,
    ) -> LeaveApplication:
        query = select(LeaveApplication).where(LeaveApplication.id == leave_id)
        if refresh:
            query = query.execution_options(populate_existing=True)
        leave = (await db.execute(query)).scalars().first()
        if leave is None:
            raise NotFoundException("LeaveApplication", leave_id)
        return leave

    @staticmethod
    async def _get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
        result = await db.execute(
            select(User).where(User.id == user_id, User.is_active.is_(True))
        )
        user = result.scalars().first()
        if user is None:
            raise NotFoundException("User", user_id)
        return user

    @staticmethod
    def _count_days(start_date: date, end_date: date) -> int:
        """Inclusive calendar-day count; end before start is a validation error."""
        if end_date < start_date:
            raise ValidationException(
                {"end_date": ["End date must be on or after the start date."]}
            )
        return (end_date - start_date).days + 1

    @staticmethod
    async def _get_active_leave_type(db: AsyncSession, name: str) -> LeaveType:
        result = await db.execute(
            select(LeaveType).where(
                LeaveType.name == name,
                LeaveType.is_active.is_(True),
            )
        )
        leave_type = result.scalars().first()
        if leave_type is None:
            raise ValidationException(
                {"leave_type": [f"Leave type '{name}' does not exist or is inactive."]}
            )
        return leave_type

    @staticmethod
    async def _assert_no_overlap(
        db: AsyncSession,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
        exclude_leave_id: Optional[uuid.UUID] = None,
    ) -> None:
        conflict = await OverlapChecker.find_overlap(
            db, employee_id, start_date, end_date, exclude_leave_id,
        )
        if conflict is not None:
            raise OverlapConflictException(OverlapChecker.describe_conflict(conflict))

    @staticmethod
    async def _write_guarding_overlap(
        db: AsyncSession,
        write: Callable[[], Awaitable[Any]],
        *,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
        exclude_leave_id: Optional[uuid.UUID] = None,
    ) -> Any:
        """Run *write* in a savepoint; a hit on the exclusion constraint
        becomes OverlapConflict instead of a storage error."""
        try:
            async with db.begin_nested():
                return await write()
        except IntegrityError as exc:
            if OVERLAP_CONSTRAINT not in str(exc.orig):
                raise
            conflict = await OverlapChecker.find_overlap(
                db, employee_id, start_date, end_date, exclude_leave_id,
            )
            raise OverlapConflictException(
                OverlapChecker.describe_conflict(conflict) if conflict else {
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                    "state": "pending",
                }
            )

    @staticmethod
    async def _in_hod_scope(db: AsyncSession, approver: User, employee_id: uuid.UUID) -> bool:
        """Approver is the employee's manager, or a HOD of the same department."""
        if approver.id == employee_id:
            return False
        employee = await LeaveService._get_user(db, employee_id)
        if employee.manager_id == approver.id:
            return True
        return (
            approver.role == UserRole.hod
            and approver.department is not None
            and approver.department == employee.department
        )

    @staticmethod
    def _assert_owner_or_admin(actor: User, leave: LeaveApplication) -> None:
        if leave.employee_id != actor.id and actor.role != UserRole.admin:
            raise ForbiddenException("You can only change your own leave applications.")

    @staticmethod
    def _assert_decision(status: ApprovalStatus) -> None:
        if status == ApprovalStatus.pending:
            raise ValidationException(
                {"status": ["Decision must be 'Approved' or 'Rejected'."]}
            )

    @staticmethod
    def _snapshot(leave: LeaveApplication) -> dict[str, Any]:
        return {
            "leave_type": leave.leave_type,
            "start_date": leave.start_date,
            "end_date": leave.end_date,
            "number_of_days": leave.number_of_days,
            "reason": leave.reason,
            "hod_status": leave.hod_status,
            "admin_status": leave.admin_status,
        }

    @staticmethod
    async def _find_approvers(
        db: AsyncSession,
        employee: User,
        tier: ApprovalTier,
    ) -> list[User]:
        if tier == ApprovalTier.admin:
            query = select(User).where(
                User.role == UserRole.admin,
                User.is_active.is_(True),
                User.id != employee.id,
            )
        else:
            scope = [User.id == employee.manager_id] if employee.manager_id else []
            if employee.department:
                scope.append(
                    (User.role == UserRole.hod) & (User.department == employee.department)
                )
            if not scope:
                return []
            query = select(User).where(
                or_(*scope),
                User.is_active.is_(True),
                User.id != employee.id,
            )
        result = await db.execute(query.order_by(User.email))
        return list(result.scalars().all())

    @staticmethod
    async def _request_approval(
        db: AsyncSession,
        leave: LeaveApplication,
        tier: ApprovalTier,
    ) -> None:
        """Issue email links for every approver of *tier* and announce it."""
        employee = await LeaveService._get_user(db, leave.employee_id)
        approvers = await LeaveService._find_approvers(db, employee, tier)
        if not approvers:
            logger.warning(
                "No %s approver found for leave=%s (employee=%s)",
                tier.value, leave.id, employee.id,
            )
            return

        links: dict[str, dict[str, str]] = {}
        for approver in approvers:
            links[str(approver.id)] = await ApprovalTokenService.issue_for_approver(
                db, leave_id=leave.id, approver_id=approver.id, tier=tier,
            )

        await publish_leave_event(
            db,
            LeaveEvent(
                type=LeaveEventType.approval_requested,
                leave_id=leave.id,
                employee_id=leave.employee_id,
                status=leave.overall_status,
                recipient_ids=tuple(a.id for a in approvers),
                payload={"tier": tier.value, "links": links},
            ),
            leave,
        )

    @staticmethod
    async def _announce_decision(
        db: AsyncSession,
        leave: LeaveApplication,
        tier: ApprovalTier,
        status: ApprovalStatus,
    ) -> None:
        event_type = (
            LeaveEventType.leave_approved
            if status == ApprovalStatus.approved
            else LeaveEventType.leave_rejected
        )
        await publish_leave_event(
            db,
            LeaveEvent(
                type=event_type,
                leave_id=leave.id,
                employee_id=leave.employee_id,
                status=leave.overall_status,
                payload={"tier": tier.value},
            ),
            leave,
        )

    # ─────────────────────────────────────────────────────────────────
    # Create
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_leave(
        db: AsyncSession,
        actor: User,
        data: LeaveApplicationCreate,
    ) -> LeaveApplicationOut:
        """Submit a leave application in state (Pending, Pending).

        Order of checks: permission, dates, leave type, overlap, balance.
        Nothing is debited here.
        """
        await PermissionEngine.for_session(db).require(actor.id, "leave.apply")

        employee_id = data.employee_id or actor.id
        if employee_id != actor.id and actor.role != UserRole.admin:
            raise ForbiddenException("Only admins can apply for leave on behalf of another employee.")
        await LeaveService._get_user(db, employee_id)

        days = LeaveService._count_days(data.start_date, data.end_date)
        leave_type = await LeaveService._get_active_leave_type(db, data.leave_type)
        await LeaveService._assert_no_overlap(db, employee_id, data.start_date, data.end_date)
        await LeaveBalanceLedger.ensure_can_request(
            db, employee_id, leave_type.name, days, data.start_date.year,
        )

        leave = LeaveApplication(
            employee_id=employee_id,
            leave_type=leave_type.name,
            start_date=data.start_date,
            end_date=data.end_date,
            number_of_days=days,
            reason=data.reason.strip(),
            hod_status=ApprovalStatus.pending,
            admin_status=ApprovalStatus.pending,
        )

        async def _insert() -> None:
            db.add(leave)
            await db.flush()

        await LeaveService._write_guarding_overlap(
            db,
            _insert,
            employee_id=employee_id,
            start_date=data.start_date,
            end_date=data.end_date,
        )

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_application",
            entity_id=leave.id,
            actor_id=actor.id,
            new_values=LeaveService._snapshot(leave),
        )
        await publish_leave_event(
            db,
            LeaveEvent(
                type=LeaveEventType.leave_created,
                leave_id=leave.id,
                employee_id=employee_id,
                status=leave.overall_status,
            ),
            leave,
        )
        await LeaveService._request_approval(db, leave, ApprovalTier.hod)

        return LeaveApplicationOut.model_validate(leave)

    # ─────────────────────────────────────────────────────────────────
    # Update / delete (only while the HOD decision is pending)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_leave(
        db: AsyncSession,
        actor: User,
        leave_id: uuid.UUID,
        data: LeaveApplicationUpdate,
    ) -> LeaveApplicationOut:
        await PermissionEngine.for_session(db).require(actor.id, "leave.edit")
        leave = await LeaveService._get_leave(db, leave_id)
        LeaveService._assert_owner_or_admin(actor, leave)
        if leave.is_frozen:
            raise InvalidTransitionException(
                "Leave can only be edited while the HOD decision is pending."
            )

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise ValidationException({"body": ["No changes supplied."]})

        leave_type = changes.get("leave_type", leave.leave_type)
        start_date = changes.get("start_date", leave.start_date)
        end_date = changes.get("end_date", leave.end_date)
        days = LeaveService._count_days(start_date, end_date)

        if leave_type != leave.leave_type:
            leave_type = (await LeaveService._get_active_leave_type(db, leave_type)).name
        if (leave_type, start_date, end_date) != (leave.leave_type, leave.start_date, leave.end_date):
            await LeaveService._assert_no_overlap(
                db, leave.employee_id, start_date, end_date, exclude_leave_id=leave.id,
            )
            await LeaveBalanceLedger.ensure_can_request(
                db, leave.employee_id, leave_type, days, start_date.year,
            )

        old_values = LeaveService._snapshot(leave)
        values = {
            "leave_type": leave_type,
            "start_date": start_date,
            "end_date": end_date,
            "number_of_days": days,
            "reason": changes.get("reason", leave.reason).strip(),
            "updated_at": utcnow(),
        }

        async def _update() -> int:
            result = await db.execute(
                update(LeaveApplication)
                .where(
                    LeaveApplication.id == leave_id,
                    LeaveApplication.hod_status == ApprovalStatus.pending,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        updated = await LeaveService._write_guarding_overlap(
            db,
            _update,
            employee_id=leave.employee_id,
            start_date=start_date,
            end_date=end_date,
            exclude_leave_id=leave.id,
        )
        leave = await LeaveService._get_leave(db, leave_id, refresh=True)
        if updated != 1:
            raise InvalidTransitionException(
                "Leave can only be edited while the HOD decision is pending."
            )

        await create_audit_entry(
            db,
            action="update",
            entity_type="leave_application",
            entity_id=leave.id,
            actor_id=actor.id,
            old_values=old_values,
            new_values=LeaveService._snapshot(leave),
        )
        await publish_leave_event(
            db,
            LeaveEvent(
                type=LeaveEventType.leave_updated,
                leave_id=leave.id,
                employee_id=leave.employee_id,
                status=leave.overall_status,
            ),
            leave,
        )
        return LeaveApplicationOut.model_validate(leave)

    @staticmethod
    async def delete_leave(
        db: AsyncSession,
        actor: User,
        leave_id: uuid.UUID,
    ) -> None:
        """Delete a leave still awaiting HOD decision. Never touches balances."""
        await PermissionEngine.for_session(db).require(actor.id, "leave.delete")
        leave = await LeaveService._get_leave(db, leave_id)
        LeaveService._assert_owner_or_admin(actor, leave)

        result = await db.execute(
            delete(LeaveApplication)
            .where(
                LeaveApplication.id == leave_id,
                LeaveApplication.hod_status == ApprovalStatus.pending,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransitionException(
                "Leave can only be deleted while the HOD decision is pending."
            )
        db.expunge(leave)

        await create_audit_entry(
            db,
            action="delete",
            entity_type="leave_application",
            entity_id=leave.id,
            actor_id=actor.id,
            old_values=LeaveService._snapshot(leave),
        )
        await publish_leave_event(
            db,
            LeaveEvent(
                type=LeaveEventType.leave_deleted,
                leave_id=leave.id,
                employee_id=leave.employee_id,
                status=leave.overall_status,
            ),
            leave,
        )

    # ─────────────────────────────────────────────────────────────────
    # HOD decision
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def hod_decision(
        db: AsyncSession,
        actor: User,
        leave_id: uuid.UUID,
        status: ApprovalStatus,
        comment: Optional[str] = None,
    ) -> LeaveApplicationOut:
        """First tier. Needs leave.approve / leave.reject and HOD scope
        (admins skip the scope check)."""
        LeaveService._assert_decision(status)
        permission_key = "leave.approve" if status == ApprovalStatus.approved else "leave.reject"
        await PermissionEngine.for_session(db).require(actor.id, permission_key)

        leave = await LeaveService._get_leave(db, leave_id)
        if actor.role != UserRole.admin and not await LeaveService._in_hod_scope(
            db, actor, leave.employee_id,
        ):
            raise ForbiddenException("You are not the HOD or manager for this employee.")

        now = utcnow()
        result = await db.execute(
            update(LeaveApplication)
            .where(
                LeaveApplication.id == leave_id,
                LeaveApplication.hod_status == ApprovalStatus.pending,
            )
            .values(
                hod_status=status,
                approved_by_hod=actor.id,
                hod_remark=comment,
                hod_decided_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        leave = await LeaveService._get_leave(db, leave_id, refresh=True)
        if result.rowcount != 1:
            raise AlreadyProcessedException(
                "Leave application", leave.hod_status, tier=ApprovalTier.hod.value,
            )

        await create_audit_entry(
            db,
            action="approve" if status == ApprovalStatus.approved else "reject",
            entity_type="leave_application",
            entity_id=leave.id,
            actor_id=actor.id,
            old_values={"hod_status": ApprovalStatus.pending},
            new_values={"hod_status": status, "hod_remark": comment},
        )
        await LeaveService._announce_decision(db, leave, ApprovalTier.hod, status)
        if status == ApprovalStatus.approved and leave.admin_status == ApprovalStatus.pending:
            await LeaveService._request_approval(db, leave, ApprovalTier.admin)

        return LeaveApplicationOut.model_validate(leave)

    # ─────────────────────────────────────────────────────────────────
    # Admin decision
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def admin_decision(
        db: AsyncSession,
        actor: User,
        leave_id: uuid.UUID,
        status: ApprovalStatus,
        comment: Optional[str] = None,
    ) -> LeaveApplicationOut:
        """Second tier.

        Approval needs hod_status = Approved and debits the balance in the
        same savepoint as the status write. Rejection is allowed whenever
        the admin tier is still Pending.
        """
        LeaveService._assert_decision(status)
        await PermissionEngine.for_session(db).require_admin_or_permission(
            actor.id, actor.role, "leave.final_approve",
        )

        leave = await LeaveService._get_leave(db, leave_id)
        if leave.admin_status != ApprovalStatus.pending:
            raise AlreadyProcessedException(
                "Leave application", leave.admin_status, tier=ApprovalTier.admin.value,
            )
        approving = status == ApprovalStatus.approved
        if approving and leave.hod_status == ApprovalStatus.pending:
            raise InvalidTransitionException(
                "HOD decision is still pending; admin approval requires HOD approval first."
            )
        if approving and leave.hod_status == ApprovalStatus.rejected:
            raise InvalidTransitionException(
                "Leave was rejected by the HOD and cannot be approved."
            )

        conditions = [
            LeaveApplication.id == leave_id,
            LeaveApplication.admin_status == ApprovalStatus.pending,
        ]
        if approving:
            conditions.append(LeaveApplication.hod_status == ApprovalStatus.approved)

        now = utcnow()
        async with db.begin_nested():
            result = await db.execute(
                update(LeaveApplication)
                .where(*conditions)
                .values(
                    admin_status=status,
                    approved_by_admin=actor.id,
                    admin_remark=comment,
                    admin_decided_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                current = await LeaveService._get_leave(db, leave_id, refresh=True)
                if current.admin_status != ApprovalStatus.pending:
                    raise AlreadyProcessedException(
                        "Leave application", current.admin_status,
                        tier=ApprovalTier.admin.value,
                    )
                raise InvalidTransitionException(
                    "HOD approval changed while the admin decision was being recorded."
                )
            if approving:
                await LeaveBalanceLedger.debit(
                    db,
                    leave.employee_id,
                    leave.leave_type,
                    leave.number_of_days,
                    leave.start_date.year,
                )

        leave = await LeaveService._get_leave(db, leave_id, refresh=True)
        await create_audit_entry(
            db,
            action="approve" if approving else "reject",
            entity_type="leave_application",
            entity_id=leave.id,
            actor_id=actor.id,
            old_values={"admin_status": ApprovalStatus.pending},
            new_values={
                "admin_status": status,
                "admin_remark": comment,
                "debited_days": leave.number_of_days if approving else 0,
            },
        )
        await LeaveService._announce_decision(db, leave, ApprovalTier.admin, status)

        return LeaveApplicationOut.model_validate(leave)

    # ─────────────────────────────────────────────────────────────────
    # Bulk decisions
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _bulk(
        db: AsyncSession,
        actor: User,
        leave_ids: Sequence[uuid.UUID],
        status: ApprovalStatus,
        comment: Optional[str],
        decide: Decider,
    ) -> BulkDecisionOut:
        """Apply *decide* to each id in its own savepoint; failures are collected.

        A failed id also drops any events it queued before failing.
        """
        succeeded: list[uuid.UUID] = []
        failed: list[BulkFailure] = []
        for leave_id in dict.fromkeys(leave_ids):
            queued = pending_after_commit(db)
            try:
                async with db.begin_nested():
                    await decide(db, actor, leave_id, status, comment)
            except AppException as exc:
                discard_after_commit(db, since=queued)
                failed.append(
                    BulkFailure(id=leave_id, reason=exc.detail, error_type=exc.error_type)
                )
            except SQLAlchemyError:
                discard_after_commit(db, since=queued)
                logger.exception("Bulk decision failed on leave=%s", leave_id)
                storage = StorageException()
                failed.append(
                    BulkFailure(id=leave_id, reason=storage.detail, error_type=storage.error_type)
                )
            else:
                succeeded.append(leave_id)

        return BulkDecisionOut(
            succeeded=succeeded,
            failed=failed,
            total=len(succeeded) + len(failed),
            succeeded_count=len(succeeded),
            failed_count=len(failed),
        )

    @staticmethod
    async def bulk_hod_decision(
        db: AsyncSession,
        actor: User,
        leave_ids: Sequence[uuid.UUID],
        status: ApprovalStatus,
        comment: Optional[str] = None,
    ) -> BulkDecisionOut:
        LeaveService._assert_decision(status)
        permission_key = "leave.approve" if status == ApprovalStatus.approved else "leave.reject"
        await PermissionEngine.for_session(db).require(actor.id, permission_key)
        return await LeaveService._bulk(
            db, actor, leave_ids, status, comment, LeaveService.hod_decision,
        )

    @staticmethod
    async def bulk_admin_decision(
        db: AsyncSession,
        actor: User,
        leave_ids: Sequence[uuid.UUID],
        status: ApprovalStatus,
        comment: Optional[str] = None,
    ) -> BulkDecisionOut:
        LeaveService._assert_decision(status)
        await PermissionEngine.for_session(db).require_admin_or_permission(
            actor.id, actor.role, "leave.final_approve",
        )
        return await LeaveService._bulk(
            db, actor, leave_ids, status, comment, LeaveService.admin_decision,
        )

    # ─────────────────────────────────────────────────────────────────
    # Email approval links
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def decide_via_token(db: AsyncSession, token: str) -> EmailActionOut:
        """Consume a single-use link and run the matching tier transition
        as the approver it was issued to."""
        claims = await ApprovalTokenService.consume(db, token)
        approver = await LeaveService._get_user(db, claims.approver_id)
        status = ACTION_TO_STATUS[claims.action]
        comment = f"{status.value} via email link"

        if claims.tier == ApprovalTier.hod:
            leave = await LeaveService.hod_decision(db, approver, claims.leave_id, status, comment)
        else:
            leave = await LeaveService.admin_decision(db, approver, claims.leave_id, status, comment)

        logger.info(
            "Leave %s %s at %s tier via email link by %s",
            claims.leave_id, status.value, claims.tier.value, approver.id,
        )
        return EmailActionOut(
            message=f"Leave {status.value.lower()} at {claims.tier.value.upper()} level.",
            leave=leave,
        )

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave(
        db: AsyncSession,
        actor: User,
        leave_id: uuid.UUID,
    ) -> LeaveApplicationOut:
        leave = await LeaveService._get_leave(db, leave_id)
        if leave.employee_id != actor.id and actor.role != UserRole.admin:
            engine = PermissionEngine.for_session(db)
            if not (
                await LeaveService._in_hod_scope(db, actor, leave.employee_id)
                or await engine.check(actor.id, "leave.view.all")
            ):
                raise PermissionDeniedException("leave.view.all")
        return LeaveApplicationOut.model_validate(leave)

    @staticmethod
    async def list_my_leaves(
        db: AsyncSession,
        actor: User,
        pagination: PaginationParams,
        *,
        hod_status: Optional[ApprovalStatus] = None,
        admin_status: Optional[ApprovalStatus] = None,
    ) -> PaginatedResponse:
        await PermissionEngine.for_session(db).require(actor.id, "leave.view.own")
        query = (
            select(LeaveApplication)
            .where(LeaveApplication.employee_id == actor.id)
            .order_by(LeaveApplication.start_date.desc())
        )
        if hod_status is not None:
            query = query.where(LeaveApplication.hod_status == hod_status)
        if admin_status is not None:
            query = query.where(LeaveApplication.admin_status == admin_status)
        return await paginate(
            db, query, pagination,
            model=LeaveApplication, transform=LeaveApplicationOut.model_validate,
        )

    @staticmethod
    async def hod_worklist(
        db: AsyncSession,
        actor: User,
        pagination: PaginationParams,
        *,
        hod_status: Optional[ApprovalStatus] = ApprovalStatus.pending,
    ) -> PaginatedResponse:
        """Leaves in the actor's HOD scope, filtered on the HOD tier."""
        engine = PermissionEngine.for_session(db)
        if not await engine.check_any(actor.id, ["leave.approve", "leave.reject"]):
            raise PermissionDeniedException("leave.approve")

        query = (
            select(LeaveApplication)
            .join(User, User.id == LeaveApplication.employee_id)
            .order_by(LeaveApplication.start_date)
        )
        if actor.role != UserRole.admin:
            scope = [User.manager_id == actor.id]
            if actor.role == UserRole.hod and actor.department:
                scope.append(User.department == actor.department)
            query = query.where(or_(*scope), LeaveApplication.employee_id != actor.id)
        if hod_status is not None:
            query = query.where(LeaveApplication.hod_status == hod_status)
        return await paginate(
            db, query, pagination,
            model=LeaveApplication, transform=LeaveApplicationOut.model_validate,
        )

    @staticmethod
    async def admin_worklist(
        db: AsyncSession,
        actor: User,
        pagination: PaginationParams,
        *,
        admin_status: Optional[ApprovalStatus] = ApprovalStatus.pending,
        hod_status: Optional[ApprovalStatus] = None,
    ) -> PaginatedResponse:
        await PermissionEngine.for_session(db).require_admin_or_permission(
            actor.id, actor.role, "leave.final_approve",
        )
        query = select(LeaveApplication).order_by(LeaveApplication.start_date)
        if admin_status is not None:
            query = query.where(LeaveApplication.admin_status == admin_status)
        if hod_status is not None:
            query = query.where(LeaveApplication.hod_status == hod_status)
        return await paginate(
            db, query, pagination,
            model=LeaveApplication, transform=LeaveApplicationOut.model_validate,
        )

    @staticmethod
    async def check_overlap(
        db: AsyncSession,
        actor: User,
        start_date: date,
        end_date: date,
        exclude_leave_id: Optional[uuid.UUID] = None,
    ) -> OverlapCheckOut:
        LeaveService._count_days(start_date, end_date)
        conflict = await OverlapChecker.find_overlap(
            db, actor.id, start_date, end_date, exclude_leave_id,
        )
        if conflict is None:
            return OverlapCheckOut(has_overlap=False)
        return OverlapCheckOut(
            has_overlap=True, conflict=OverlapChecker.describe_conflict(conflict),
        )

    # ─────────────────────────────────────────────────────────────────
    # Balances
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_balances(
        db: AsyncSession,
        actor: User,
        *,
        employee_id: Optional[uuid.UUID] = None,
        year: Optional[int] = None,
    ) -> list[BalanceSnapshot]:
        target = employee_id or actor.id
        if target != actor.id:
            await PermissionEngine.for_session(db).require_admin_or_permission(
                actor.id, actor.role, "leave.view.all",
            )
        return await LeaveBalanceLedger.list_balances(db, target, year)

    @staticmethod
    async def credit_balance(
        db: AsyncSession,
        actor: User,
        employee_id: uuid.UUID,
        data: BalanceCreditRequest,
    ) -> BalanceSnapshot:
        """Explicit HR correction; approvals and rejections never credit."""
        await PermissionEngine.for_session(db).require_admin_or_permission(
            actor.id, actor.role, "leave.balance.adjust",
        )
        snapshot = await LeaveBalanceLedger.credit(
            db, employee_id, data.leave_type, data.days, data.year,
        )
        await create_audit_entry(
            db,
            action="credit",
            entity_type="leave_balance",
            entity_id=employee_id,
            actor_id=actor.id,
            new_values={
                "leave_type": data.leave_type,
                "year": snapshot.year,
                "days": data.days,
                "reason": data.reason,
            },
        )
        return snapshot
