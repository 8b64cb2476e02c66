"""Authorization request service — apply, edit while pending, decide once."""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leave_portal.authorizations.models import AuthorizationRequest
from leave_portal.authorizations.schemas import (
    AuthorizationCreate,
    AuthorizationDecision,
    AuthorizationOut,
    AuthorizationStats,
    AuthorizationUpdate,
)
from leave_portal.common.audit import create_audit_entry
from leave_portal.common.constants import AuthorizationStatus, UserRole
from leave_portal.common.exceptions import (
    AlreadyProcessedException,
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    PermissionDeniedException,
    ValidationException,
)
from leave_portal.common.pagination import PaginatedResponse, PaginationParams, paginate
from leave_portal.database import utcnow
from leave_portal.permissions.service import PermissionEngine
from leave_portal.users.models import User

logger = logging.getLogger(__name__)


def _snapshot(request: AuthorizationRequest) -> dict:
    return {
        "authorization_type": request.authorization_type,
        "title": request.title,
        "reason": request.reason,
        "priority": request.priority,
        "status": request.status,
    }


class AuthorizationService:
    """Async authorization-request operations."""

    @staticmethod
    async def _get(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        refresh: bool = False,
    ) -> AuthorizationRequest:
        query = select(AuthorizationRequest).where(AuthorizationRequest.id == request_id)
        if refresh:
            query = query.execution_options(populate_existing=True)
        request = (await db.execute(query)).scalars().first()
        if request is None:
            raise NotFoundException("AuthorizationRequest", request_id)
        return request

    @staticmethod
    def _assert_owner_or_admin(actor: User, request: AuthorizationRequest) -> None:
        if request.employee_id != actor.id and actor.role != UserRole.admin:
            raise ForbiddenException("You can only change your own authorization requests.")

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    async def create_request(
        db: AsyncSession,
        actor: User,
        data: AuthorizationCreate,
    ) -> AuthorizationOut:
        await PermissionEngine.for_session(db).require(actor.id, "authorization.apply")

        request = AuthorizationRequest(
            employee_id=actor.id,
            authorization_type=data.authorization_type.strip(),
            title=data.title.strip(),
            description=data.description,
            requested_access=data.requested_access,
            reason=data.reason.strip(),
            priority=data.priority,
            expiry_date=data.expiry_date,
            status=AuthorizationStatus.pending,
        )
        db.add(request)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="authorization_request",
            entity_id=request.id,
            actor_id=actor.id,
            new_values=_snapshot(request),
        )
        logger.info("Authorization request %s created by %s", request.id, actor.id)
        return AuthorizationOut.model_validate(request)

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def list_own(
        db: AsyncSession,
        actor: User,
        pagination: PaginationParams,
        *,
        status: Optional[AuthorizationStatus] = None,
    ) -> PaginatedResponse:
        query = (
            select(AuthorizationRequest)
            .where(AuthorizationRequest.employee_id == actor.id)
            .order_by(AuthorizationRequest.requested_date.desc())
        )
        if status is not None:
            query = query.where(AuthorizationRequest.status == status)
        return await paginate(
            db, query, pagination,
            model=AuthorizationRequest, transform=AuthorizationOut.model_validate,
        )

    @staticmethod
    async def list_all(
        db: AsyncSession,
        actor: User,
        pagination: PaginationParams,
        *,
        status: Optional[AuthorizationStatus] = None,
        authorization_type: Optional[str] = None,
        employee_id: Optional[uuid.UUID] = None,
    ) -> PaginatedResponse:
        await PermissionEngine.for_session(db).require(actor.id, "authorization.view_all")

        query = select(AuthorizationRequest).order_by(
            AuthorizationRequest.requested_date.desc()
        )
        if status is not None:
            query = query.where(AuthorizationRequest.status == status)
        if authorization_type:
            query = query.where(AuthorizationRequest.authorization_type == authorization_type)
        if employee_id is not None:
            query = query.where(AuthorizationRequest.employee_id == employee_id)
        return await paginate(
            db, query, pagination,
            model=AuthorizationRequest, transform=AuthorizationOut.model_validate,
        )

    @staticmethod
    async def get_request(
        db: AsyncSession,
        actor: User,
        request_id: uuid.UUID,
    ) -> AuthorizationOut:
        request = await AuthorizationService._get(db, request_id)
        if request.employee_id != actor.id:
            engine = PermissionEngine.for_session(db)
            if not await engine.check_any(
                actor.id, ["authorization.view_all", "authorization.approve"],
            ):
                raise PermissionDeniedException("authorization.view_all")
        return AuthorizationOut.model_validate(request)

    @staticmethod
    async def stats(db: AsyncSession, actor: User) -> AuthorizationStats:
        """Counts per status for the caller's own requests."""
        result = await db.execute(
            select(AuthorizationRequest.status, func.count())
            .where(AuthorizationRequest.employee_id == actor.id)
            .group_by(AuthorizationRequest.status)
        )
        counts = {status: count for status, count in result.all()}
        return AuthorizationStats(
            pending_count=counts.get(AuthorizationStatus.pending, 0),
            approved_count=counts.get(AuthorizationStatus.approved, 0),
            rejected_count=counts.get(AuthorizationStatus.rejected, 0),
            total_count=sum(counts.values()),
        )

    # ── Update / delete (pending only) ──────────────────────────────

    @staticmethod
    async def update_request(
        db: AsyncSession,
        actor: User,
        request_id: uuid.UUID,
        data: AuthorizationUpdate,
    ) -> AuthorizationOut:
        request = await AuthorizationService._get(db, request_id)
        AuthorizationService._assert_owner_or_admin(actor, request)

        changes = data.model_dump(exclude_unset=True)
        for required in ("title", "reason", "priority"):
            if required in changes and changes[required] is None:
                changes.pop(required)
        if not changes:
            raise ValidationException({"body": ["No fields to update."]})

        old_values = _snapshot(request)
        result = await db.execute(
            update(AuthorizationRequest)
            .where(
                AuthorizationRequest.id == request_id,
                AuthorizationRequest.status == AuthorizationStatus.pending,
            )
            .values(**changes, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        request = await AuthorizationService._get(db, request_id, refresh=True)
        if result.rowcount != 1:
            raise InvalidTransitionException(
                "Cannot update an authorization request that is not pending."
            )

        await create_audit_entry(
            db,
            action="update",
            entity_type="authorization_request",
            entity_id=request.id,
            actor_id=actor.id,
            old_values=old_values,
            new_values=_snapshot(request),
        )
        return AuthorizationOut.model_validate(request)

    @staticmethod
    async def delete_request(
        db: AsyncSession,
        actor: User,
        request_id: uuid.UUID,
    ) -> None:
        request = await AuthorizationService._get(db, request_id)
        AuthorizationService._assert_owner_or_admin(actor, request)

        result = await db.execute(
            delete(AuthorizationRequest)
            .where(
                AuthorizationRequest.id == request_id,
                AuthorizationRequest.status == AuthorizationStatus.pending,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransitionException(
                "Cannot delete an authorization request that is not pending."
            )
        db.expunge(request)

        await create_audit_entry(
            db,
            action="delete",
            entity_type="authorization_request",
            entity_id=request.id,
            actor_id=actor.id,
            old_values=_snapshot(request),
        )

    # ── Decide ──────────────────────────────────────────────────────

    @staticmethod
    async def decide(
        db: AsyncSession,
        actor: User,
        request_id: uuid.UUID,
        data: AuthorizationDecision,
    ) -> AuthorizationOut:
        """Single-stage decision; a second decision gets AlreadyProcessed."""
        if data.status == AuthorizationStatus.pending:
            raise ValidationException(
                {"status": ["Invalid status. Must be 'approved' or 'rejected'."]}
            )
        await PermissionEngine.for_session(db).require(actor.id, "authorization.approve")
        await AuthorizationService._get(db, request_id)

        now = utcnow()
        result = await db.execute(
            update(AuthorizationRequest)
            .where(
                AuthorizationRequest.id == request_id,
                AuthorizationRequest.status == AuthorizationStatus.pending,
            )
            .values(
                status=data.status,
                approved_by=actor.id,
                approval_comment=data.approval_comment,
                approved_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        request = await AuthorizationService._get(db, request_id, refresh=True)
        if result.rowcount != 1:
            raise AlreadyProcessedException("Authorization request", request.status)

        await create_audit_entry(
            db,
            action="approve" if data.status == AuthorizationStatus.approved else "reject",
            entity_type="authorization_request",
            entity_id=request.id,
            actor_id=actor.id,
            old_values={"status": AuthorizationStatus.pending},
            new_values={"status": data.status, "approval_comment": data.approval_comment},
        )
        logger.info(
            "Authorization request %s %s by %s", request.id, data.status.value, actor.id,
        )
        return AuthorizationOut.model_validate(request)
