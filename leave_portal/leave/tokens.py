"""Single-use approval tokens for the email approve/reject links."""

from __future__ import annotations

import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leave_portal.common.constants import ApprovalAction, ApprovalTier
from leave_portal.common.exceptions import (
    AlreadyUsedException,
    NotFoundException,
    ValidationException,
)
from leave_portal.config import settings
from leave_portal.database import utcnow
from leave_portal.leave.models import ApprovalToken


@dataclass(frozen=True)
class ApprovalClaims:
    token_id: uuid.UUID
    leave_id: uuid.UUID
    approver_id: uuid.UUID
    tier: ApprovalTier
    action: ApprovalAction


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def email_action_url(token: str) -> str:
    return f"{settings.FRONTEND_URL}/api/v1/leave/email-action?{urlencode({'token': token})}"


class ApprovalTokenService:
    """Issue and consume approval tokens. Secrets are never stored."""

    @staticmethod
    async def issue(
        db: AsyncSession,
        *,
        leave_id: uuid.UUID,
        approver_id: uuid.UUID,
        tier: ApprovalTier,
        action: ApprovalAction,
        expires_in: Optional[timedelta] = None,
    ) -> str:
        secret = secrets.token_hex(32)
        db.add(
            ApprovalToken(
                token_hash=hash_token(secret),
                leave_id=leave_id,
                approver_id=approver_id,
                tier=tier,
                action=action,
                used=False,
                expires_at=utcnow() + (
                    expires_in or timedelta(days=settings.APPROVAL_TOKEN_EXPIRY_DAYS)
                ),
            )
        )
        await db.flush()
        return secret

    @staticmethod
    async def issue_for_approver(
        db: AsyncSession,
        *,
        leave_id: uuid.UUID,
        approver_id: uuid.UUID,
        tier: ApprovalTier,
    ) -> dict[str, str]:
        """One approve link and one reject link for *approver_id*."""
        links: dict[str, str] = {}
        for action in ApprovalAction:
            secret = await ApprovalTokenService.issue(
                db,
                leave_id=leave_id,
                approver_id=approver_id,
                tier=tier,
                action=action,
            )
            links[action.value] = email_action_url(secret)
        return links

    @staticmethod
    async def consume(db: AsyncSession, token: str) -> ApprovalClaims:
        """Mark the token used and return what it authorises.

        Consuming one link also retires the sibling links for the same
        leave and tier.
        """
        if not token:
            raise ValidationException({"token": ["Token is required."]})

        result = await db.execute(
            select(ApprovalToken).where(ApprovalToken.token_hash == hash_token(token))
        )
        row = result.scalars().first()
        if row is None:
            raise NotFoundException("ApprovalToken", "provided")
        if row.used:
            raise AlreadyUsedException()

        now = utcnow()
        claimed = await db.execute(
            update(ApprovalToken)
            .where(
                ApprovalToken.id == row.id,
                ApprovalToken.used.is_(False),
                ApprovalToken.expires_at > now,
            )
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            expired = (
                await db.execute(
                    select(func.count())
                    .select_from(ApprovalToken)
                    .where(ApprovalToken.id == row.id, ApprovalToken.expires_at <= now)
                )
            ).scalar_one()
            if expired:
                raise ValidationException({"token": ["This approval link has expired."]})
            raise AlreadyUsedException()

        await db.execute(
            update(ApprovalToken)
            .where(
                ApprovalToken.leave_id == row.leave_id,
                ApprovalToken.tier == row.tier,
                ApprovalToken.used.is_(False),
            )
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )

        return ApprovalClaims(
            token_id=row.id,
            leave_id=row.leave_id,
            approver_id=row.approver_id,
            tier=row.tier,
            action=row.action,
        )
