"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

BASE_ERROR_URI = "https://leave-portal.local/errors"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON.

    ``extensions`` are extra top-level members of the problem body
    (e.g. ``required_permission`` or ``remaining``).
    """

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
        extensions: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        self.extensions = extensions or {}
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ForbiddenException(AppException):
    """403 — actor is outside the scope of the resource."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class PermissionDeniedException(AppException):
    """403 — PermissionEngine said no. Always carries the required key."""

    def __init__(self, permission_key: str, detail: Optional[str] = None) -> None:
        self.permission_key = permission_key
        super().__init__(
            status_code=403,
            error_type="permission-denied",
            title="Permission Denied",
            detail=detail or f"Permission '{permission_key}' is required.",
            extensions={"required_permission": permission_key},
        )


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            status_code=422,
            error_type="validation-error",
            title="Validation Error",
            detail="One or more fields failed validation.",
            errors=errors,
        )


class OverlapConflictException(AppException):
    """409 — requested dates collide with an existing leave."""

    def __init__(self, conflict: dict[str, Any]) -> None:
        self.conflict = conflict
        super().__init__(
            status_code=409,
            error_type="overlap-conflict",
            title="Overlapping Leave",
            detail=(
                f"You already have a {conflict.get('leave_type')} leave from "
                f"{conflict.get('start_date')} to {conflict.get('end_date')} "
                f"that is {conflict.get('state')}."
            ),
            extensions={"conflict": conflict},
        )


class InsufficientBalanceException(AppException):
    """422 — not enough leave balance for the requested days.

    ``has_record=False`` means the employee has no usable balance record at
    all for the leave type, which HR has to fix; otherwise the balance is
    exhausted or simply too small.
    """

    def __init__(
        self,
        remaining: Any,
        requested: Any,
        *,
        leave_type: Optional[str] = None,
        has_record: bool = True,
    ) -> None:
        self.remaining = remaining
        self.requested = requested
        self.has_record = has_record
        label = f"{leave_type} " if leave_type else ""
        if not has_record:
            detail = (
                f"No {label}leave balance is set up for you. "
                "Please contact HR."
            )
        elif remaining <= 0:
            detail = (
                f"You have exhausted your {label}leave balance. "
                f"Available: {remaining}, Requested: {requested}."
            )
        else:
            detail = (
                f"Insufficient {label}leave balance. "
                f"Available: {remaining}, Requested: {requested}."
            )
        super().__init__(
            status_code=422,
            error_type="insufficient-balance",
            title="Insufficient Balance",
            detail=detail,
            extensions={
                "remaining": float(remaining),
                "requested": float(requested),
                "has_record": has_record,
            },
        )


class AlreadyProcessedException(AppException):
    """409 — the tier (or request) has already left Pending."""

    def __init__(self, entity: str, current_status: Any, tier: Optional[str] = None) -> None:
        self.current_status = current_status
        self.tier = tier
        status = getattr(current_status, "value", current_status)
        scope = f"{tier.upper()} decision" if tier else entity
        super().__init__(
            status_code=409,
            error_type="already-processed",
            title="Already Processed",
            detail=f"{scope} has already been made ({status}).",
            extensions={"tier": tier, "current_status": status},
        )


class AlreadyUsedException(AppException):
    """409 — a single-use approval token was presented again."""

    def __init__(self) -> None:
        super().__init__(
            status_code=409,
            error_type="already-used",
            title="Already Used",
            detail="This approval link has already been used.",
        )


class InvalidTransitionException(AppException):
    """409 — state change not allowed by the two-tier ordering rule."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=409,
            error_type="invalid-transition",
            title="Invalid Transition",
            detail=detail,
        )


class StorageException(AppException):
    """500 — persistence failure. Never exposes internal detail."""

    def __init__(self) -> None:
        super().__init__(
            status_code=500,
            error_type="storage-error",
            title="Storage Error",
            detail="The request could not be completed. Please try again later.",
        )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
    }
    if exc.errors:
        body["errors"] = exc.errors
    for key, value in exc.extensions.items():
        body.setdefault(key, value)
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{BASE_ERROR_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


async def _handle_storage_error(
    request: Request,
    exc: SQLAlchemyError,
) -> JSONResponse:
    logger.exception("Storage error on %s %s", request.method, request.url.path)
    return await _handle_app_exception(request, StorageException())


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _handle_storage_error)       # type: ignore[arg-type]
