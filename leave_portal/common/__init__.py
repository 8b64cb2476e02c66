"""Common module — shared utilities for the leave portal."""

from leave_portal.common.audit import AuditTrail, create_audit_entry
from leave_portal.common.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    REQUIRED_PERMISSIONS,
    ApprovalAction,
    ApprovalStatus,
    ApprovalTier,
    AuthorizationPriority,
    AuthorizationStatus,
    BypassPolicy,
    LeaveEventType,
    NotificationType,
    UserRole,
)
from leave_portal.common.exceptions import (
    AlreadyProcessedException,
    AlreadyUsedException,
    AppException,
    ForbiddenException,
    InsufficientBalanceException,
    InvalidTransitionException,
    NotFoundException,
    OverlapConflictException,
    PermissionDeniedException,
    StorageException,
    ValidationException,
    register_exception_handlers,
)
from leave_portal.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "ApprovalAction",
    "ApprovalStatus",
    "ApprovalTier",
    "AuthorizationPriority",
    "AuthorizationStatus",
    "BypassPolicy",
    "LeaveEventType",
    "NotificationType",
    "UserRole",
    "REQUIRED_PERMISSIONS",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AlreadyProcessedException",
    "AlreadyUsedException",
    "AppException",
    "ForbiddenException",
    "InsufficientBalanceException",
    "InvalidTransitionException",
    "NotFoundException",
    "OverlapConflictException",
    "PermissionDeniedException",
    "StorageException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
