"""Enums and constants for the leave portal — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    hod = "hod"
    admin = "admin"


# ── Leave approvals ─────────────────────────────────────────────────

class ApprovalStatus(str, enum.Enum):
    """Per-tier status. Values are capitalised to match the stored data."""

    pending = "Pending"
    approved = "Approved"
    rejected = "Rejected"


class ApprovalTier(str, enum.Enum):
    hod = "hod"
    admin = "admin"


class ApprovalAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"


ACTION_TO_STATUS: dict[ApprovalAction, ApprovalStatus] = {
    ApprovalAction.approve: ApprovalStatus.approved,
    ApprovalAction.reject: ApprovalStatus.rejected,
}


# ── Authorization requests ──────────────────────────────────────────

class AuthorizationStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class AuthorizationPriority(str, enum.Enum):
    low = "low"
    normal = "normal"
    high = "high"
    urgent = "urgent"


# ── Notifications / events ──────────────────────────────────────────

class NotificationType(str, enum.Enum):
    info = "info"
    action_required = "action_required"
    approval = "approval"
    alert = "alert"


class LeaveEventType(str, enum.Enum):
    leave_created = "leave_created"
    leave_updated = "leave_updated"
    leave_deleted = "leave_deleted"
    leave_approved = "leave_approved"
    leave_rejected = "leave_rejected"
    approval_requested = "approval_requested"


# ── Permission bypass rules ─────────────────────────────────────────

class BypassPolicy(str, enum.Enum):
    no_bypass = "no_bypass"
    admin_bypass = "admin_bypass"


# Keys not listed here fall back to DEFAULT_BYPASS_POLICY.
# dashboard.view needs an explicit grant even for admins.
BYPASS_POLICIES: dict[str, BypassPolicy] = {
    "dashboard.view": BypassPolicy.no_bypass,
}
DEFAULT_BYPASS_POLICY = BypassPolicy.admin_bypass

# Categories that can never be granted to the employee role
EMPLOYEE_RESTRICTED_CATEGORIES: frozenset[str] = frozenset(
    {"department", "employee", "permissions", "permission", "leavetype", "leave_type"}
)

# (key, name, description), seeded by PermissionService.initialize_required_permissions
REQUIRED_PERMISSIONS: list[tuple[str, str, str]] = [
    ("dashboard.view", "View Dashboard", "Access the dashboard overview"),
    ("leave.apply", "Apply Leave", "Submit leave applications"),
    ("leave.view.own", "View Own Leaves", "See own leave applications"),
    ("leave.view.all", "View All Leaves", "See every leave application"),
    ("leave.edit", "Edit Leave", "Edit a pending leave application"),
    ("leave.delete", "Delete Leave", "Delete a pending leave application"),
    ("leave.approve", "Approve Leave", "Approve leave applications (HOD tier)"),
    ("leave.reject", "Reject Leave", "Reject leave applications (HOD tier)"),
    ("leave.final_approve", "Final Leave Decision", "Approve or reject leave at the admin tier"),
    ("leave.balance.adjust", "Adjust Leave Balance", "Credit days back to a leave balance"),
    ("employee.view", "View Employees", "See employee records"),
    ("employee.create", "Create Employee", "Create employee records"),
    ("employee.edit", "Edit Employee", "Edit employee records"),
    ("employee.delete", "Delete Employee", "Delete employee records"),
    ("department.view", "View Departments", "See departments"),
    ("department.create", "Create Department", "Create departments"),
    ("department.edit", "Edit Department", "Edit departments"),
    ("department.delete", "Delete Department", "Delete departments"),
    ("leavetype.view", "View Leave Types", "See leave types"),
    ("leavetype.create", "Create Leave Type", "Create leave types"),
    ("leavetype.edit", "Edit Leave Type", "Edit leave types"),
    ("leavetype.delete", "Delete Leave Type", "Delete leave types"),
    ("authorization.apply", "Request Authorization", "Submit authorization requests"),
    ("authorization.view_all", "View All Authorizations", "See every authorization request"),
    ("authorization.approve", "Decide Authorization", "Approve or reject authorization requests"),
    ("permission.view", "View Permissions", "See permission grants"),
    ("permission.assign", "Assign Permissions", "Grant permissions to users"),
    ("permission.revoke", "Revoke Permissions", "Revoke permissions from users"),
]


def permission_category(permission_key: str) -> str:
    """Category is the key prefix: ``leave.view.own`` → ``leave``."""
    return permission_key.split(".", 1)[0]


# ── Misc constants ──────────────────────────────────────────────────

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
