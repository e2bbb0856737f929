"""Common module — shared utilities for the leave engine."""

from leave_engine.common.audit import AuditTrail, create_audit_entry
from leave_engine.common.constants import (
    ACTIVE_STATUSES,
    ADMIN_ROLES,
    ANNUAL_SCOPE,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    TERMINAL_STATUSES,
    HalfDayPeriod,
    LeaveCategory,
    LeaveStatus,
    LeaveType,
    SemiAnnualPeriod,
    UserRole,
    ViolationCode,
)
from leave_engine.common.exceptions import (
    AppException,
    ForbiddenException,
    InsufficientBalance,
    InvalidTransition,
    NotFoundException,
    SubmissionRejected,
    ValidationException,
    register_exception_handlers,
)
from leave_engine.common.locks import KeyedLocks
from leave_engine.common.pagination import (
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
    "HalfDayPeriod",
    "LeaveCategory",
    "LeaveStatus",
    "LeaveType",
    "SemiAnnualPeriod",
    "UserRole",
    "ViolationCode",
    "ACTIVE_STATUSES",
    "ADMIN_ROLES",
    "ANNUAL_SCOPE",
    "TERMINAL_STATUSES",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ForbiddenException",
    "InsufficientBalance",
    "InvalidTransition",
    "NotFoundException",
    "SubmissionRejected",
    "ValidationException",
    "register_exception_handlers",
    # Locks
    "KeyedLocks",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
