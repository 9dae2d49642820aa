"""Common module — error kinds, enums and the query-shaping facility."""

from leavedesk.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    DECISION_STATUSES,
    DEFAULT_LEAVE_TYPES,
    LeaveStatus,
    SortOrder,
    UserRole,
)
from leavedesk.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from leavedesk.common.filters import (
    FilterField,
    FilterOp,
    build_conditions,
    build_filter_conditions,
    build_search_condition,
    resolve_sorting,
)
from leavedesk.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    QueryShape,
    paginate,
    pagination_params,
    shape_query,
)

__all__ = [
    # Constants / Enums
    "ACTIVE_LEAVE_STATUSES",
    "DECISION_STATUSES",
    "DEFAULT_LEAVE_TYPES",
    "LeaveStatus",
    "SortOrder",
    "UserRole",
    # Exceptions
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "InvalidStateException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Filters
    "FilterField",
    "FilterOp",
    "build_conditions",
    "build_filter_conditions",
    "build_search_condition",
    "resolve_sorting",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "QueryShape",
    "paginate",
    "pagination_params",
    "shape_query",
]
