# Core infrastructure
from lms.core.clock import ensure_utc_aware, utc_now
from lms.core.context import (
    RequestContext,
    clear_context,
    get_context,
    get_organization_id,
    get_request_id,
    get_user_id,
    set_organization_id,
    set_request_id,
    set_trace_id,
    set_user_id,
)
from lms.core.errors import (
    AlreadyEnrolledError,
    BlockedError,
    DomainError,
    InvalidInputError,
    NotFoundError,
    SlugTakenError,
)
from lms.core.logging import configure_structlog, get_logger
from lms.core.middleware import RequestContextMiddleware


__all__ = [
    "AlreadyEnrolledError",
    "BlockedError",
    "DomainError",
    "InvalidInputError",
    "NotFoundError",
    "RequestContext",
    "RequestContextMiddleware",
    "SlugTakenError",
    "clear_context",
    "configure_structlog",
    "ensure_utc_aware",
    "get_context",
    "get_logger",
    "get_organization_id",
    "get_request_id",
    "get_user_id",
    "set_organization_id",
    "set_request_id",
    "set_trace_id",
    "set_user_id",
    "utc_now",
]
