"""Request context management using contextvars.

Every request carries a request id, the tenant (organization) it acts for and,
when known, the learner or operator driving it. Values set here are injected
into every log line by ``lms.core.logging``.
"""

from contextvars import ContextVar, Token
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
organization_id_var: ContextVar[str | None] = ContextVar(
    "organization_id", default=None
)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)

_CONTEXT_VARS: dict[str, ContextVar[Any]] = {
    "request_id": request_id_var,
    "organization_id": organization_id_var,
    "user_id": user_id_var,
    "trace_id": trace_id_var,
}


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, generates a new one.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_organization_id() -> str | None:
    """Get the organization the current request acts for."""
    return organization_id_var.get()


def set_organization_id(organization_id: str | UUID | None) -> None:
    """Bind the tenant to the current context."""
    organization_id_var.set(str(organization_id) if organization_id else None)


def get_user_id() -> str | None:
    """Get the current user ID."""
    return user_id_var.get()


def set_user_id(user_id: str | UUID | None) -> None:
    """Set the user ID for the current context."""
    user_id_var.set(str(user_id) if user_id else None)


def set_trace_id(trace_id: str | None) -> None:
    """Set the distributed tracing ID for the current context."""
    trace_id_var.set(trace_id)


def get_context() -> dict[str, Any]:
    """Get all non-empty context variables as a dictionary."""
    return {name: var.get() for name, var in _CONTEXT_VARS.items() if var.get()}


def clear_context() -> None:
    """Clear all context variables.

    Called at the end of each request to prevent context leakage.
    """
    request_id_var.set("")
    organization_id_var.set(None)
    user_id_var.set(None)
    trace_id_var.set(None)


class RequestContext:
    """Context manager binding request-scoped values.

    Usage:
        with RequestContext(organization_id=org_id):
            logger.info("enrollment_created")  # carries request_id, organization_id
    """

    def __init__(
        self,
        request_id: str | None = None,
        organization_id: str | UUID | None = None,
        user_id: str | UUID | None = None,
    ) -> None:
        self.values: dict[str, str] = {
            "request_id": request_id or generate_request_id()
        }
        if organization_id is not None:
            self.values["organization_id"] = str(organization_id)
        if user_id is not None:
            self.values["user_id"] = str(user_id)
        self._tokens: dict[str, Token[Any]] = {}

    def __enter__(self) -> "RequestContext":
        for name, value in self.values.items():
            self._tokens[name] = _CONTEXT_VARS[name].set(value)
        return self

    def __exit__(self, *_: object) -> None:
        for name, token in self._tokens.items():
            _CONTEXT_VARS[name].reset(token)
        self._tokens.clear()
