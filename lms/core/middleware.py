"""Per-request log context: request id, trace id and tenant."""

import time
from collections.abc import Awaitable, Callable
from uuid import UUID

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from lms.core.context import (
    clear_context,
    set_organization_id,
    set_request_id,
    set_trace_id,
)


logger = structlog.get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request id, trace id and organization id for the request's logs.

    The organization header is only bound when it parses as a UUID. Rejecting
    a missing or malformed header is left to ``lms.tenancy.dependencies`` so
    that health routes stay reachable without one.
    """

    REQUEST_ID_HEADER = "X-Request-ID"
    TRACE_ID_HEADER = "X-Trace-ID"
    TRACEPARENT_HEADER = "traceparent"

    def __init__(
        self,
        app: ASGIApp,
        tenant_header: str = "X-Org-ID",
        log_requests: bool = True,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.tenant_header = tenant_header
        self.log_requests = log_requests
        self.exclude_paths = tuple(exclude_paths or ["/health"])

    def _bind(self, request: Request) -> str:
        headers = request.headers
        request_id = set_request_id(headers.get(self.REQUEST_ID_HEADER))
        request.state.request_id = request_id

        trace_id = headers.get(self.TRACE_ID_HEADER) or self._extract_traceparent(
            headers.get(self.TRACEPARENT_HEADER)
        )
        if trace_id:
            set_trace_id(trace_id)

        organization_id = self._parse_uuid(headers.get(self.tenant_header))
        if organization_id:
            set_organization_id(organization_id)
        return request_id

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        started = time.perf_counter()
        request_id = self._bind(request)
        path = request.url.path
        quiet = not self.log_requests or path.startswith(self.exclude_paths)

        if not quiet:
            logger.info(
                "request_started",
                method=request.method,
                path=path,
                query=str(request.query_params) or None,
            )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "request_failed",
                method=request.method,
                path=path,
                error_type=type(e).__name__,
                duration_ms=self._elapsed_ms(started),
            )
            raise
        else:
            if not quiet:
                emit = logger.warning if response.status_code >= 400 else logger.info
                emit(
                    "request_completed",
                    method=request.method,
                    path=path,
                    status_code=response.status_code,
                    duration_ms=self._elapsed_ms(started),
                )
            response.headers[self.REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_context()

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 2)

    @staticmethod
    def _parse_uuid(raw: str | None) -> UUID | None:
        if not raw:
            return None
        try:
            return UUID(raw)
        except ValueError:
            return None

    @staticmethod
    def _extract_traceparent(traceparent: str | None) -> str | None:
        """Trace id from a W3C ``{version}-{trace-id}-{parent-id}-{flags}`` header."""
        if not traceparent:
            return None
        parts = traceparent.split("-")
        return parts[1] if len(parts) >= 2 else None


__all__ = ["RequestContextMiddleware"]
