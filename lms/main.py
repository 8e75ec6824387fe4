"""LMS Enrollment & Progress Engine - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lms.config import get_settings
from lms.core.context import get_request_id
from lms.core.database import init_async_cassandra, shutdown_async_cassandra
from lms.core.errors import ContentionError
from lms.core.logging import configure_structlog, get_logger
from lms.core.middleware import RequestContextMiddleware
from lms.courses.repository import CourseRepository
from lms.courses.router import router_courses, router_modules
from lms.courses.service import CourseService
from lms.enrollments.admission import GroupAdmissionController
from lms.enrollments.repository import EnrollmentRepository
from lms.enrollments.router import router_admin, router_enrollments, router_groups
from lms.enrollments.service import EnrollmentService, GroupService
from lms.health.router import router as health_router
from lms.progress.aggregator import ProgressAggregator
from lms.progress.repository import ProgressRepository
from lms.progress.router import router as progress_router
from lms.progress.service import ProgressService
from lms.tenancy.repository import TenancyRepository
from lms.tenancy.service import TenantDirectory


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


class AppState:
    """Application state container."""

    cassandra_session: Any = None
    tenant_directory: TenantDirectory | None = None
    course_service: CourseService | None = None
    enrollment_service: EnrollmentService | None = None
    group_service: GroupService | None = None
    progress_service: ProgressService | None = None


app_state = AppState()


def wire_services(app: FastAPI, session: Any, keyspace: str) -> None:
    """Build repositories and services on a session and publish them on app.state."""
    settings = get_settings()

    tenancy_repository = TenancyRepository(session=session, keyspace=keyspace)
    course_repository = CourseRepository(session=session, keyspace=keyspace)
    enrollment_repository = EnrollmentRepository(session=session, keyspace=keyspace)
    progress_repository = ProgressRepository(session=session, keyspace=keyspace)

    app_state.tenant_directory = TenantDirectory(tenancy_repository)
    admission = GroupAdmissionController(
        enrollment_repository,
        max_attempts=settings.admission_max_cas_attempts,
    )

    app_state.enrollment_service = EnrollmentService(
        repository=enrollment_repository,
        courses=course_repository,
        tenants=app_state.tenant_directory,
        admission=admission,
        progress=progress_repository,
        max_attempts=settings.admission_max_cas_attempts,
    )
    app_state.group_service = GroupService(
        repository=enrollment_repository,
        courses=course_repository,
        max_attempts=settings.admission_max_cas_attempts,
    )
    app_state.course_service = CourseService(
        repository=course_repository,
        tenants=app_state.tenant_directory,
        progress=progress_repository,
        enrollments=app_state.enrollment_service,
        groups=app_state.group_service,
    )
    aggregator = ProgressAggregator(
        courses=course_repository,
        progress=progress_repository,
        enrollments=app_state.enrollment_service,
    )
    app_state.progress_service = ProgressService(
        repository=progress_repository,
        enrollments=enrollment_repository,
        courses=course_repository,
        aggregator=aggregator,
        max_attempts=settings.admission_max_cas_attempts,
    )

    # Dependencies read services via request.app.state
    app.state.course_service = app_state.course_service
    app.state.enrollment_service = app_state.enrollment_service
    app.state.group_service = app_state.group_service
    app.state.progress_service = app_state.progress_service
    app.state.services_ready = True


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    try:
        app_state.cassandra_session = await init_async_cassandra()
        logger.info("cassandra_initialized")

        wire_services(app, app_state.cassandra_session, settings.cassandra_keyspace)
        logger.info("services_initialized")
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    app.state.services_ready = False
    await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # debug stays off so responses never carry stack traces
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Multi-tenant course delivery: enrollments and progress",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        tenant_header=settings.tenant_header,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _error_response(
        request: Request,
        status_code: int,
        message: str,
        details: list[dict[str, str]] | None = None,
    ) -> ORJSONResponse:
        """Uniform error body; carries the request id for log correlation."""
        request_id = getattr(request.state, "request_id", None) or get_request_id()
        content: dict[str, Any] = {
            "error": True,
            "message": message,
            "status_code": status_code,
            "request_id": request_id,
        }
        if details is not None:
            content["details"] = details
        return ORJSONResponse(status_code=status_code, content=content)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )
        server_side = exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR
        message = "Internal server error" if server_side else str(exc.detail)
        return _error_response(request, exc.status_code, message)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        errors = exc.errors()
        logger.warning(
            "validation_error",
            errors=errors,
            path=request.url.path,
            method=request.method,
        )
        details = [
            {
                "field": ".".join(str(loc) for loc in err.get("loc", [])),
                "message": err.get("msg", "Invalid value"),
            }
            for err in errors
        ]
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            details=details,
        )

    @app.exception_handler(ContentionError)
    async def contention_handler(
        request: Request, exc: ContentionError
    ) -> ORJSONResponse:
        logger.error(
            "write_contention_exhausted",
            entity=exc.entity,
            entity_id=str(exc.entity_id),
            attempts=exc.attempts,
            path=request.url.path,
        )
        return _error_response(
            request, status.HTTP_503_SERVICE_UNAVAILABLE, exc.public_message
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Log the failure; the client only sees a generic message."""
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred. Please try again later.",
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(router_courses)
    app.include_router(router_modules)
    app.include_router(router_enrollments)
    app.include_router(progress_router)
    app.include_router(router_admin)
    app.include_router(router_groups)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": settings.app_name,
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()


def run() -> None:
    """Serve the application with uvicorn."""
    import uvicorn

    uvicorn.run(
        "lms.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
