"""FastAPI dependencies for enrollments and groups.

Provides dependency injection for:
- Enrollment and group services
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from lms.core.errors import DomainError

from .service import EnrollmentService, GroupService


async def get_enrollment_service(request: Request) -> EnrollmentService:
    """Get enrollment service from app state."""
    app_state = request.app.state
    if not getattr(app_state, "enrollment_service", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Enrollment service not available",
        )
    return app_state.enrollment_service


async def get_group_service(request: Request) -> GroupService:
    """Get group service from app state."""
    app_state = request.app.state
    if not getattr(app_state, "group_service", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Group service not available",
        )
    return app_state.group_service


EnrollmentServiceDep = Annotated[EnrollmentService, Depends(get_enrollment_service)]
GroupServiceDep = Annotated[GroupService, Depends(get_group_service)]


def handle_enrollment_error(error: DomainError) -> HTTPException:
    """Convert enrollment and group errors to HTTP exceptions."""
    status_map = {
        "invalid_input": status.HTTP_400_BAD_REQUEST,
        "not_found": status.HTTP_404_NOT_FOUND,
        "already_enrolled": status.HTTP_409_CONFLICT,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )
