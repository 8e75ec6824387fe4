"""FastAPI dependencies for the course catalog.

Provides dependency injection for:
- Course service
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from lms.core.errors import DomainError

from .service import CourseService


async def get_course_service(request: Request) -> CourseService:
    """Get course service from app state."""
    app_state = request.app.state
    if not getattr(app_state, "course_service", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Course service not available",
        )
    return app_state.course_service


CourseServiceDep = Annotated[CourseService, Depends(get_course_service)]


def handle_course_error(error: DomainError) -> HTTPException:
    """Convert catalog errors to HTTP exceptions."""
    status_map = {
        "invalid_input": status.HTTP_400_BAD_REQUEST,
        "not_found": status.HTTP_404_NOT_FOUND,
        "slug_taken": status.HTTP_409_CONFLICT,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )
