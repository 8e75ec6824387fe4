"""Module progress API endpoints.

Provides routes for:
- Starting a module (prerequisite gated)
- Completing a module with an optional score
- Per-module progress of an enrollment
"""

from uuid import UUID

from fastapi import APIRouter

from lms.core.errors import DomainError
from lms.enrollments.schemas import EnrollmentResponse
from lms.tenancy.dependencies import OrganizationId

from .dependencies import ProgressServiceDep, handle_progress_error
from .schemas import (
    CompleteModuleRequest,
    EnrollmentProgressResponse,
    ModuleCompletionResponse,
    ModuleProgressResponse,
    ModuleStateResponse,
    StartModuleRequest,
)


router = APIRouter(prefix="/v1/enrollments", tags=["progress"])


@router.get(
    "/{enrollment_id}/progress",
    response_model=EnrollmentProgressResponse,
    summary="Get enrollment progress",
)
async def get_progress(
    enrollment_id: UUID,
    organization_id: OrganizationId,
    progress_service: ProgressServiceDep,
) -> EnrollmentProgressResponse:
    """Every module of the course with its state; untouched modules are not_started."""
    try:
        states = await progress_service.get_progress(organization_id, enrollment_id)
        return EnrollmentProgressResponse(
            enrollment_id=enrollment_id,
            modules=[ModuleStateResponse.from_state(s) for s in states],
        )
    except DomainError as e:
        raise handle_progress_error(e) from e


@router.post(
    "/{enrollment_id}/progress/start",
    response_model=ModuleProgressResponse,
    summary="Start module",
)
async def start_module(
    enrollment_id: UUID,
    data: StartModuleRequest,
    organization_id: OrganizationId,
    progress_service: ProgressServiceDep,
) -> ModuleProgressResponse:
    """Start a module. 423 while a lower-position module is not completed."""
    try:
        progress = await progress_service.start(
            organization_id, enrollment_id, data.module_id
        )
        return ModuleProgressResponse.from_entity(progress)
    except DomainError as e:
        raise handle_progress_error(e) from e


@router.post(
    "/{enrollment_id}/progress/complete",
    response_model=ModuleCompletionResponse,
    summary="Complete module",
)
async def complete_module(
    enrollment_id: UUID,
    data: CompleteModuleRequest,
    organization_id: OrganizationId,
    progress_service: ProgressServiceDep,
) -> ModuleCompletionResponse:
    """Complete a module and recompute the enrollment's progress.

    Each call carrying a score increments the attempt counter.
    """
    try:
        progress, enrollment = await progress_service.complete(
            organization_id, enrollment_id, data.module_id, data.score
        )
        return ModuleCompletionResponse(
            progress=ModuleProgressResponse.from_entity(progress),
            enrollment=EnrollmentResponse.from_entity(enrollment),
        )
    except DomainError as e:
        raise handle_progress_error(e) from e
