"""Enrollment and group API endpoints.

Provides routes for:
- Enrollments: enroll, list with filters, membership update, cancel
- Administrative enrollment override
- Groups: CRUD
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from lms.core.errors import DomainError
from lms.enrollments.dependencies import (
    EnrollmentServiceDep,
    GroupServiceDep,
    handle_enrollment_error,
)
from lms.enrollments.models import EnrollmentStatus
from lms.enrollments.schemas import (
    AdminUpdateEnrollmentRequest,
    CreateGroupRequest,
    EnrollmentListResponse,
    EnrollmentResponse,
    EnrollRequest,
    GroupListResponse,
    GroupResponse,
    UpdateEnrollmentRequest,
    UpdateGroupRequest,
)
from lms.tenancy.dependencies import OrganizationId


router_enrollments = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])
router_admin = APIRouter(prefix="/v1/admin/enrollments", tags=["admin"])
router_groups = APIRouter(prefix="/v1/groups", tags=["groups"])


# ==============================================================================
# Enrollment Endpoints
# ==============================================================================


@router_enrollments.post(
    "",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll learner",
)
async def enroll(
    data: EnrollRequest,
    organization_id: OrganizationId,
    enrollment_service: EnrollmentServiceDep,
) -> EnrollmentResponse:
    """Enroll a learner. Status is ``waitlisted`` when the group is full."""
    try:
        enrollment = await enrollment_service.enroll(organization_id, data)
        return EnrollmentResponse.from_entity(enrollment)
    except DomainError as e:
        raise handle_enrollment_error(e) from e


@router_enrollments.get(
    "",
    response_model=EnrollmentListResponse,
    summary="List enrollments",
)
async def list_enrollments(
    organization_id: OrganizationId,
    enrollment_service: EnrollmentServiceDep,
    course_id: UUID | None = None,
    user_id: UUID | None = None,
    group_id: UUID | None = None,
    status_filter: Annotated[EnrollmentStatus | None, Query(alias="status")] = None,
) -> EnrollmentListResponse:
    enrollments = await enrollment_service.list_enrollments(
        organization_id,
        course_id=course_id,
        user_id=user_id,
        group_id=group_id,
        status=status_filter,
    )
    items = [EnrollmentResponse.from_entity(e) for e in enrollments]
    return EnrollmentListResponse(items=items, total=len(items))


@router_enrollments.patch(
    "/{enrollment_id}",
    response_model=EnrollmentResponse,
    summary="Update enrollment metadata or group",
)
async def update_enrollment(
    enrollment_id: UUID,
    data: UpdateEnrollmentRequest,
    organization_id: OrganizationId,
    enrollment_service: EnrollmentServiceDep,
) -> EnrollmentResponse:
    try:
        enrollment = await enrollment_service.update_membership(
            organization_id, enrollment_id, data
        )
        return EnrollmentResponse.from_entity(enrollment)
    except DomainError as e:
        raise handle_enrollment_error(e) from e


@router_enrollments.delete(
    "/{enrollment_id}",
    response_model=EnrollmentResponse,
    summary="Cancel enrollment",
)
async def cancel_enrollment(
    enrollment_id: UUID,
    organization_id: OrganizationId,
    enrollment_service: EnrollmentServiceDep,
) -> EnrollmentResponse:
    """Cancel (not delete). Waitlisted learners are not promoted."""
    try:
        enrollment = await enrollment_service.cancel(organization_id, enrollment_id)
        return EnrollmentResponse.from_entity(enrollment)
    except DomainError as e:
        raise handle_enrollment_error(e) from e


@router_admin.patch(
    "/{enrollment_id}",
    response_model=EnrollmentResponse,
    summary="Override enrollment state",
)
async def override_enrollment(
    enrollment_id: UUID,
    data: AdminUpdateEnrollmentRequest,
    organization_id: OrganizationId,
    enrollment_service: EnrollmentServiceDep,
) -> EnrollmentResponse:
    """Set status, progress and timestamps directly, without reconciliation."""
    try:
        enrollment = await enrollment_service.update_enrollment(
            organization_id, enrollment_id, data
        )
        return EnrollmentResponse.from_entity(enrollment)
    except DomainError as e:
        raise handle_enrollment_error(e) from e


# ==============================================================================
# Group Endpoints
# ==============================================================================


@router_groups.post(
    "",
    response_model=GroupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create group",
)
async def create_group(
    data: CreateGroupRequest,
    organization_id: OrganizationId,
    group_service: GroupServiceDep,
) -> GroupResponse:
    try:
        group = await group_service.create_group(organization_id, data)
        return GroupResponse.from_entity(group)
    except DomainError as e:
        raise handle_enrollment_error(e) from e


@router_groups.get(
    "",
    response_model=GroupListResponse,
    summary="List groups",
)
async def list_groups(
    organization_id: OrganizationId,
    group_service: GroupServiceDep,
    course_id: UUID | None = None,
) -> GroupListResponse:
    groups = await group_service.list_groups(organization_id, course_id)
    items = [GroupResponse.from_entity(g) for g in groups]
    return GroupListResponse(items=items, total=len(items))


@router_groups.patch(
    "/{group_id}",
    response_model=GroupResponse,
    summary="Update group",
)
async def update_group(
    group_id: UUID,
    data: UpdateGroupRequest,
    organization_id: OrganizationId,
    group_service: GroupServiceDep,
) -> GroupResponse:
    try:
        group = await group_service.update_group(organization_id, group_id, data)
        return GroupResponse.from_entity(group)
    except DomainError as e:
        raise handle_enrollment_error(e) from e


@router_groups.delete(
    "/{group_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete group",
)
async def delete_group(
    group_id: UUID,
    organization_id: OrganizationId,
    group_service: GroupServiceDep,
) -> None:
    """Delete a group; its enrollments are kept without a group."""
    try:
        await group_service.delete_group(organization_id, group_id)
    except DomainError as e:
        raise handle_enrollment_error(e) from e
