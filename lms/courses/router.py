"""Course catalog API endpoints.

Provides routes for:
- Courses: CRUD and publication status changes
- Course modules: listing, creation and reordering
- Modules: update and removal by id
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from lms.core.errors import DomainError
from lms.courses.dependencies import CourseServiceDep, handle_course_error
from lms.courses.models import CourseStatus
from lms.courses.schemas import (
    CourseListResponse,
    CourseResponse,
    CreateCourseRequest,
    CreateModuleRequest,
    ModuleListResponse,
    ModuleResponse,
    ModuleTypesResponse,
    ReorderModulesRequest,
    UpdateCourseRequest,
    UpdateModuleRequest,
)
from lms.tenancy.dependencies import OrganizationId


router_courses = APIRouter(prefix="/v1/courses", tags=["courses"])
router_modules = APIRouter(prefix="/v1/modules", tags=["modules"])


# ==============================================================================
# Course Endpoints
# ==============================================================================


@router_courses.get(
    "/module-types",
    response_model=ModuleTypesResponse,
    summary="List allowed module types",
)
async def list_module_types(
    _organization_id: OrganizationId,
    course_service: CourseServiceDep,
) -> ModuleTypesResponse:
    return ModuleTypesResponse(types=course_service.allowed_module_types())


@router_courses.post(
    "",
    response_model=CourseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create course",
)
async def create_course(
    data: CreateCourseRequest,
    organization_id: OrganizationId,
    course_service: CourseServiceDep,
) -> CourseResponse:
    """Create a draft course. The slug defaults to the sanitized title."""
    try:
        course = await course_service.create_course(organization_id, data)
        return CourseResponse.from_entity(course)
    except DomainError as e:
        raise handle_course_error(e) from e


@router_courses.get(
    "",
    response_model=CourseListResponse,
    summary="List courses",
)
async def list_courses(
    organization_id: OrganizationId,
    course_service: CourseServiceDep,
    status_filter: Annotated[CourseStatus | None, Query(alias="status")] = None,
) -> CourseListResponse:
    courses = await course_service.list_courses(organization_id, status_filter)
    items = [CourseResponse.from_entity(c) for c in courses]
    return CourseListResponse(items=items, total=len(items))


@router_courses.get(
    "/{course_id}",
    response_model=CourseResponse,
    summary="Get course",
)
async def get_course(
    course_id: UUID,
    organization_id: OrganizationId,
    course_service: CourseServiceDep,
) -> CourseResponse:
    try:
        course = await course_service.get_course(organization_id, course_id)
        return CourseResponse.from_entity(course)
    except DomainError as e:
        raise handle_course_error(e) from e


@router_courses.patch(
    "/{course_id}",
    response_model=CourseResponse,
    summary="Update course",
)
async def update_course(
    course_id: UUID,
    data: UpdateCourseRequest,
    organization_id: OrganizationId,
    course_service: CourseServiceDep,
) -> CourseResponse:
    try:
        course = await course_service.update_course(organization_id, course_id, data)
        return CourseResponse.from_entity(course)
    except DomainError as e:
        raise handle_course_error(e) from e


@router_courses.delete(
    "/{course_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete course",
)
async def delete_course(
    course_id: UUID,
    organization_id: OrganizationId,
    course_service: CourseServiceDep,
) -> None:
    """Hard delete: removes modules, progress and enrollments, detaches groups."""
    try:
        await course_service.delete_course(organization_id, course_id)
    except DomainError as e:
        raise handle_course_error(e) from e


@router_courses.post(
    "/{course_id}/publish",
    response_model=CourseResponse,
    summary="Publish course",
)
async def publish_course(
    course_id: UUID,
    organization_id: OrganizationId,
    course_service: CourseServiceDep,
) -> CourseResponse:
    try:
        course = await course_service.publish_course(organization_id, course_id)
        return CourseResponse.from_entity(course)
    except DomainError as e:
        raise handle_course_error(e) from e


@router_courses.post(
    "/{course_id}/unpublish",
    response_model=CourseResponse,
    summary="Unpublish course",
)
async def unpublish_course(
    course_id: UUID,
    organization_id: OrganizationId,
    course_service: CourseServiceDep,
) -> CourseResponse:
    try:
        course = await course_service.unpublish_course(organization_id, course_id)
        return CourseResponse.from_entity(course)
    except DomainError as e:
        raise handle_course_error(e) from e


@router_courses.post(
    "/{course_id}/archive",
    response_model=CourseResponse,
    summary="Archive course",
)
async def archive_course(
    course_id: UUID,
    organization_id: OrganizationId,
    course_service: CourseServiceDep,
) -> CourseResponse:
    try:
        course = await course_service.archive_course(organization_id, course_id)
        return CourseResponse.from_entity(course)
    except DomainError as e:
        raise handle_course_error(e) from e


# ==============================================================================
# Course Module Endpoints
# ==============================================================================


@router_courses.get(
    "/{course_id}/modules",
    response_model=ModuleListResponse,
    summary="List course modules",
)
async def list_modules(
    course_id: UUID,
    organization_id: OrganizationId,
    course_service: CourseServiceDep,
) -> ModuleListResponse:
    """Modules in position order."""
    try:
        modules = await course_service.list_modules(organization_id, course_id)
        return ModuleListResponse(items=[ModuleResponse.from_entity(m) for m in modules])
    except DomainError as e:
        raise handle_course_error(e) from e


@router_courses.post(
    "/{course_id}/modules",
    response_model=ModuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add module",
)
async def add_module(
    course_id: UUID,
    data: CreateModuleRequest,
    organization_id: OrganizationId,
    course_service: CourseServiceDep,
) -> ModuleResponse:
    """Append a module after the current last position."""
    try:
        module = await course_service.add_module(organization_id, course_id, data)
        return ModuleResponse.from_entity(module)
    except DomainError as e:
        raise handle_course_error(e) from e


@router_courses.put(
    "/{course_id}/modules/reorder",
    response_model=ModuleListResponse,
    summary="Reorder modules",
)
async def reorder_modules(
    course_id: UUID,
    data: ReorderModulesRequest,
    organization_id: OrganizationId,
    course_service: CourseServiceDep,
) -> ModuleListResponse:
    try:
        modules = await course_service.reorder_modules(
            organization_id, course_id, data.module_ids
        )
        return ModuleListResponse(items=[ModuleResponse.from_entity(m) for m in modules])
    except DomainError as e:
        raise handle_course_error(e) from e


# ==============================================================================
# Module Endpoints
# ==============================================================================


@router_modules.patch(
    "/{module_id}",
    response_model=ModuleResponse,
    summary="Update module",
)
async def update_module(
    module_id: UUID,
    data: UpdateModuleRequest,
    organization_id: OrganizationId,
    course_service: CourseServiceDep,
) -> ModuleResponse:
    try:
        module = await course_service.update_module(organization_id, module_id, data)
        return ModuleResponse.from_entity(module)
    except DomainError as e:
        raise handle_course_error(e) from e


@router_modules.delete(
    "/{module_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove module",
)
async def remove_module(
    module_id: UUID,
    organization_id: OrganizationId,
    course_service: CourseServiceDep,
) -> None:
    """Delete a module and its progress records. Positions are not compacted."""
    try:
        await course_service.remove_module(organization_id, module_id)
    except DomainError as e:
        raise handle_course_error(e) from e
