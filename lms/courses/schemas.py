"""Pydantic schemas for the course catalog.

Request and response models for:
- Courses: CRUD and publication status changes
- Modules: CRUD and reordering
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from lms.courses.models import Course, CourseStatus, Module


# ==============================================================================
# Course Schemas
# ==============================================================================


class CreateCourseRequest(BaseModel):
    """Course creation request.

    ``slug`` is optional; when omitted it is derived from the title.
    """

    title: str = Field(..., max_length=200, description="Course title")
    slug: str | None = Field(None, max_length=200, description="URL slug")
    description: str | None = Field(
        None, max_length=5000, description="Course description"
    )
    metadata: dict[str, Any] | None = Field(None, description="Free-form metadata")


class UpdateCourseRequest(BaseModel):
    """Course update request."""

    title: str | None = Field(None, max_length=200, description="Course title")
    description: str | None = Field(
        None, max_length=5000, description="Course description"
    )
    metadata: dict[str, Any] | None = Field(None, description="Free-form metadata")


class CourseResponse(BaseModel):
    """Course response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    title: str
    slug: str
    description: str | None = None
    status: CourseStatus
    version: int
    metadata: dict[str, Any] | None = None
    published_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, course: Course) -> "CourseResponse":
        return cls.model_validate(course.to_dict())


class CourseListResponse(BaseModel):
    """Course list response."""

    items: list[CourseResponse]
    total: int


# ==============================================================================
# Module Schemas
# ==============================================================================


class CreateModuleRequest(BaseModel):
    """Module creation request. The type is validated by the catalog."""

    title: str = Field(..., max_length=200, description="Module title")
    module_type: str = Field(..., description="scorm, pdf, video, article or quiz")
    duration_seconds: int | None = Field(None, ge=0, description="Duration")
    content_id: UUID | None = Field(None, description="Stored content reference")
    data: dict[str, Any] | None = Field(None, description="Module payload")


class UpdateModuleRequest(BaseModel):
    """Module update request."""

    title: str | None = Field(None, max_length=200, description="Module title")
    module_type: str | None = Field(None, description="Module type")
    duration_seconds: int | None = Field(None, ge=0, description="Duration")
    status: str | None = Field(None, max_length=50, description="Module status")
    content_id: UUID | None = Field(None, description="Stored content reference")
    data: dict[str, Any] | None = Field(None, description="Module payload")


class ReorderModulesRequest(BaseModel):
    """Full ordering of a course's modules; must be a permutation."""

    module_ids: list[UUID] = Field(..., description="Module ids in the new order")


class ModuleResponse(BaseModel):
    """Module response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    course_id: UUID
    title: str
    module_type: str
    position: int
    duration_seconds: int | None = None
    status: str
    content_id: UUID | None = None
    data: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, module: Module) -> "ModuleResponse":
        return cls.model_validate(module.to_dict())


class ModuleListResponse(BaseModel):
    """Modules of a course in position order."""

    items: list[ModuleResponse]


class ModuleTypesResponse(BaseModel):
    """Allowed module types."""

    types: list[str]
