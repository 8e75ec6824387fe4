"""Pydantic schemas for enrollments and groups."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from lms.enrollments.models import Enrollment, EnrollmentStatus, Group


# ==============================================================================
# Enrollment Schemas
# ==============================================================================


class EnrollRequest(BaseModel):
    """Enroll a learner in a course, optionally inside a group."""

    course_id: UUID = Field(..., description="Course ID")
    user_id: UUID = Field(..., description="Learner ID")
    group_id: UUID | None = Field(None, description="Group ID")
    metadata: dict[str, Any] | None = Field(None, description="Free-form metadata")


class UpdateEnrollmentRequest(BaseModel):
    """Learner-facing update: metadata and group only.

    A nil UUID (``00000000-0000-0000-0000-000000000000``) clears the group.
    """

    group_id: UUID | None = Field(None, description="New group, nil UUID to clear")
    metadata: dict[str, Any] | None = Field(None, description="Free-form metadata")


class AdminUpdateEnrollmentRequest(UpdateEnrollmentRequest):
    """Administrative override of lifecycle fields.

    Status and progress are written as given, even when they contradict each
    other. Progress is clamped to [0, 100].
    """

    status: EnrollmentStatus | None = Field(None, description="Lifecycle status")
    progress: float | None = Field(None, description="Aggregate progress")
    started_at: datetime | None = Field(None, description="Start timestamp")
    completed_at: datetime | None = Field(None, description="Completion timestamp")


class EnrollmentResponse(BaseModel):
    """Enrollment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    course_id: UUID
    user_id: UUID
    group_id: UUID | None = None
    status: EnrollmentStatus
    progress: float
    started_at: datetime | None = None
    completed_at: datetime | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, enrollment: Enrollment) -> "EnrollmentResponse":
        return cls.model_validate(enrollment.to_dict())


class EnrollmentListResponse(BaseModel):
    """Enrollment list response."""

    items: list[EnrollmentResponse]
    total: int


# ==============================================================================
# Group Schemas
# ==============================================================================


class CreateGroupRequest(BaseModel):
    """Group creation request. Capacity <= 0 means unbounded."""

    name: str = Field(..., max_length=200, description="Group name")
    description: str | None = Field(None, max_length=5000, description="Description")
    capacity: int | None = Field(None, description="Maximum seats")
    course_id: UUID | None = Field(None, description="Bound course")
    metadata: dict[str, Any] | None = Field(None, description="Free-form metadata")


class UpdateGroupRequest(BaseModel):
    """Group update request. Capacity 0 removes the bound."""

    name: str | None = Field(None, max_length=200, description="Group name")
    description: str | None = Field(None, max_length=5000, description="Description")
    capacity: int | None = Field(None, description="Maximum seats")
    metadata: dict[str, Any] | None = Field(None, description="Free-form metadata")


class GroupResponse(BaseModel):
    """Group response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    course_id: UUID | None = None
    name: str
    description: str | None = None
    capacity: int | None = None
    seats_taken: int
    metadata: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, group: Group) -> "GroupResponse":
        return cls.model_validate(group.to_dict())


class GroupListResponse(BaseModel):
    """Group list response."""

    items: list[GroupResponse]
    total: int
