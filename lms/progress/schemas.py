"""Pydantic schemas for module progress."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from lms.enrollments.schemas import EnrollmentResponse
from lms.progress.models import ModuleProgress, ModuleProgressStatus, ModuleState


class StartModuleRequest(BaseModel):
    """Start a module for the enrollment."""

    module_id: UUID = Field(..., description="Module ID")


class CompleteModuleRequest(BaseModel):
    """Complete a module; a score counts as one attempt."""

    module_id: UUID = Field(..., description="Module ID")
    score: float | None = Field(None, description="Optional score")


class ModuleProgressResponse(BaseModel):
    """Progress record of one module."""

    model_config = ConfigDict(from_attributes=True)

    enrollment_id: UUID
    module_id: UUID
    status: ModuleProgressStatus
    score: float | None = None
    attempts: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_entity(cls, progress: ModuleProgress) -> "ModuleProgressResponse":
        return cls.model_validate(progress.to_dict())


class ModuleCompletionResponse(BaseModel):
    """Completed module record and the recomputed enrollment."""

    progress: ModuleProgressResponse
    enrollment: EnrollmentResponse


class ModuleStateResponse(BaseModel):
    """A module of the course with the enrollment's state on it."""

    module_id: UUID
    title: str
    module_type: str
    position: int
    status: ModuleProgressStatus
    score: float | None = None
    attempts: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_state(cls, state: ModuleState) -> "ModuleStateResponse":
        return cls.model_validate(state.to_dict())


class EnrollmentProgressResponse(BaseModel):
    """Per-module progress of an enrollment, in position order."""

    enrollment_id: UUID
    modules: list[ModuleStateResponse]
