"""Database models for per-module progress.

Cassandra table definitions for:
- Module progress: one row per (enrollment, module), created lazily with
  ``IF NOT EXISTS`` the first time the module is started and updated
  only while its ``revision`` is unchanged
- Lookup table: module -> enrollments with a progress row, so removing a
  module can delete every record that references it

A missing row means ``not_started``.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from lms.core.clock import ensure_utc_aware, utc_now


if TYPE_CHECKING:
    from lms.courses.models import Module


class ModuleProgressStatus(str, Enum):
    """Module progress state; transitions only move forward."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

MODULE_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.module_progress (
    enrollment_id UUID,
    module_id UUID,
    status TEXT,
    score DOUBLE,
    attempts INT,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    revision INT,
    PRIMARY KEY (enrollment_id, module_id)
)
"""

MODULE_PROGRESS_BY_MODULE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.module_progress_by_module (
    module_id UUID,
    enrollment_id UUID,
    PRIMARY KEY (module_id, enrollment_id)
)
"""

PROGRESS_TABLES_CQL = [
    MODULE_PROGRESS_TABLE_CQL,
    MODULE_PROGRESS_BY_MODULE_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class ModuleProgress:
    """Progress of one enrollment on one module.

    Attributes:
        enrollment_id: Enrollment the record belongs to
        module_id: Module being tracked
        status: in_progress or completed (absence means not_started)
        score: Last submitted score, if any
        attempts: Number of completions that carried a score
        started_at: First start; never overwritten
        completed_at: Last completion
        revision: Bumped by every update; conditional writes compare it
    """

    def __init__(
        self,
        enrollment_id: UUID,
        module_id: UUID,
        status: str = ModuleProgressStatus.IN_PROGRESS.value,
        score: float | None = None,
        attempts: int = 0,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
        revision: int = 0,
    ):
        self.enrollment_id = enrollment_id
        self.module_id = module_id
        self.status = status
        self.score = score
        self.attempts = attempts
        self.started_at = ensure_utc_aware(started_at)
        self.completed_at = ensure_utc_aware(completed_at)
        self.created_at = ensure_utc_aware(created_at) or utc_now()
        self.updated_at = ensure_utc_aware(updated_at) or self.created_at
        self.revision = revision

    @classmethod
    def from_row(cls, row: Any) -> "ModuleProgress":
        """Create ModuleProgress instance from Cassandra row."""
        return cls(
            enrollment_id=row.enrollment_id,
            module_id=row.module_id,
            status=row.status,
            score=row.score,
            attempts=row.attempts or 0,
            started_at=row.started_at,
            completed_at=row.completed_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
            revision=row.revision or 0,
        )

    @property
    def is_completed(self) -> bool:
        return self.status == ModuleProgressStatus.COMPLETED.value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "enrollment_id": self.enrollment_id,
            "module_id": self.module_id,
            "status": self.status,
            "score": self.score,
            "attempts": self.attempts,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

    def __repr__(self) -> str:
        return f"<ModuleProgress {self.module_id} ({self.status})>"


class ModuleState:
    """Read-only view of a module and the enrollment's progress on it."""

    def __init__(self, module: "Module", progress: ModuleProgress | None = None):
        self.module = module
        self.progress = progress

    @property
    def status(self) -> str:
        if self.progress is None:
            return ModuleProgressStatus.NOT_STARTED.value
        return self.progress.status

    def to_dict(self) -> dict[str, Any]:
        progress = self.progress
        return {
            "module_id": self.module.id,
            "title": self.module.title,
            "module_type": self.module.module_type,
            "position": self.module.position,
            "status": self.status,
            "score": progress.score if progress else None,
            "attempts": progress.attempts if progress else 0,
            "started_at": progress.started_at if progress else None,
            "completed_at": progress.completed_at if progress else None,
        }

    def __repr__(self) -> str:
        return f"<ModuleState #{self.module.position} ({self.status})>"
