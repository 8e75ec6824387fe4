"""Module progress service layer.

Business logic for:
- Prerequisite gating by module position
- Module state transitions (not_started -> in_progress -> completed)
- Completion with optional score and retake attempts
- Read-only per-module progress projection

Gating relies on completed records never moving backwards: once every lower
position is completed for an enrollment it stays that way, so the check and
the following write cannot be invalidated by a concurrent start. Record
updates are conditional on the revision that was read and reapplied on a
lost race, so a concurrent start never rolls back a completion.
"""

from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from lms.core.clock import Clock, utc_now
from lms.core.errors import BlockedError, ContentionError, InvalidInputError
from lms.enrollments.service import EnrollmentNotFoundError

from .models import ModuleProgress, ModuleProgressStatus, ModuleState


if TYPE_CHECKING:
    from lms.courses.models import Module
    from lms.courses.repository import CourseRepository
    from lms.enrollments.models import Enrollment
    from lms.enrollments.repository import EnrollmentRepository
    from lms.progress.aggregator import ProgressAggregator
    from lms.progress.repository import ProgressRepository

logger = structlog.get_logger(__name__)

ProgressChange = Callable[[ModuleProgress, datetime], None]


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class InvalidModuleError(InvalidInputError):
    """Module missing or outside the enrollment's course."""

    def __init__(self, message: str = "Module does not belong to this course"):
        super().__init__(message)


class PrerequisitesIncompleteError(BlockedError):
    """Lower-position modules are not all completed."""

    def __init__(self, pending: int):
        self.pending = pending
        super().__init__(f"{pending} previous module(s) not completed")


# ==============================================================================
# Progress Service
# ==============================================================================


class ProgressService:
    """Service for per-module progress of an enrollment."""

    def __init__(
        self,
        repository: "ProgressRepository",
        enrollments: "EnrollmentRepository",
        courses: "CourseRepository",
        aggregator: "ProgressAggregator",
        clock: Clock = utc_now,
        max_attempts: int = 8,
    ):
        self.repository = repository
        self.enrollments = enrollments
        self.courses = courses
        self.aggregator = aggregator
        self.clock = clock
        self.max_attempts = max_attempts

    async def start(
        self, organization_id: UUID, enrollment_id: UUID, module_id: UUID
    ) -> ModuleProgress:
        """Start a module.

        Raises:
            EnrollmentNotFoundError: Unknown enrollment in the organization
            InvalidModuleError: Module missing or from another course
            PrerequisitesIncompleteError: A lower-position module is not completed
        """
        _, _, progress = await self._start(organization_id, enrollment_id, module_id)
        return progress

    async def complete(
        self,
        organization_id: UUID,
        enrollment_id: UUID,
        module_id: UUID,
        score: float | None = None,
    ) -> tuple[ModuleProgress, "Enrollment"]:
        """Complete a module, starting it first if needed.

        A supplied score is recorded and increments ``attempts`` on every
        call. Enrollment progress is recomputed afterwards.

        Returns:
            The module record and the enrollment with its new aggregate
        """
        enrollment, _, progress = await self._start(
            organization_id, enrollment_id, module_id
        )

        def mark_completed(record: ModuleProgress, now: datetime) -> None:
            record.status = ModuleProgressStatus.COMPLETED.value
            record.completed_at = now
            if score is not None:
                record.score = score
                record.attempts += 1

        progress = await self._write(progress, mark_completed)

        logger.info(
            "module_completed",
            enrollment_id=str(enrollment_id),
            module_id=str(module_id),
            score=score,
            attempts=progress.attempts,
        )

        enrollment = await self.aggregator.recompute(enrollment)
        return progress, enrollment

    async def get_progress(
        self, organization_id: UUID, enrollment_id: UUID
    ) -> list[ModuleState]:
        """Every module of the course in position order with its state.

        Modules without a record report ``not_started``. Nothing is written.
        """
        enrollment = await self._get_enrollment(organization_id, enrollment_id)
        modules = await self.courses.list_modules(enrollment.course_id)
        records = {
            r.module_id: r for r in await self.repository.list_progress(enrollment.id)
        }
        return [ModuleState(m, records.get(m.id)) for m in modules]

    async def _get_enrollment(
        self, organization_id: UUID, enrollment_id: UUID
    ) -> "Enrollment":
        enrollment = await self.enrollments.get_enrollment(
            organization_id, enrollment_id
        )
        if not enrollment:
            raise EnrollmentNotFoundError
        return enrollment

    async def _start(
        self, organization_id: UUID, enrollment_id: UUID, module_id: UUID
    ) -> tuple["Enrollment", "Module", ModuleProgress]:
        enrollment = await self._get_enrollment(organization_id, enrollment_id)

        module = await self.courses.get_module(module_id)
        if not module or module.organization_id != organization_id:
            raise InvalidModuleError("Module not found")
        if module.course_id != enrollment.course_id:
            raise InvalidModuleError

        await self._check_prerequisites(enrollment, module)

        progress = await self.repository.get_progress(enrollment.id, module.id)
        if progress is None:
            now = self.clock()
            progress = ModuleProgress(
                enrollment_id=enrollment.id,
                module_id=module.id,
                started_at=now,
                created_at=now,
                updated_at=now,
            )
            if await self.repository.create_progress(progress):
                logger.info(
                    "module_started",
                    enrollment_id=str(enrollment.id),
                    module_id=str(module.id),
                    position=module.position,
                )
                return enrollment, module, progress
            progress = await self._reread(progress)

        def mark_started(record: ModuleProgress, now: datetime) -> None:
            if not record.is_completed:
                record.status = ModuleProgressStatus.IN_PROGRESS.value
            if record.started_at is None:
                record.started_at = now

        progress = await self._write(progress, mark_started)
        return enrollment, module, progress

    async def _write(
        self, progress: ModuleProgress, change: ProgressChange
    ) -> ModuleProgress:
        """Apply ``change`` and write it if the record is still at the revision read.

        On a lost race the record is read again and ``change`` reapplied.

        Raises:
            InvalidModuleError: The record was deleted with its module
            ContentionError: Every round lost a race
        """
        for attempt in range(1, self.max_attempts + 1):
            expected = progress.revision
            now = self.clock()
            change(progress, now)
            progress.updated_at = now
            progress.revision = expected + 1
            if await self.repository.save_progress(progress, expected):
                return progress

            logger.info(
                "module_progress_contention",
                enrollment_id=str(progress.enrollment_id),
                module_id=str(progress.module_id),
                attempt=attempt,
            )
            progress = await self._reread(progress)

        raise ContentionError("module progress", progress.module_id, self.max_attempts)

    async def _reread(self, progress: ModuleProgress) -> ModuleProgress:
        current = await self.repository.get_progress(
            progress.enrollment_id, progress.module_id
        )
        if current is None:
            raise InvalidModuleError("Module not found")
        return current

    async def _check_prerequisites(
        self, enrollment: "Enrollment", module: "Module"
    ) -> None:
        """Every module ranked below ``module`` must be completed."""
        if module.position == 0:
            return

        modules = await self.courses.list_modules(module.course_id)
        prerequisites = {m.id for m in modules if m.position < module.position}
        if not prerequisites:
            return

        records = await self.repository.list_progress(enrollment.id)
        done = {r.module_id for r in records if r.is_completed}
        pending = len(prerequisites - done)
        if pending:
            logger.info(
                "module_start_blocked",
                enrollment_id=str(enrollment.id),
                module_id=str(module.id),
                pending=pending,
            )
            raise PrerequisitesIncompleteError(pending)
