"""Enrollment registry and group service layer.

Business logic for:
- Enrollment admission (active or waitlisted) and uniqueness per course
- Learner-facing and administrative enrollment updates
- Cancellation and course-deletion cleanup
- Group CRUD and seat bookkeeping
"""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from lms.core.clock import Clock, utc_now
from lms.core.errors import (
    AlreadyEnrolledError,
    ContentionError,
    InvalidInputError,
    NotFoundError,
)

from .models import NIL_UUID, Enrollment, EnrollmentStatus, Group
from .schemas import (
    AdminUpdateEnrollmentRequest,
    CreateGroupRequest,
    EnrollRequest,
    UpdateEnrollmentRequest,
    UpdateGroupRequest,
)


if TYPE_CHECKING:
    from lms.courses.repository import CourseRepository
    from lms.enrollments.admission import GroupAdmissionController
    from lms.enrollments.repository import EnrollmentRepository
    from lms.progress.repository import ProgressRepository
    from lms.tenancy.service import TenantDirectory

logger = structlog.get_logger(__name__)

MAX_PROGRESS = 100.0

EnrollmentChange = Callable[[Enrollment, datetime], Awaitable[None]]


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class EnrollmentNotFoundError(NotFoundError):
    """Enrollment absent from the organization."""

    def __init__(self, message: str = "Enrollment not found"):
        super().__init__(message)


class GroupNotFoundError(NotFoundError):
    """Group absent from the organization."""

    def __init__(self, message: str = "Group not found"):
        super().__init__(message)


class LearnerAlreadyEnrolledError(AlreadyEnrolledError):
    """The learner already holds an enrollment for this course."""


class InvalidGroupError(InvalidInputError):
    """Group outside the organization or bound to another course."""

    def __init__(self, message: str = "Group does not belong to this course"):
        super().__init__(message)


class GroupFullError(InvalidInputError):
    """Moving into a group that has no free seat."""

    def __init__(self, message: str = "Group is at capacity"):
        super().__init__(message)


def clamp_progress(value: float) -> float:
    return max(0.0, min(MAX_PROGRESS, value))


# ==============================================================================
# Enrollment Service
# ==============================================================================


class EnrollmentService:
    """Service for enrollments and their group seats."""

    def __init__(
        self,
        repository: "EnrollmentRepository",
        courses: "CourseRepository",
        tenants: "TenantDirectory",
        admission: "GroupAdmissionController",
        progress: "ProgressRepository",
        clock: Clock = utc_now,
        max_attempts: int = 8,
    ):
        self.repository = repository
        self.courses = courses
        self.tenants = tenants
        self.admission = admission
        self.progress = progress
        self.clock = clock
        self.max_attempts = max_attempts

    async def enroll(self, organization_id: UUID, data: EnrollRequest) -> Enrollment:
        """Enroll a learner in a course.

        The enrollment is active unless its group has no free seat, in which
        case it is waitlisted.

        Raises:
            InvalidInputError: Organization, course, learner or group does not
                resolve inside the tenant, or the group is bound to another course
            LearnerAlreadyEnrolledError: An enrollment already exists for
                (organization, course, learner), whatever its status
        """
        if not await self.tenants.organization_exists(organization_id):
            raise InvalidInputError("Organization not found")
        if not await self.courses.get_course(organization_id, data.course_id):
            raise InvalidInputError("Course not found in organization")
        if not await self.tenants.is_member(organization_id, data.user_id):
            raise InvalidInputError("Learner not found in organization")

        group_id = None
        if data.group_id is not None:
            group_id = await self._resolve_group(
                organization_id, data.course_id, data.group_id
            )

        now = self.clock()
        enrollment = Enrollment(
            organization_id=organization_id,
            course_id=data.course_id,
            user_id=data.user_id,
            group_id=group_id,
            metadata=data.metadata,
            created_at=now,
            updated_at=now,
        )

        if not await self.repository.claim_key(enrollment):
            raise LearnerAlreadyEnrolledError

        seat_taken = False
        try:
            if group_id is not None:
                seat_taken = await self.admission.reserve(organization_id, group_id)
            if group_id is None or seat_taken:
                enrollment.status = EnrollmentStatus.ACTIVE.value
                enrollment.started_at = now
            else:
                enrollment.status = EnrollmentStatus.WAITLISTED.value
            await self.repository.insert_enrollment(enrollment)
        except Exception:
            if seat_taken:
                await self.admission.release(organization_id, group_id)
            await self.repository.release_key(enrollment)
            raise

        logger.info(
            "enrollment_waitlisted"
            if enrollment.status == EnrollmentStatus.WAITLISTED.value
            else "enrollment_created",
            enrollment_id=str(enrollment.id),
            course_id=str(enrollment.course_id),
            user_id=str(enrollment.user_id),
            group_id=str(group_id) if group_id else None,
        )
        return enrollment

    async def get_enrollment(
        self, organization_id: UUID, enrollment_id: UUID
    ) -> Enrollment:
        enrollment = await self.repository.get_enrollment(
            organization_id, enrollment_id
        )
        if not enrollment:
            raise EnrollmentNotFoundError
        return enrollment

    async def list_enrollments(
        self,
        organization_id: UUID,
        course_id: UUID | None = None,
        user_id: UUID | None = None,
        group_id: UUID | None = None,
        status: EnrollmentStatus | None = None,
    ) -> list[Enrollment]:
        """List enrollments of the organization, oldest first."""
        enrollments = await self.repository.list_enrollments(organization_id)
        return [
            e
            for e in enrollments
            if (course_id is None or e.course_id == course_id)
            and (user_id is None or e.user_id == user_id)
            and (group_id is None or e.group_id == group_id)
            and (status is None or e.status == status.value)
        ]

    async def update_membership(
        self,
        organization_id: UUID,
        enrollment_id: UUID,
        data: UpdateEnrollmentRequest,
    ) -> Enrollment:
        """Change metadata or group. Lifecycle fields are not touchable here.

        Raises:
            EnrollmentNotFoundError: Unknown enrollment
            InvalidGroupError: Group outside the tenant or bound elsewhere
            GroupFullError: The new group has no free seat
        """

        async def change(enrollment: Enrollment, now: datetime) -> None:
            if data.group_id is not None:
                enrollment.group_id = await self._resolve_group(
                    organization_id, enrollment.course_id, data.group_id
                )
            if data.metadata is not None:
                enrollment.metadata = data.metadata

        enrollment = await self._update(
            organization_id, enrollment_id, change, enforce_capacity=True
        )
        logger.info(
            "enrollment_updated",
            enrollment_id=str(enrollment.id),
            group_id=str(enrollment.group_id) if enrollment.group_id else None,
        )
        return enrollment

    async def update_enrollment(
        self,
        organization_id: UUID,
        enrollment_id: UUID,
        data: AdminUpdateEnrollmentRequest,
    ) -> Enrollment:
        """Administrative update of status, progress, group and timestamps.

        Status and progress are not reconciled with each other. Setting
        ``status=active`` without ``started_at`` stamps now; progress >= 100
        without ``completed_at`` stamps now. Group seats follow the new state
        without a capacity check.
        """

        async def change(enrollment: Enrollment, now: datetime) -> None:
            if data.group_id is not None:
                enrollment.group_id = await self._resolve_group(
                    organization_id, enrollment.course_id, data.group_id
                )
            if data.status is not None:
                enrollment.status = data.status.value
                if data.status == EnrollmentStatus.ACTIVE and data.started_at is None:
                    enrollment.started_at = now
            if data.progress is not None:
                enrollment.progress = clamp_progress(data.progress)
                if enrollment.progress >= MAX_PROGRESS and data.completed_at is None:
                    enrollment.completed_at = now
            if data.started_at is not None:
                enrollment.started_at = data.started_at
            if data.completed_at is not None:
                enrollment.completed_at = data.completed_at
            if data.metadata is not None:
                enrollment.metadata = data.metadata

        enrollment = await self._update(organization_id, enrollment_id, change)
        logger.info(
            "enrollment_overridden",
            enrollment_id=str(enrollment.id),
            status=enrollment.status,
            progress=enrollment.progress,
            fields=sorted(data.model_fields_set),
        )
        return enrollment

    async def cancel(self, organization_id: UUID, enrollment_id: UUID) -> Enrollment:
        """Cancel an enrollment.

        Progress records are kept and the uniqueness slot stays taken. A freed
        seat is not handed to a waitlisted enrollment.
        """

        async def change(enrollment: Enrollment, now: datetime) -> None:
            enrollment.status = EnrollmentStatus.CANCELLED.value

        enrollment = await self._update(organization_id, enrollment_id, change)
        logger.info(
            "enrollment_cancelled",
            enrollment_id=str(enrollment.id),
            group_id=str(enrollment.group_id) if enrollment.group_id else None,
        )
        return enrollment

    async def apply_aggregate(
        self, enrollment: Enrollment, progress: float, completed: bool
    ) -> Enrollment:
        """Write recomputed progress; all modules done completes the enrollment.

        Completing a waitlisted or cancelled enrollment needs a seat in its
        group. When the group is full only the percentage is written and the
        status is kept.
        """

        async def record_progress(target: Enrollment, now: datetime) -> None:
            target.progress = progress

        async def record_completion(target: Enrollment, now: datetime) -> None:
            target.progress = progress
            target.status = EnrollmentStatus.COMPLETED.value
            target.completed_at = now

        organization_id = enrollment.organization_id
        if not completed:
            return await self._update(organization_id, enrollment.id, record_progress)

        try:
            return await self._update(
                organization_id,
                enrollment.id,
                record_completion,
                enforce_capacity=True,
            )
        except GroupFullError:
            logger.info(
                "enrollment_completion_held",
                enrollment_id=str(enrollment.id),
                group_id=str(enrollment.group_id),
            )
            return await self._update(organization_id, enrollment.id, record_progress)

    async def purge_course(self, organization_id: UUID, course_id: UUID) -> int:
        """Delete every enrollment of a course with its progress records."""
        enrollments = await self.list_enrollments(organization_id, course_id=course_id)
        for enrollment in enrollments:
            await self.progress.delete_for_enrollment(enrollment.id)
            await self.repository.delete_enrollment(enrollment)
            if enrollment.occupies_seat:
                await self.admission.release(organization_id, enrollment.group_id)
        return len(enrollments)

    async def _resolve_group(
        self, organization_id: UUID, course_id: UUID, group_id: UUID
    ) -> UUID | None:
        """Validate a group reference; the nil UUID means no group."""
        if group_id == NIL_UUID:
            return None
        group = await self.repository.get_group(organization_id, group_id)
        if not group:
            raise InvalidGroupError("Group not found in organization")
        if group.course_id is not None and group.course_id != course_id:
            raise InvalidGroupError
        return group.id

    async def _update(
        self,
        organization_id: UUID,
        enrollment_id: UUID,
        change: EnrollmentChange,
        enforce_capacity: bool = False,
    ) -> Enrollment:
        """Read, change and conditionally write an enrollment, moving its seat.

        The write only lands if the row is still at the revision that was
        read; otherwise the row is read again and ``change`` reapplied. A new
        seat is reserved before the write and the old one released after it,
        so a failure in between over-counts rather than over-admits.

        Raises:
            EnrollmentNotFoundError: The enrollment is gone
            GroupFullError: Capacity is enforced and the target group is full
            ContentionError: Every round lost a race
        """
        for attempt in range(1, self.max_attempts + 1):
            enrollment = await self.get_enrollment(organization_id, enrollment_id)
            previous_group_id = enrollment.group_id
            previously_seated = enrollment.occupies_seat
            expected = enrollment.revision

            now = self.clock()
            await change(enrollment, now)
            enrollment.updated_at = now
            enrollment.revision = expected + 1

            keeps_seat = (
                previously_seated
                and enrollment.occupies_seat
                and previous_group_id == enrollment.group_id
            )
            reserved = enrollment.occupies_seat and not keeps_seat
            if reserved and not await self.admission.reserve(
                organization_id, enrollment.group_id, enforce_capacity
            ):
                raise GroupFullError

            if await self.repository.update_enrollment(enrollment, expected):
                if previously_seated and not keeps_seat:
                    await self.admission.release(organization_id, previous_group_id)
                return enrollment

            if reserved:
                await self.admission.release(organization_id, enrollment.group_id)
            logger.info(
                "enrollment_update_contention",
                enrollment_id=str(enrollment_id),
                attempt=attempt,
            )

        raise ContentionError("enrollment", enrollment_id, self.max_attempts)


# ==============================================================================
# Group Service
# ==============================================================================


class GroupService:
    """Service for capacity-bounded groups."""

    def __init__(
        self,
        repository: "EnrollmentRepository",
        courses: "CourseRepository",
        clock: Clock = utc_now,
        max_attempts: int = 8,
    ):
        self.repository = repository
        self.courses = courses
        self.clock = clock
        self.max_attempts = max_attempts

    async def create_group(
        self, organization_id: UUID, data: CreateGroupRequest
    ) -> Group:
        """Create a group.

        Raises:
            InvalidInputError: Blank name or bound course outside the tenant
        """
        name = data.name.strip()
        if not name:
            raise InvalidInputError("Name is required")
        if data.course_id is not None and not await self.courses.get_course(
            organization_id, data.course_id
        ):
            raise InvalidInputError("Course not found in organization")

        now = self.clock()
        group = Group(
            organization_id=organization_id,
            name=name,
            course_id=data.course_id,
            description=data.description,
            capacity=data.capacity if data.capacity and data.capacity > 0 else None,
            metadata=data.metadata,
            created_at=now,
            updated_at=now,
        )
        await self.repository.insert_group(group)

        logger.info(
            "group_created",
            group_id=str(group.id),
            course_id=str(group.course_id) if group.course_id else None,
            capacity=group.capacity,
        )
        return group

    async def get_group(self, organization_id: UUID, group_id: UUID) -> Group:
        group = await self.repository.get_group(organization_id, group_id)
        if not group:
            raise GroupNotFoundError
        return group

    async def list_groups(
        self, organization_id: UUID, course_id: UUID | None = None
    ) -> list[Group]:
        groups = await self.repository.list_groups(organization_id)
        if course_id is not None:
            groups = [g for g in groups if g.course_id == course_id]
        return groups

    async def update_group(
        self, organization_id: UUID, group_id: UUID, data: UpdateGroupRequest
    ) -> Group:
        """Update a group. Capacity 0 removes the bound.

        Lowering the capacity below the seats already taken does not evict
        anyone; new admissions are waitlisted until seats free up.
        """
        group = await self.get_group(organization_id, group_id)

        if data.name is not None:
            name = data.name.strip()
            if not name:
                raise InvalidInputError("Name cannot be blank")
            group.name = name
        if data.capacity is not None:
            if data.capacity < 0:
                raise InvalidInputError("Capacity cannot be negative")
            group.capacity = data.capacity or None
        if data.description is not None:
            group.description = data.description
        if data.metadata is not None:
            group.metadata = data.metadata

        group.updated_at = self.clock()
        await self.repository.update_group(group)
        return group

    async def delete_group(self, organization_id: UUID, group_id: UUID) -> int:
        """Delete a group and detach the enrollments that referenced it."""
        await self.get_group(organization_id, group_id)

        detached = 0
        for enrollment in await self.repository.list_enrollments(organization_id):
            if enrollment.group_id == group_id and await self._detach(
                enrollment, group_id
            ):
                detached += 1

        await self.repository.delete_group(organization_id, group_id)
        logger.info("group_deleted", group_id=str(group_id), detached=detached)
        return detached

    async def _detach(self, enrollment: Enrollment, group_id: UUID) -> bool:
        """Clear ``group_id`` on an enrollment still pointing at the group.

        The group is going away, so its seat counter is left as is.
        """
        for _ in range(self.max_attempts):
            expected = enrollment.revision
            enrollment.group_id = None
            enrollment.updated_at = self.clock()
            enrollment.revision = expected + 1
            if await self.repository.update_enrollment(enrollment, expected):
                return True

            enrollment = await self.repository.get_enrollment(
                enrollment.organization_id, enrollment.id
            )
            if enrollment is None or enrollment.group_id != group_id:
                return False

        raise ContentionError("enrollment", enrollment.id, self.max_attempts)

    async def detach_course_groups(
        self, organization_id: UUID, course_id: UUID
    ) -> int:
        """Unbind every group bound to a course; the groups themselves stay."""
        now = self.clock()
        detached = 0
        for group in await self.list_groups(organization_id, course_id=course_id):
            group.course_id = None
            group.updated_at = now
            await self.repository.update_group(group)
            detached += 1
        return detached
