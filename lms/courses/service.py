"""Course catalog service layer.

Business logic for:
- Course CRUD, publication status and cascading deletion
- Module creation at the end of the course, reordering and removal

Edits write only the columns they change, so concurrent edits of different
fields of one course or module all persist.
"""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from lms.core.clock import Clock, utc_now
from lms.core.errors import InvalidInputError, NotFoundError, SlugTakenError

from .models import (
    Course,
    CourseStatus,
    Module,
    ModuleType,
    allowed_module_types,
    normalize_module_type,
    sanitize_slug,
)
from .schemas import (
    CreateCourseRequest,
    CreateModuleRequest,
    UpdateCourseRequest,
    UpdateModuleRequest,
)


if TYPE_CHECKING:
    from lms.courses.repository import CourseRepository
    from lms.enrollments.service import EnrollmentService, GroupService
    from lms.progress.repository import ProgressRepository
    from lms.tenancy.service import TenantDirectory

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CourseNotFoundError(NotFoundError):
    """Course absent from the organization."""

    def __init__(self, message: str = "Course not found"):
        super().__init__(message)


class ModuleNotFoundError(NotFoundError):
    """Module absent from the organization."""

    def __init__(self, message: str = "Module not found"):
        super().__init__(message)


class InvalidModuleTypeError(InvalidInputError):
    """Module type outside the allowed set."""

    def __init__(self, module_type: str):
        allowed = ", ".join(allowed_module_types())
        super().__init__(f"Invalid module type '{module_type}' (allowed: {allowed})")


class InvalidReorderError(InvalidInputError):
    """Reorder list is not a permutation of the course's modules."""

    def __init__(self, message: str = "Module ids must match the course modules"):
        super().__init__(message)


class SlugExistsError(SlugTakenError):
    """Slug already used by another course of the organization."""

    def __init__(self, slug: str):
        super().__init__(f"Slug '{slug}' already in use")


# ==============================================================================
# Course Service
# ==============================================================================


class CourseService:
    """Service for courses and their ordered modules."""

    def __init__(
        self,
        repository: "CourseRepository",
        tenants: "TenantDirectory",
        progress: "ProgressRepository",
        enrollments: "EnrollmentService",
        groups: "GroupService",
        clock: Clock = utc_now,
    ):
        self.repository = repository
        self.tenants = tenants
        self.progress = progress
        self.enrollments = enrollments
        self.groups = groups
        self.clock = clock

    @staticmethod
    def allowed_module_types() -> list[str]:
        return allowed_module_types()

    # ==========================================================================
    # Courses
    # ==========================================================================

    async def create_course(
        self, organization_id: UUID, data: CreateCourseRequest
    ) -> Course:
        """Create a draft course.

        Raises:
            InvalidInputError: Blank title, empty slug or unknown organization
            SlugExistsError: Slug already used in the organization
        """
        title = data.title.strip()
        if not title:
            raise InvalidInputError("Title is required")

        slug = sanitize_slug(data.slug or title)
        if not slug:
            raise InvalidInputError("Slug is required")

        if not await self.tenants.organization_exists(organization_id):
            raise InvalidInputError("Organization not found")

        now = self.clock()
        course = Course(
            organization_id=organization_id,
            title=title,
            slug=slug,
            description=data.description,
            metadata=data.metadata,
            created_at=now,
            updated_at=now,
        )

        if not await self.repository.claim_slug(organization_id, slug, course.id):
            raise SlugExistsError(slug)

        try:
            await self.repository.save_course(course)
        except Exception:
            await self.repository.release_slug(organization_id, slug)
            raise

        logger.info(
            "course_created",
            course_id=str(course.id),
            organization_id=str(organization_id),
            slug=slug,
        )
        return course

    async def get_course(self, organization_id: UUID, course_id: UUID) -> Course:
        """Get a course of the organization.

        Raises:
            CourseNotFoundError: If the course does not exist in the organization
        """
        course = await self.repository.get_course(organization_id, course_id)
        if not course:
            raise CourseNotFoundError
        return course

    async def list_courses(
        self, organization_id: UUID, status: CourseStatus | None = None
    ) -> list[Course]:
        courses = await self.repository.list_courses(organization_id)
        if status is not None:
            courses = [c for c in courses if c.status == status.value]
        return courses

    async def update_course(
        self, organization_id: UUID, course_id: UUID, data: UpdateCourseRequest
    ) -> Course:
        course = await self.get_course(organization_id, course_id)

        if data.title is not None:
            title = data.title.strip()
            if not title:
                raise InvalidInputError("Title cannot be blank")
            course.title = title
        if data.description is not None:
            course.description = data.description
        if data.metadata is not None:
            course.metadata = data.metadata

        course.updated_at = self.clock()
        if not await self.repository.update_course_details(course):
            raise CourseNotFoundError
        return course

    async def publish_course(self, organization_id: UUID, course_id: UUID) -> Course:
        course = await self.get_course(organization_id, course_id)
        now = self.clock()
        course.status = CourseStatus.PUBLISHED.value
        course.published_at = now
        course.updated_at = now
        if not await self.repository.update_course_status(course):
            raise CourseNotFoundError
        logger.info("course_published", course_id=str(course_id))
        return course

    async def unpublish_course(self, organization_id: UUID, course_id: UUID) -> Course:
        return await self._set_status(organization_id, course_id, CourseStatus.DRAFT)

    async def archive_course(self, organization_id: UUID, course_id: UUID) -> Course:
        """Soft status change; nothing is deleted."""
        return await self._set_status(
            organization_id, course_id, CourseStatus.ARCHIVED
        )

    async def _set_status(
        self, organization_id: UUID, course_id: UUID, status: CourseStatus
    ) -> Course:
        course = await self.get_course(organization_id, course_id)
        course.status = status.value
        course.updated_at = self.clock()
        if not await self.repository.update_course_status(course):
            raise CourseNotFoundError
        logger.info(
            "course_status_changed", course_id=str(course_id), status=status.value
        )
        return course

    async def delete_course(self, organization_id: UUID, course_id: UUID) -> None:
        """Hard-delete a course.

        Cascade: modules and their progress records, the course's enrollments
        (releasing their group seats), and detachment of groups bound to it.
        """
        course = await self.get_course(organization_id, course_id)

        modules = await self.repository.list_modules(course_id)
        for module in modules:
            await self.progress.delete_for_module(module.id)
            await self.repository.delete_module(module)

        removed = await self.enrollments.purge_course(organization_id, course_id)
        detached = await self.groups.detach_course_groups(
            organization_id, course_id
        )

        await self.repository.delete_course(organization_id, course_id)
        await self.repository.release_slug(organization_id, course.slug)

        logger.info(
            "course_deleted",
            course_id=str(course_id),
            modules=len(modules),
            enrollments=removed,
            groups_detached=detached,
        )

    # ==========================================================================
    # Modules
    # ==========================================================================

    async def add_module(
        self, organization_id: UUID, course_id: UUID, data: CreateModuleRequest
    ) -> Module:
        """Append a module at ``max(position) + 1`` (0 for an empty course).

        Raises:
            InvalidInputError: Unknown course, blank title or bad module type
        """
        course = await self.repository.get_course(organization_id, course_id)
        if not course:
            raise InvalidInputError("Course not found in organization")

        module_type = self._validate_module_type(data.module_type)
        title = data.title.strip()
        if not title:
            raise InvalidInputError("Title is required")

        existing = await self.repository.list_modules(course_id)
        position = max((m.position for m in existing), default=-1) + 1

        now = self.clock()
        module = Module(
            course_id=course_id,
            organization_id=organization_id,
            title=title,
            module_type=module_type,
            position=position,
            duration_seconds=data.duration_seconds,
            content_id=data.content_id,
            data=data.data,
            created_at=now,
            updated_at=now,
        )
        await self.repository.save_module(module)

        logger.info(
            "module_added",
            course_id=str(course_id),
            module_id=str(module.id),
            position=position,
        )
        return module

    async def get_module(self, organization_id: UUID, module_id: UUID) -> Module:
        module = await self.repository.get_module(module_id)
        if not module or module.organization_id != organization_id:
            raise ModuleNotFoundError
        return module

    async def list_modules(
        self, organization_id: UUID, course_id: UUID
    ) -> list[Module]:
        await self.get_course(organization_id, course_id)
        return await self.repository.list_modules(course_id)

    async def update_module(
        self, organization_id: UUID, module_id: UUID, data: UpdateModuleRequest
    ) -> Module:
        module = await self.get_module(organization_id, module_id)

        if data.title is not None:
            title = data.title.strip()
            if not title:
                raise InvalidInputError("Title cannot be blank")
            module.title = title
        if data.module_type is not None:
            module.module_type = self._validate_module_type(data.module_type)
        if data.duration_seconds is not None:
            module.duration_seconds = data.duration_seconds
        if data.status is not None:
            module.status = data.status
        if data.content_id is not None:
            module.content_id = data.content_id
        if data.data is not None:
            module.data = data.data

        module.updated_at = self.clock()
        if not await self.repository.update_module_details(module):
            raise ModuleNotFoundError
        return module

    async def reorder_modules(
        self, organization_id: UUID, course_id: UUID, module_ids: list[UUID]
    ) -> list[Module]:
        """Assign positions 0..n-1 following ``module_ids``.

        Only modules whose position changes are written.

        Raises:
            CourseNotFoundError: Unknown course
            InvalidReorderError: Not a permutation of the current modules
        """
        await self.get_course(organization_id, course_id)
        modules = await self.repository.list_modules(course_id)

        if len(module_ids) != len(modules):
            raise InvalidReorderError("Module count mismatch")
        by_id = {m.id: m for m in modules}
        if len(set(module_ids)) != len(module_ids) or set(module_ids) != set(by_id):
            raise InvalidReorderError

        now = self.clock()
        changed = 0
        ordered = []
        for position, module_id in enumerate(module_ids):
            module = by_id[module_id]
            if module.position != position:
                module.position = position
                module.updated_at = now
                await self.repository.update_module_position(module)
                changed += 1
            ordered.append(module)

        logger.info(
            "modules_reordered",
            course_id=str(course_id),
            modules=len(ordered),
            changed=changed,
        )
        return ordered

    async def remove_module(self, organization_id: UUID, module_id: UUID) -> None:
        """Delete a module and every progress record that references it.

        Remaining positions are not compacted.
        """
        module = await self.get_module(organization_id, module_id)
        removed = await self.progress.delete_for_module(module.id)
        await self.repository.delete_module(module)
        logger.info(
            "module_removed",
            course_id=str(module.course_id),
            module_id=str(module_id),
            progress_records=removed,
        )

    @staticmethod
    def _validate_module_type(raw: str) -> str:
        module_type = normalize_module_type(raw)
        if module_type not in {t.value for t in ModuleType}:
            raise InvalidModuleTypeError(raw)
        return module_type
