"""Shared fixtures: in-memory repositories and fully wired services.

The fake repositories keep the contract of the Cassandra ones, including the
lightweight-transaction outcomes (``IF NOT EXISTS``, ``IF seats_taken = ?`` and
``IF revision = ?``) and the column sets of targeted updates.
Entities are copied on the way in and out, as a round trip through the
database would.
"""

import copy
import os
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_FORMAT", "console")

from fastapi.testclient import TestClient  # noqa: E402

from lms.courses.models import Course, Module  # noqa: E402
from lms.courses.schemas import CreateCourseRequest, CreateModuleRequest  # noqa: E402
from lms.courses.service import CourseService  # noqa: E402
from lms.enrollments.admission import GroupAdmissionController  # noqa: E402
from lms.enrollments.models import Enrollment, Group  # noqa: E402
from lms.enrollments.service import EnrollmentService, GroupService  # noqa: E402
from lms.progress.aggregator import ProgressAggregator  # noqa: E402
from lms.progress.models import ModuleProgress  # noqa: E402
from lms.progress.service import ProgressService  # noqa: E402
from lms.tenancy.models import Organization, OrganizationMember  # noqa: E402
from lms.tenancy.service import TenantDirectory  # noqa: E402


# ==============================================================================
# Fakes
# ==============================================================================


class StepClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2024, 1, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


class FakeTenancyRepository:
    def __init__(self):
        self.organizations: dict[UUID, Organization] = {}
        self.members: dict[tuple[UUID, UUID], OrganizationMember] = {}

    def add_organization(self, organization_id: UUID, name: str = "Acme") -> None:
        self.organizations[organization_id] = Organization(organization_id, name)

    def add_member(self, organization_id: UUID, user_id: UUID) -> None:
        self.members[(organization_id, user_id)] = OrganizationMember(
            organization_id, user_id, role="learner"
        )

    async def get_organization(self, organization_id):
        return self.organizations.get(organization_id)

    async def get_member(self, organization_id, user_id):
        return self.members.get((organization_id, user_id))


class FakeCourseRepository:
    def __init__(self):
        self.courses: dict[tuple[UUID, UUID], Course] = {}
        self.slugs: dict[tuple[UUID, str], UUID] = {}
        self.modules: dict[UUID, Module] = {}
        self.position_writes = 0

    async def claim_slug(self, organization_id, slug, course_id):
        if (organization_id, slug) in self.slugs:
            return False
        self.slugs[(organization_id, slug)] = course_id
        return True

    async def release_slug(self, organization_id, slug):
        self.slugs.pop((organization_id, slug), None)

    async def save_course(self, course):
        self.courses[(course.organization_id, course.id)] = copy.copy(course)

    async def update_course_details(self, course):
        stored = self.courses.get((course.organization_id, course.id))
        if stored is None:
            return False
        stored.title = course.title
        stored.description = course.description
        stored.metadata = course.metadata
        stored.updated_at = course.updated_at
        return True

    async def update_course_status(self, course):
        stored = self.courses.get((course.organization_id, course.id))
        if stored is None:
            return False
        stored.status = course.status
        stored.published_at = course.published_at
        stored.updated_at = course.updated_at
        return True

    async def get_course(self, organization_id, course_id):
        course = self.courses.get((organization_id, course_id))
        return copy.copy(course) if course else None

    async def list_courses(self, organization_id):
        courses = [
            copy.copy(c) for (org, _), c in self.courses.items() if org == organization_id
        ]
        return sorted(courses, key=lambda c: c.created_at)

    async def delete_course(self, organization_id, course_id):
        self.courses.pop((organization_id, course_id), None)

    async def save_module(self, module):
        self.modules[module.id] = copy.copy(module)

    async def get_module(self, module_id):
        module = self.modules.get(module_id)
        return copy.copy(module) if module else None

    async def list_modules(self, course_id):
        modules = [copy.copy(m) for m in self.modules.values() if m.course_id == course_id]
        return sorted(modules, key=lambda m: m.position)

    async def update_module_details(self, module):
        stored = self.modules.get(module.id)
        if stored is None:
            return False
        for field in (
            "title",
            "module_type",
            "duration_seconds",
            "status",
            "content_id",
            "data",
            "updated_at",
        ):
            setattr(stored, field, getattr(module, field))
        return True

    async def update_module_position(self, module):
        stored = self.modules[module.id]
        stored.position = module.position
        stored.updated_at = module.updated_at
        self.position_writes += 1

    async def delete_module(self, module):
        self.modules.pop(module.id, None)


class FakeEnrollmentRepository:
    def __init__(self):
        self.enrollments: dict[tuple[UUID, UUID], Enrollment] = {}
        self.keys: dict[tuple[UUID, UUID, UUID], UUID] = {}
        self.groups: dict[tuple[UUID, UUID], Group] = {}

    async def claim_key(self, enrollment):
        key = (enrollment.organization_id, enrollment.course_id, enrollment.user_id)
        if key in self.keys:
            return False
        self.keys[key] = enrollment.id
        return True

    async def release_key(self, enrollment):
        key = (enrollment.organization_id, enrollment.course_id, enrollment.user_id)
        self.keys.pop(key, None)

    async def insert_enrollment(self, enrollment):
        key = (enrollment.organization_id, enrollment.id)
        self.enrollments.setdefault(key, copy.copy(enrollment))

    async def update_enrollment(self, enrollment, expected_revision):
        key = (enrollment.organization_id, enrollment.id)
        stored = self.enrollments.get(key)
        if stored is None or stored.revision != expected_revision:
            return False
        self.enrollments[key] = copy.copy(enrollment)
        return True

    async def get_enrollment(self, organization_id, enrollment_id):
        enrollment = self.enrollments.get((organization_id, enrollment_id))
        return copy.copy(enrollment) if enrollment else None

    async def list_enrollments(self, organization_id):
        enrollments = [
            copy.copy(e)
            for (org, _), e in self.enrollments.items()
            if org == organization_id
        ]
        return sorted(enrollments, key=lambda e: e.created_at)

    async def delete_enrollment(self, enrollment):
        self.enrollments.pop((enrollment.organization_id, enrollment.id), None)
        await self.release_key(enrollment)

    async def insert_group(self, group):
        self.groups[(group.organization_id, group.id)] = copy.copy(group)

    async def update_group(self, group):
        stored = self.groups.get((group.organization_id, group.id))
        seats_taken = stored.seats_taken if stored else 0
        updated = copy.copy(group)
        updated.seats_taken = seats_taken
        self.groups[(group.organization_id, group.id)] = updated

    async def get_group(self, organization_id, group_id):
        group = self.groups.get((organization_id, group_id))
        return copy.copy(group) if group else None

    async def list_groups(self, organization_id):
        groups = [
            copy.copy(g) for (org, _), g in self.groups.items() if org == organization_id
        ]
        return sorted(groups, key=lambda g: g.created_at)

    async def delete_group(self, organization_id, group_id):
        self.groups.pop((organization_id, group_id), None)

    async def compare_and_set_seats(self, organization_id, group_id, expected, new):
        group = self.groups.get((organization_id, group_id))
        if group is None or group.seats_taken != expected:
            return False
        group.seats_taken = new
        return True

    def seats(self, organization_id: UUID, group_id: UUID) -> int:
        return self.groups[(organization_id, group_id)].seats_taken


class FakeProgressRepository:
    def __init__(self):
        self.records: dict[tuple[UUID, UUID], ModuleProgress] = {}

    async def create_progress(self, progress):
        key = (progress.enrollment_id, progress.module_id)
        if key in self.records:
            return False
        self.records[key] = copy.copy(progress)
        return True

    async def save_progress(self, progress, expected_revision):
        key = (progress.enrollment_id, progress.module_id)
        stored = self.records.get(key)
        if stored is None or stored.revision != expected_revision:
            return False
        self.records[key] = copy.copy(progress)
        return True

    async def get_progress(self, enrollment_id, module_id):
        record = self.records.get((enrollment_id, module_id))
        return copy.copy(record) if record else None

    async def list_progress(self, enrollment_id):
        return [
            copy.copy(r) for (eid, _), r in self.records.items() if eid == enrollment_id
        ]

    async def delete_for_module(self, module_id):
        keys = [k for k in self.records if k[1] == module_id]
        for key in keys:
            del self.records[key]
        return len(keys)

    async def delete_for_enrollment(self, enrollment_id):
        keys = [k for k in self.records if k[0] == enrollment_id]
        for key in keys:
            del self.records[key]
        return len(keys)


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def tenancy_repo() -> FakeTenancyRepository:
    return FakeTenancyRepository()


@pytest.fixture
def course_repo() -> FakeCourseRepository:
    return FakeCourseRepository()


@pytest.fixture
def enrollment_repo() -> FakeEnrollmentRepository:
    return FakeEnrollmentRepository()


@pytest.fixture
def progress_repo() -> FakeProgressRepository:
    return FakeProgressRepository()


@pytest.fixture
def org_id(tenancy_repo) -> UUID:
    """Registered organization."""
    organization_id = uuid4()
    tenancy_repo.add_organization(organization_id)
    return organization_id


@pytest.fixture
def other_org_id(tenancy_repo) -> UUID:
    """Second registered organization, for isolation checks."""
    organization_id = uuid4()
    tenancy_repo.add_organization(organization_id, name="Globex")
    return organization_id


@pytest.fixture
def learner_id(tenancy_repo, org_id) -> UUID:
    """Learner belonging to ``org_id``."""
    user_id = uuid4()
    tenancy_repo.add_member(org_id, user_id)
    return user_id


@pytest.fixture
def add_learner(tenancy_repo):
    """Register a new learner in an organization and return the id."""

    def _add(organization_id: UUID) -> UUID:
        user_id = uuid4()
        tenancy_repo.add_member(organization_id, user_id)
        return user_id

    return _add


@pytest.fixture
def tenants(tenancy_repo) -> TenantDirectory:
    return TenantDirectory(tenancy_repo)


@pytest.fixture
def admission(enrollment_repo) -> GroupAdmissionController:
    return GroupAdmissionController(enrollment_repo, max_attempts=3)


@pytest.fixture
def enrollment_service(
    enrollment_repo, course_repo, tenants, admission, progress_repo, clock
) -> EnrollmentService:
    return EnrollmentService(
        repository=enrollment_repo,
        courses=course_repo,
        tenants=tenants,
        admission=admission,
        progress=progress_repo,
        clock=clock,
    )


@pytest.fixture
def group_service(enrollment_repo, course_repo, clock) -> GroupService:
    return GroupService(repository=enrollment_repo, courses=course_repo, clock=clock)


@pytest.fixture
def course_service(
    course_repo, tenants, progress_repo, enrollment_service, group_service, clock
) -> CourseService:
    return CourseService(
        repository=course_repo,
        tenants=tenants,
        progress=progress_repo,
        enrollments=enrollment_service,
        groups=group_service,
        clock=clock,
    )


@pytest.fixture
def aggregator(course_repo, progress_repo, enrollment_service) -> ProgressAggregator:
    return ProgressAggregator(
        courses=course_repo, progress=progress_repo, enrollments=enrollment_service
    )


@pytest.fixture
def progress_service(
    progress_repo, enrollment_repo, course_repo, aggregator, clock
) -> ProgressService:
    return ProgressService(
        repository=progress_repo,
        enrollments=enrollment_repo,
        courses=course_repo,
        aggregator=aggregator,
        clock=clock,
    )


@pytest.fixture
def build_course(course_service):
    """Create a course with ``module_count`` video modules at positions 0..n-1."""

    async def _build(
        organization_id: UUID, module_count: int = 3, slug: str | None = None
    ) -> tuple[Course, list[Module]]:
        course = await course_service.create_course(
            organization_id,
            CreateCourseRequest(title="Onboarding", slug=slug or uuid4().hex),
        )
        modules = []
        for i in range(module_count):
            modules.append(
                await course_service.add_module(
                    organization_id,
                    course.id,
                    CreateModuleRequest(title=f"Module {i + 1}", module_type="video"),
                )
            )
        return course, modules

    return _build


@pytest.fixture
def app(course_service, enrollment_service, group_service, progress_service):
    """Application with fake-backed services; the lifespan is not run."""
    from lms.main import create_app

    application = create_app()
    application.state.course_service = course_service
    application.state.enrollment_service = enrollment_service
    application.state.group_service = group_service
    application.state.progress_service = progress_service
    application.state.services_ready = True
    return application


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def org_headers(org_id) -> dict[str, str]:
    return {"X-Org-ID": str(org_id)}
