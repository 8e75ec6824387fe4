"""Tests for the course catalog service.

Covers:
- Course creation, slug uniqueness and status transitions
- Module append, reorder and removal (positions are not compacted)
- Cascading course deletion
- Tenant isolation
- Concurrent edits of different fields
"""

import asyncio
from uuid import uuid4

import pytest

from lms.core.errors import InvalidInputError, NotFoundError, SlugTakenError
from lms.courses.models import CourseStatus
from lms.courses.schemas import (
    CreateCourseRequest,
    CreateModuleRequest,
    UpdateCourseRequest,
    UpdateModuleRequest,
)
from lms.courses.service import (
    CourseNotFoundError,
    InvalidModuleTypeError,
    InvalidReorderError,
    ModuleNotFoundError,
    SlugExistsError,
)
from lms.enrollments.schemas import CreateGroupRequest, EnrollRequest


class TestCreateCourse:
    """Tests for course creation."""

    @pytest.mark.asyncio
    async def test_creates_draft_with_sanitized_slug(self, course_service, org_id):
        course = await course_service.create_course(
            org_id, CreateCourseRequest(title="  Safety Basics  ", slug="Safety  Basics")
        )
        assert course.title == "Safety Basics"
        assert course.slug == "safety-basics"
        assert course.status == CourseStatus.DRAFT.value
        assert course.version == 1
        assert course.published_at is None

    @pytest.mark.asyncio
    async def test_slug_defaults_to_title(self, course_service, org_id):
        course = await course_service.create_course(
            org_id, CreateCourseRequest(title="First Aid")
        )
        assert course.slug == "first-aid"

    @pytest.mark.asyncio
    async def test_duplicate_slug_in_same_org(self, course_service, org_id):
        await course_service.create_course(
            org_id, CreateCourseRequest(title="A", slug="intro")
        )
        with pytest.raises(SlugExistsError) as exc:
            await course_service.create_course(
                org_id, CreateCourseRequest(title="B", slug="intro")
            )
        assert isinstance(exc.value, SlugTakenError)
        assert exc.value.code == "slug_taken"

    @pytest.mark.asyncio
    async def test_same_slug_in_other_org(self, course_service, org_id, other_org_id):
        await course_service.create_course(
            org_id, CreateCourseRequest(title="A", slug="intro")
        )
        course = await course_service.create_course(
            other_org_id, CreateCourseRequest(title="A", slug="intro")
        )
        assert course.organization_id == other_org_id

    @pytest.mark.asyncio
    async def test_blank_title_rejected(self, course_service, org_id):
        with pytest.raises(InvalidInputError):
            await course_service.create_course(org_id, CreateCourseRequest(title="   "))

    @pytest.mark.asyncio
    async def test_unknown_organization_rejected(self, course_service):
        with pytest.raises(InvalidInputError):
            await course_service.create_course(uuid4(), CreateCourseRequest(title="A"))

    @pytest.mark.asyncio
    async def test_failed_save_releases_slug(self, course_service, course_repo, org_id):
        async def broken_save(course):
            raise RuntimeError("write timeout")

        course_repo.save_course = broken_save
        with pytest.raises(RuntimeError):
            await course_service.create_course(
                org_id, CreateCourseRequest(title="A", slug="intro")
            )
        assert (org_id, "intro") not in course_repo.slugs


class TestCourseLifecycle:
    """Tests for update and status transitions."""

    @pytest.mark.asyncio
    async def test_publish_sets_timestamp(self, course_service, build_course, org_id):
        course, _ = await build_course(org_id, 0)
        published = await course_service.publish_course(org_id, course.id)
        assert published.status == CourseStatus.PUBLISHED.value
        assert published.published_at is not None

    @pytest.mark.asyncio
    async def test_unpublish_and_archive(self, course_service, build_course, org_id):
        course, _ = await build_course(org_id, 0)
        await course_service.publish_course(org_id, course.id)

        draft = await course_service.unpublish_course(org_id, course.id)
        assert draft.status == CourseStatus.DRAFT.value

        archived = await course_service.archive_course(org_id, course.id)
        assert archived.status == CourseStatus.ARCHIVED.value
        assert await course_service.get_course(org_id, course.id)

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, course_service, build_course, org_id):
        first, _ = await build_course(org_id, 0)
        await build_course(org_id, 0)
        await course_service.publish_course(org_id, first.id)

        published = await course_service.list_courses(org_id, CourseStatus.PUBLISHED)
        assert [c.id for c in published] == [first.id]
        assert len(await course_service.list_courses(org_id)) == 2

    @pytest.mark.asyncio
    async def test_update_keeps_slug(self, course_service, build_course, org_id):
        course, _ = await build_course(org_id, 0, slug="fixed")
        updated = await course_service.update_course(
            org_id, course.id, UpdateCourseRequest(title="Renamed", metadata={"a": 1})
        )
        assert updated.title == "Renamed"
        assert updated.slug == "fixed"
        assert updated.metadata == {"a": 1}

    @pytest.mark.asyncio
    async def test_other_org_cannot_see_course(
        self, course_service, build_course, org_id, other_org_id
    ):
        course, _ = await build_course(org_id, 0)
        with pytest.raises(CourseNotFoundError):
            await course_service.get_course(other_org_id, course.id)
        assert await course_service.list_courses(other_org_id) == []


class TestModules:
    """Tests for module positions."""

    @pytest.mark.asyncio
    async def test_append_positions(self, build_course, org_id):
        _, modules = await build_course(org_id, 3)
        assert [m.position for m in modules] == [0, 1, 2]
        assert all(m.status == "active" for m in modules)

    @pytest.mark.asyncio
    async def test_append_after_gap(self, course_service, build_course, org_id):
        course, modules = await build_course(org_id, 3)
        await course_service.remove_module(org_id, modules[1].id)

        added = await course_service.add_module(
            org_id, course.id, CreateModuleRequest(title="Extra", module_type="pdf")
        )
        assert added.position == 3

        remaining = await course_service.list_modules(org_id, course.id)
        assert [m.position for m in remaining] == [0, 2, 3]

    @pytest.mark.asyncio
    async def test_module_type_is_normalized(self, course_service, build_course, org_id):
        course, _ = await build_course(org_id, 0)
        module = await course_service.add_module(
            org_id, course.id, CreateModuleRequest(title="Quiz", module_type=" QUIZ ")
        )
        assert module.module_type == "quiz"

    @pytest.mark.asyncio
    async def test_unknown_module_type(self, course_service, build_course, org_id):
        course, _ = await build_course(org_id, 0)
        with pytest.raises(InvalidModuleTypeError) as exc:
            await course_service.add_module(
                org_id, course.id, CreateModuleRequest(title="X", module_type="podcast")
            )
        assert "allowed" in exc.value.message

    @pytest.mark.asyncio
    async def test_add_to_missing_course_is_invalid_input(self, course_service, org_id):
        with pytest.raises(InvalidInputError):
            await course_service.add_module(
                org_id, uuid4(), CreateModuleRequest(title="X", module_type="video")
            )

    @pytest.mark.asyncio
    async def test_update_module(self, course_service, build_course, org_id):
        _, modules = await build_course(org_id, 1)
        updated = await course_service.update_module(
            org_id,
            modules[0].id,
            UpdateModuleRequest(title="Intro", module_type="article", status="hidden"),
        )
        assert updated.title == "Intro"
        assert updated.module_type == "article"
        assert updated.status == "hidden"
        assert updated.position == 0

    @pytest.mark.asyncio
    async def test_module_of_other_org_not_found(
        self, course_service, build_course, org_id, other_org_id
    ):
        _, modules = await build_course(org_id, 1)
        with pytest.raises(ModuleNotFoundError):
            await course_service.get_module(other_org_id, modules[0].id)

    def test_allowed_module_types_sorted(self, course_service):
        assert course_service.allowed_module_types() == [
            "article",
            "pdf",
            "quiz",
            "scorm",
            "video",
        ]


class TestReorder:
    """Tests for module reordering."""

    @pytest.mark.asyncio
    async def test_reorder_assigns_dense_positions(
        self, course_service, course_repo, build_course, org_id
    ):
        course, (a, b, c) = await build_course(org_id, 3)
        course_repo.position_writes = 0

        ordered = await course_service.reorder_modules(
            org_id, course.id, [c.id, b.id, a.id]
        )
        assert [m.id for m in ordered] == [c.id, b.id, a.id]
        assert [m.position for m in ordered] == [0, 1, 2]
        # b keeps position 1
        assert course_repo.position_writes == 2

    @pytest.mark.asyncio
    async def test_reorder_closes_gaps(self, course_service, build_course, org_id):
        course, (a, b, c) = await build_course(org_id, 3)
        await course_service.remove_module(org_id, b.id)

        await course_service.reorder_modules(org_id, course.id, [a.id, c.id])
        modules = await course_service.list_modules(org_id, course.id)
        assert [(m.id, m.position) for m in modules] == [(a.id, 0), (c.id, 1)]

    @pytest.mark.asyncio
    async def test_reorder_count_mismatch(self, course_service, build_course, org_id):
        course, (a, b, _) = await build_course(org_id, 3)
        with pytest.raises(InvalidReorderError):
            await course_service.reorder_modules(org_id, course.id, [a.id, b.id])

    @pytest.mark.asyncio
    async def test_reorder_duplicates(self, course_service, build_course, org_id):
        course, (a, b, _) = await build_course(org_id, 3)
        with pytest.raises(InvalidReorderError):
            await course_service.reorder_modules(org_id, course.id, [a.id, b.id, a.id])

    @pytest.mark.asyncio
    async def test_reorder_foreign_module(self, course_service, build_course, org_id):
        course, (a, b, _) = await build_course(org_id, 3)
        _, (foreign,) = await build_course(org_id, 1)
        with pytest.raises(InvalidReorderError):
            await course_service.reorder_modules(
                org_id, course.id, [a.id, b.id, foreign.id]
            )

    @pytest.mark.asyncio
    async def test_reorder_unknown_course(self, course_service, org_id):
        with pytest.raises(NotFoundError):
            await course_service.reorder_modules(org_id, uuid4(), [])


class TestRemoveModule:
    """Tests for module removal."""

    @pytest.mark.asyncio
    async def test_removes_progress_records(
        self,
        course_service,
        enrollment_service,
        progress_service,
        progress_repo,
        build_course,
        org_id,
        learner_id,
    ):
        course, (first, _) = await build_course(org_id, 2)
        enrollment = await enrollment_service.enroll(
            org_id, EnrollRequest(course_id=course.id, user_id=learner_id)
        )
        await progress_service.start(org_id, enrollment.id, first.id)

        await course_service.remove_module(org_id, first.id)

        assert progress_repo.records == {}
        with pytest.raises(ModuleNotFoundError):
            await course_service.get_module(org_id, first.id)


class TestDeleteCourse:
    """Tests for the hard-delete cascade."""

    @pytest.mark.asyncio
    async def test_cascade(
        self,
        course_service,
        enrollment_service,
        group_service,
        progress_service,
        course_repo,
        enrollment_repo,
        progress_repo,
        build_course,
        org_id,
        learner_id,
    ):
        course, modules = await build_course(org_id, 2, slug="doomed")
        group = await group_service.create_group(
            org_id, CreateGroupRequest(name="Cohort", capacity=5, course_id=course.id)
        )
        enrollment = await enrollment_service.enroll(
            org_id,
            EnrollRequest(course_id=course.id, user_id=learner_id, group_id=group.id),
        )
        await progress_service.complete(org_id, enrollment.id, modules[0].id)
        assert enrollment_repo.seats(org_id, group.id) == 1

        await course_service.delete_course(org_id, course.id)

        with pytest.raises(CourseNotFoundError):
            await course_service.get_course(org_id, course.id)
        assert course_repo.modules == {}
        assert progress_repo.records == {}
        assert await enrollment_service.list_enrollments(org_id) == []
        assert enrollment_repo.keys == {}

        detached = await group_service.get_group(org_id, group.id)
        assert detached.course_id is None
        assert detached.seats_taken == 0

        # Slug and enrollment slot are free again
        again, _ = await build_course(org_id, 0, slug="doomed")
        await enrollment_service.enroll(
            org_id, EnrollRequest(course_id=again.id, user_id=learner_id)
        )


class TestConcurrentEdits:
    """Edits of different fields racing each other all persist."""

    @staticmethod
    def interleave(repo, name):
        """Yield to the event loop after every call of ``repo.<name>``."""
        read = getattr(repo, name)

        async def interleaved(*args):
            result = await read(*args)
            await asyncio.sleep(0)
            return result

        setattr(repo, name, interleaved)

    @pytest.mark.asyncio
    async def test_module_edit_during_reorder_keeps_new_position(
        self, course_service, course_repo, build_course, org_id
    ):
        course, (first, second) = await build_course(org_id, 2)
        self.interleave(course_repo, "get_module")

        await asyncio.gather(
            course_service.update_module(
                org_id, first.id, UpdateModuleRequest(title="Renamed")
            ),
            course_service.reorder_modules(org_id, course.id, [second.id, first.id]),
        )

        modules = await course_service.list_modules(org_id, course.id)
        assert [m.id for m in modules] == [second.id, first.id]
        assert [m.position for m in modules] == [0, 1]
        assert modules[1].title == "Renamed"

    @pytest.mark.asyncio
    async def test_publish_and_rename_both_persist(
        self, course_service, course_repo, build_course, org_id
    ):
        course, _ = await build_course(org_id, 0)
        self.interleave(course_repo, "get_course")

        await asyncio.gather(
            course_service.publish_course(org_id, course.id),
            course_service.update_course(
                org_id, course.id, UpdateCourseRequest(title="Renamed")
            ),
        )

        stored = await course_service.get_course(org_id, course.id)
        assert stored.status == CourseStatus.PUBLISHED.value
        assert stored.published_at is not None
        assert stored.title == "Renamed"

    @pytest.mark.asyncio
    async def test_edit_of_removed_module_is_not_resurrected(
        self, course_service, course_repo, build_course, org_id
    ):
        _, (module,) = await build_course(org_id, 1)
        read = course_repo.get_module

        async def read_then_remove(module_id):
            found = await read(module_id)
            await course_repo.delete_module(found)
            return found

        course_repo.get_module = read_then_remove

        with pytest.raises(ModuleNotFoundError):
            await course_service.update_module(
                org_id, module.id, UpdateModuleRequest(title="Late")
            )
        assert module.id not in course_repo.modules
