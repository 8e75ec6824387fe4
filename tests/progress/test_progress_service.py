"""Tests for module progress and enrollment aggregation.

Covers:
- Prerequisite gating by position
- Start/complete transitions, scores and attempts
- Progress projection for untouched modules
- Aggregation after module removal and reorder
- Conditional writes racing each other
"""

import asyncio
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from lms.core.errors import BlockedError, ContentionError, InvalidInputError
from lms.courses.schemas import CreateModuleRequest
from lms.enrollments.schemas import CreateGroupRequest, EnrollRequest
from lms.enrollments.service import EnrollmentNotFoundError
from lms.progress.service import InvalidModuleError, PrerequisitesIncompleteError


@pytest.fixture
def enroll(enrollment_service, org_id, learner_id):
    async def _enroll(course):
        return await enrollment_service.enroll(
            org_id, EnrollRequest(course_id=course.id, user_id=learner_id)
        )

    return _enroll


class TestStart:
    """Tests for starting modules."""

    @pytest.mark.asyncio
    async def test_first_module_starts(
        self, progress_service, build_course, enroll, org_id
    ):
        course, modules = await build_course(org_id, 3)
        enrollment = await enroll(course)

        progress = await progress_service.start(org_id, enrollment.id, modules[0].id)
        assert progress.status == "in_progress"
        assert progress.started_at is not None
        assert progress.attempts == 0

    @pytest.mark.asyncio
    async def test_later_module_blocked(
        self, progress_service, progress_repo, build_course, enroll, org_id
    ):
        course, modules = await build_course(org_id, 3)
        enrollment = await enroll(course)

        with pytest.raises(PrerequisitesIncompleteError) as exc:
            await progress_service.start(org_id, enrollment.id, modules[2].id)
        assert isinstance(exc.value, BlockedError)
        assert exc.value.code == "blocked"
        assert exc.value.pending == 2
        assert progress_repo.records == {}

    @pytest.mark.asyncio
    async def test_in_progress_prerequisite_still_blocks(
        self, progress_service, build_course, enroll, org_id
    ):
        course, modules = await build_course(org_id, 2)
        enrollment = await enroll(course)
        await progress_service.start(org_id, enrollment.id, modules[0].id)

        with pytest.raises(PrerequisitesIncompleteError):
            await progress_service.start(org_id, enrollment.id, modules[1].id)

    @pytest.mark.asyncio
    async def test_unblocked_after_completion(
        self, progress_service, build_course, enroll, org_id
    ):
        course, modules = await build_course(org_id, 2)
        enrollment = await enroll(course)
        await progress_service.complete(org_id, enrollment.id, modules[0].id)

        progress = await progress_service.start(org_id, enrollment.id, modules[1].id)
        assert progress.status == "in_progress"

    @pytest.mark.asyncio
    async def test_restart_keeps_first_start(
        self, progress_service, build_course, enroll, org_id
    ):
        course, modules = await build_course(org_id, 1)
        enrollment = await enroll(course)

        first = await progress_service.start(org_id, enrollment.id, modules[0].id)
        again = await progress_service.start(org_id, enrollment.id, modules[0].id)
        assert again.started_at == first.started_at

    @pytest.mark.asyncio
    async def test_start_does_not_regress_completed(
        self, progress_service, build_course, enroll, org_id
    ):
        course, modules = await build_course(org_id, 1)
        enrollment = await enroll(course)
        await progress_service.complete(org_id, enrollment.id, modules[0].id)

        progress = await progress_service.start(org_id, enrollment.id, modules[0].id)
        assert progress.status == "completed"

    @pytest.mark.asyncio
    async def test_module_of_other_course(
        self, progress_service, build_course, enroll, org_id
    ):
        course, _ = await build_course(org_id, 1)
        _, (foreign,) = await build_course(org_id, 1)
        enrollment = await enroll(course)

        with pytest.raises(InvalidModuleError) as exc:
            await progress_service.start(org_id, enrollment.id, foreign.id)
        assert isinstance(exc.value, InvalidInputError)

    @pytest.mark.asyncio
    async def test_unknown_module(self, progress_service, build_course, enroll, org_id):
        course, _ = await build_course(org_id, 1)
        enrollment = await enroll(course)
        with pytest.raises(InvalidModuleError):
            await progress_service.start(org_id, enrollment.id, uuid4())

    @pytest.mark.asyncio
    async def test_enrollment_of_other_org(
        self, progress_service, build_course, enroll, org_id, other_org_id
    ):
        course, modules = await build_course(org_id, 1)
        enrollment = await enroll(course)
        with pytest.raises(EnrollmentNotFoundError):
            await progress_service.start(other_org_id, enrollment.id, modules[0].id)

    @pytest.mark.asyncio
    async def test_gating_ignores_position_gaps(
        self, progress_service, course_service, build_course, enroll, org_id
    ):
        course, (a, b, c) = await build_course(org_id, 3)
        await course_service.remove_module(org_id, b.id)
        enrollment = await enroll(course)

        await progress_service.complete(org_id, enrollment.id, a.id)
        progress = await progress_service.start(org_id, enrollment.id, c.id)
        assert progress.status == "in_progress"


class TestComplete:
    """Tests for completion and aggregation."""

    @pytest.mark.asyncio
    async def test_three_module_walkthrough(
        self, progress_service, build_course, enroll, org_id
    ):
        course, (m1, m2, m3) = await build_course(org_id, 3)
        enrollment = await enroll(course)

        _, enrollment = await progress_service.complete(org_id, enrollment.id, m1.id)
        assert enrollment.progress == pytest.approx(100 / 3)
        assert enrollment.status == "active"

        _, enrollment = await progress_service.complete(org_id, enrollment.id, m2.id)
        assert enrollment.progress == pytest.approx(200 / 3)

        _, enrollment = await progress_service.complete(org_id, enrollment.id, m3.id)
        assert enrollment.progress == 100.0
        assert enrollment.status == "completed"
        assert enrollment.completed_at is not None

    @pytest.mark.asyncio
    async def test_score_counts_attempts(
        self, progress_service, build_course, enroll, org_id
    ):
        course, (module,) = await build_course(org_id, 1)
        enrollment = await enroll(course)

        first, _ = await progress_service.complete(
            org_id, enrollment.id, module.id, score=60
        )
        assert first.score == 60
        assert first.attempts == 1

        retake, _ = await progress_service.complete(
            org_id, enrollment.id, module.id, score=90
        )
        assert retake.score == 90
        assert retake.attempts == 2
        assert retake.started_at == first.started_at

    @pytest.mark.asyncio
    async def test_completion_without_score(
        self, progress_service, build_course, enroll, org_id
    ):
        course, (module,) = await build_course(org_id, 1)
        enrollment = await enroll(course)

        progress, _ = await progress_service.complete(org_id, enrollment.id, module.id)
        assert progress.score is None
        assert progress.attempts == 0
        assert progress.completed_at is not None

    @pytest.mark.asyncio
    async def test_complete_is_gated(self, progress_service, build_course, enroll, org_id):
        course, (_, second) = await build_course(org_id, 2)
        enrollment = await enroll(course)
        with pytest.raises(PrerequisitesIncompleteError):
            await progress_service.complete(org_id, enrollment.id, second.id)

    @pytest.mark.asyncio
    async def test_removed_module_not_counted(
        self, progress_service, course_service, build_course, enroll, org_id
    ):
        course, (m1, m2) = await build_course(org_id, 2)
        enrollment = await enroll(course)
        await progress_service.complete(org_id, enrollment.id, m1.id)

        await course_service.remove_module(org_id, m1.id)
        _, enrollment = await progress_service.complete(org_id, enrollment.id, m2.id)
        assert enrollment.progress == 100.0
        assert enrollment.status == "completed"

    @pytest.mark.asyncio
    async def test_new_module_lowers_progress_on_next_recompute(
        self, progress_service, course_service, build_course, enroll, org_id
    ):
        course, (m1, m2) = await build_course(org_id, 2)
        enrollment = await enroll(course)
        await progress_service.complete(org_id, enrollment.id, m1.id)

        await course_service.add_module(
            org_id, course.id, CreateModuleRequest(title="Bonus", module_type="pdf")
        )
        _, enrollment = await progress_service.complete(org_id, enrollment.id, m2.id)
        assert enrollment.progress == pytest.approx(200 / 3)
        assert enrollment.status == "active"

    @pytest.mark.asyncio
    async def test_completion_moves_seat_nowhere(
        self,
        progress_service,
        enrollment_service,
        group_service,
        enrollment_repo,
        build_course,
        org_id,
        learner_id,
    ):
        course, (module,) = await build_course(org_id, 1)
        group = await group_service.create_group(
            org_id, CreateGroupRequest(name="G", capacity=1)
        )
        enrollment = await enrollment_service.enroll(
            org_id,
            EnrollRequest(course_id=course.id, user_id=learner_id, group_id=group.id),
        )

        _, enrollment = await progress_service.complete(org_id, enrollment.id, module.id)
        assert enrollment.status == "completed"
        assert enrollment_repo.seats(org_id, group.id) == 1

    @pytest.mark.asyncio
    async def test_waitlisted_completion_held_when_group_full(
        self,
        progress_service,
        enrollment_service,
        group_service,
        enrollment_repo,
        build_course,
        add_learner,
        org_id,
    ):
        course, (module,) = await build_course(org_id, 1)
        group = await group_service.create_group(
            org_id, CreateGroupRequest(name="G", capacity=1)
        )
        for _ in range(2):
            waitlisted = await enrollment_service.enroll(
                org_id,
                EnrollRequest(
                    course_id=course.id, user_id=add_learner(org_id), group_id=group.id
                ),
            )
        assert waitlisted.status == "waitlisted"

        _, enrollment = await progress_service.complete(
            org_id, waitlisted.id, module.id
        )
        assert enrollment.status == "waitlisted"
        assert enrollment.progress == 100.0
        assert enrollment.completed_at is None
        assert enrollment_repo.seats(org_id, group.id) == 1


class TestGetProgress:
    """Tests for the read-only projection."""

    @pytest.mark.asyncio
    async def test_untouched_modules_are_not_started(
        self, progress_service, progress_repo, build_course, enroll, org_id
    ):
        course, (m1, m2, m3) = await build_course(org_id, 3)
        enrollment = await enroll(course)
        await progress_service.complete(org_id, enrollment.id, m1.id, score=75)
        await progress_service.start(org_id, enrollment.id, m2.id)
        records_before = dict(progress_repo.records)

        states = await progress_service.get_progress(org_id, enrollment.id)

        assert [s.module.id for s in states] == [m1.id, m2.id, m3.id]
        assert [s.status for s in states] == ["completed", "in_progress", "not_started"]
        assert states[0].to_dict()["score"] == 75
        assert states[2].to_dict()["attempts"] == 0
        assert progress_repo.records.keys() == records_before.keys()

    @pytest.mark.asyncio
    async def test_follows_reorder(
        self, progress_service, course_service, build_course, enroll, org_id
    ):
        course, (m1, m2) = await build_course(org_id, 2)
        enrollment = await enroll(course)
        await course_service.reorder_modules(org_id, course.id, [m2.id, m1.id])

        states = await progress_service.get_progress(org_id, enrollment.id)
        assert [s.module.id for s in states] == [m2.id, m1.id]


class TestConcurrentWrites:
    """Revision-checked progress writes and enrollment updates under interleaving."""

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
    async def test_restart_never_rolls_back_completion(
        self, progress_service, progress_repo, build_course, enroll, org_id
    ):
        course, (module, _) = await build_course(org_id, 2)
        enrollment = await enroll(course)
        await progress_service.start(org_id, enrollment.id, module.id)
        self.interleave(progress_repo, "get_progress")

        await asyncio.gather(
            progress_service.complete(org_id, enrollment.id, module.id, score=90),
            progress_service.start(org_id, enrollment.id, module.id),
        )

        record = await progress_repo.get_progress(enrollment.id, module.id)
        assert record.status == "completed"
        assert record.score == 90
        assert record.attempts == 1
        assert record.revision == 3

    @pytest.mark.asyncio
    async def test_cancel_racing_completion_counts_seats_once(
        self,
        progress_service,
        enrollment_service,
        group_service,
        enrollment_repo,
        build_course,
        org_id,
        learner_id,
    ):
        course, (module,) = await build_course(org_id, 1)
        group = await group_service.create_group(
            org_id, CreateGroupRequest(name="G", capacity=2)
        )
        enrollment = await enrollment_service.enroll(
            org_id,
            EnrollRequest(course_id=course.id, user_id=learner_id, group_id=group.id),
        )
        self.interleave(enrollment_repo, "get_enrollment")

        await asyncio.gather(
            enrollment_service.cancel(org_id, enrollment.id),
            progress_service.complete(org_id, enrollment.id, module.id),
        )

        final = await enrollment_repo.get_enrollment(org_id, enrollment.id)
        assert final.progress == 100.0
        assert enrollment_repo.seats(org_id, group.id) == (
            1 if final.occupies_seat else 0
        )

    @pytest.mark.asyncio
    async def test_exhausted_progress_write(
        self, progress_service, progress_repo, build_course, enroll, org_id
    ):
        course, (module,) = await build_course(org_id, 1)
        enrollment = await enroll(course)
        await progress_service.start(org_id, enrollment.id, module.id)
        progress_repo.save_progress = AsyncMock(return_value=False)

        with pytest.raises(ContentionError) as exc:
            await progress_service.complete(org_id, enrollment.id, module.id)

        assert exc.value.attempts == progress_service.max_attempts
        assert progress_repo.save_progress.await_count == progress_service.max_attempts
        record = await progress_repo.get_progress(enrollment.id, module.id)
        assert record.status == "in_progress"

    @pytest.mark.asyncio
    async def test_module_removed_mid_write(
        self, progress_service, progress_repo, build_course, enroll, org_id
    ):
        course, (module,) = await build_course(org_id, 1)
        enrollment = await enroll(course)
        await progress_service.start(org_id, enrollment.id, module.id)

        async def removed_underneath(progress, expected_revision):
            await progress_repo.delete_for_module(progress.module_id)
            return False

        progress_repo.save_progress = removed_underneath

        with pytest.raises(InvalidModuleError):
            await progress_service.complete(org_id, enrollment.id, module.id)
