"""Enrollment progress aggregation.

The percentage is always recomputed from the module progress records of the
course's current modules, never patched incrementally. Records left behind by
a removed module are ignored.
"""

from typing import TYPE_CHECKING

import structlog


if TYPE_CHECKING:
    from lms.courses.repository import CourseRepository
    from lms.enrollments.models import Enrollment
    from lms.enrollments.service import EnrollmentService
    from lms.progress.repository import ProgressRepository

logger = structlog.get_logger(__name__)


class ProgressAggregator:
    """Derives the enrollment's progress and completion from module records."""

    def __init__(
        self,
        courses: "CourseRepository",
        progress: "ProgressRepository",
        enrollments: "EnrollmentService",
    ):
        self.courses = courses
        self.progress = progress
        self.enrollments = enrollments

    async def recompute(self, enrollment: "Enrollment") -> "Enrollment":
        """Write ``100 * completed / total`` to the enrollment.

        A course without modules leaves the enrollment untouched. When every
        module is completed the enrollment becomes ``completed``.
        """
        modules = await self.courses.list_modules(enrollment.course_id)
        total = len(modules)
        if total == 0:
            return enrollment

        module_ids = {m.id for m in modules}
        records = await self.progress.list_progress(enrollment.id)
        completed = sum(
            1 for r in records if r.is_completed and r.module_id in module_ids
        )

        percent = completed / total * 100
        all_done = completed == total
        enrollment = await self.enrollments.apply_aggregate(
            enrollment, percent, all_done
        )

        logger.info(
            "enrollment_progress_recomputed",
            enrollment_id=str(enrollment.id),
            completed=completed,
            total=total,
            progress=round(percent, 2),
        )
        if all_done and enrollment.is_completed:
            logger.info("enrollment_completed", enrollment_id=str(enrollment.id))
        return enrollment
