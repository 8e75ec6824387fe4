"""Cassandra access for courses and modules.

Slug uniqueness is claimed with ``INSERT ... IF NOT EXISTS`` so that two
concurrent creations cannot both win. Edits after creation are targeted
updates of the columns they own, so a title edit and a publish or a reorder
running at the same time do not overwrite each other. Detail and status
edits carry ``IF EXISTS`` so an edit racing a delete does not resurrect a partial row.
"""

from typing import TYPE_CHECKING
from uuid import UUID

from lms.courses.models import Course, Module
from lms.utils import dump_json


if TYPE_CHECKING:
    from cassandra.cluster import Session


class CourseRepository:
    """Prepared statements and row mapping for the catalog tables."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Courses
        self._insert_course = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.courses
            (organization_id, id, title, slug, description, status, version,
             metadata, published_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._update_course_details = self.session.prepare(f"""
            UPDATE {self.keyspace}.courses
            SET title = ?, description = ?, metadata = ?, updated_at = ?
            WHERE organization_id = ? AND id = ?
            IF EXISTS
        """)

        self._update_course_status = self.session.prepare(f"""
            UPDATE {self.keyspace}.courses
            SET status = ?, published_at = ?, updated_at = ?
            WHERE organization_id = ? AND id = ?
            IF EXISTS
        """)

        self._get_course = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.courses
            WHERE organization_id = ? AND id = ?
        """)

        self._list_courses = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.courses WHERE organization_id = ?
        """)

        self._delete_course = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.courses
            WHERE organization_id = ? AND id = ?
        """)

        # Slugs
        self._claim_slug = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_slugs
            (organization_id, slug, course_id)
            VALUES (?, ?, ?)
            IF NOT EXISTS
        """)

        self._release_slug = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.course_slugs
            WHERE organization_id = ? AND slug = ?
        """)

        # Modules
        self._insert_module = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.modules
            (course_id, id, organization_id, title, module_type, position,
             duration_seconds, status, content_id, data, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._insert_module_by_id = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.modules_by_id
            (id, course_id, organization_id)
            VALUES (?, ?, ?)
        """)

        self._get_module_ref = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.modules_by_id WHERE id = ?
        """)

        self._get_module = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.modules
            WHERE course_id = ? AND id = ?
        """)

        self._list_modules = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.modules WHERE course_id = ?
        """)

        self._update_module_details = self.session.prepare(f"""
            UPDATE {self.keyspace}.modules
            SET title = ?, module_type = ?, duration_seconds = ?, status = ?,
                content_id = ?, data = ?, updated_at = ?
            WHERE course_id = ? AND id = ?
            IF EXISTS
        """)

        self._update_module_position = self.session.prepare(f"""
            UPDATE {self.keyspace}.modules
            SET position = ?, updated_at = ?
            WHERE course_id = ? AND id = ?
        """)

        self._delete_module = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.modules
            WHERE course_id = ? AND id = ?
        """)

        self._delete_module_by_id = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.modules_by_id WHERE id = ?
        """)

    # ==========================================================================
    # Courses
    # ==========================================================================

    async def claim_slug(
        self, organization_id: UUID, slug: str, course_id: UUID
    ) -> bool:
        """Reserve a slug inside the organization. False if already taken."""
        result = await self.session.aexecute(
            self._claim_slug, [organization_id, slug, course_id]
        )
        return result.was_applied

    async def release_slug(self, organization_id: UUID, slug: str) -> None:
        await self.session.aexecute(self._release_slug, [organization_id, slug])

    async def save_course(self, course: Course) -> None:
        """Insert a new course row."""
        await self.session.aexecute(
            self._insert_course,
            [
                course.organization_id,
                course.id,
                course.title,
                course.slug,
                course.description,
                course.status,
                course.version,
                dump_json(course.metadata),
                course.published_at,
                course.created_at,
                course.updated_at,
            ],
        )

    async def update_course_details(self, course: Course) -> bool:
        """Write the editable fields only. False if the course is gone."""
        result = await self.session.aexecute(
            self._update_course_details,
            [
                course.title,
                course.description,
                dump_json(course.metadata),
                course.updated_at,
                course.organization_id,
                course.id,
            ],
        )
        return result.was_applied

    async def update_course_status(self, course: Course) -> bool:
        """Write the lifecycle fields only. False if the course is gone."""
        result = await self.session.aexecute(
            self._update_course_status,
            [
                course.status,
                course.published_at,
                course.updated_at,
                course.organization_id,
                course.id,
            ],
        )
        return result.was_applied

    async def get_course(self, organization_id: UUID, course_id: UUID) -> Course | None:
        result = await self.session.aexecute(
            self._get_course, [organization_id, course_id]
        )
        row = result.one()
        return Course.from_row(row) if row else None

    async def list_courses(self, organization_id: UUID) -> list[Course]:
        rows = await self.session.aexecute(self._list_courses, [organization_id])
        courses = [Course.from_row(row) for row in rows]
        return sorted(courses, key=lambda c: c.created_at)

    async def delete_course(self, organization_id: UUID, course_id: UUID) -> None:
        await self.session.aexecute(self._delete_course, [organization_id, course_id])

    # ==========================================================================
    # Modules
    # ==========================================================================

    async def save_module(self, module: Module) -> None:
        """Insert a new module and its id lookup (dual write)."""
        await self.session.aexecute(
            self._insert_module,
            [
                module.course_id,
                module.id,
                module.organization_id,
                module.title,
                module.module_type,
                module.position,
                module.duration_seconds,
                module.status,
                module.content_id,
                dump_json(module.data),
                module.created_at,
                module.updated_at,
            ],
        )
        await self.session.aexecute(
            self._insert_module_by_id,
            [module.id, module.course_id, module.organization_id],
        )

    async def get_module(self, module_id: UUID) -> Module | None:
        """Resolve a module by id alone; callers check its organization."""
        result = await self.session.aexecute(self._get_module_ref, [module_id])
        ref = result.one()
        if not ref:
            return None
        result = await self.session.aexecute(
            self._get_module, [ref.course_id, module_id]
        )
        row = result.one()
        return Module.from_row(row) if row else None

    async def list_modules(self, course_id: UUID) -> list[Module]:
        """All modules of a course in position order."""
        rows = await self.session.aexecute(self._list_modules, [course_id])
        modules = [Module.from_row(row) for row in rows]
        return sorted(modules, key=lambda m: m.position)

    async def update_module_details(self, module: Module) -> bool:
        """Write everything but the position. False if the module is gone."""
        result = await self.session.aexecute(
            self._update_module_details,
            [
                module.title,
                module.module_type,
                module.duration_seconds,
                module.status,
                module.content_id,
                dump_json(module.data),
                module.updated_at,
                module.course_id,
                module.id,
            ],
        )
        return result.was_applied

    async def update_module_position(self, module: Module) -> None:
        await self.session.aexecute(
            self._update_module_position,
            [module.position, module.updated_at, module.course_id, module.id],
        )

    async def delete_module(self, module: Module) -> None:
        await self.session.aexecute(self._delete_module, [module.course_id, module.id])
        await self.session.aexecute(self._delete_module_by_id, [module.id])
