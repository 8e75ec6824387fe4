"""Cassandra access for enrollments and groups.

Uniqueness of (organization, course, learner), the group seat counter and
enrollment updates (compared on ``revision``) all go through lightweight
transactions; the results expose ``was_applied``. Apart from deletes, every
write to ``enrollments`` and to ``groups.seats_taken`` is conditional, so Paxos
and plain writes never interleave on those cells.
"""

from typing import TYPE_CHECKING
from uuid import UUID

from lms.enrollments.models import Enrollment, Group
from lms.utils import dump_json


if TYPE_CHECKING:
    from cassandra.cluster import Session


class EnrollmentRepository:
    """Prepared statements and row mapping for enrollments and groups."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Enrollments
        self._insert_enrollment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments
            (organization_id, id, course_id, user_id, group_id, status, progress,
             started_at, completed_at, metadata, created_at, updated_at, revision)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_enrollment = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET group_id = ?, status = ?, progress = ?, started_at = ?,
                completed_at = ?, metadata = ?, updated_at = ?, revision = ?
            WHERE organization_id = ? AND id = ?
            IF revision = ?
        """)

        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
            WHERE organization_id = ? AND id = ?
        """)

        self._list_enrollments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments WHERE organization_id = ?
        """)

        self._delete_enrollment = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrollments
            WHERE organization_id = ? AND id = ?
        """)

        # Enrollment keys
        self._claim_key = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollment_keys
            (organization_id, course_id, user_id, enrollment_id)
            VALUES (?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._release_key = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrollment_keys
            WHERE organization_id = ? AND course_id = ? AND user_id = ?
        """)

        # Groups
        self._insert_group = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.groups
            (organization_id, id, course_id, name, description, capacity,
             seats_taken, metadata, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._update_group = self.session.prepare(f"""
            UPDATE {self.keyspace}.groups
            SET course_id = ?, name = ?, description = ?, capacity = ?,
                metadata = ?, updated_at = ?
            WHERE organization_id = ? AND id = ?
        """)

        self._get_group = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.groups
            WHERE organization_id = ? AND id = ?
        """)

        self._list_groups = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.groups WHERE organization_id = ?
        """)

        self._delete_group = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.groups
            WHERE organization_id = ? AND id = ?
        """)

        self._cas_seats = self.session.prepare(f"""
            UPDATE {self.keyspace}.groups
            SET seats_taken = ?
            WHERE organization_id = ? AND id = ?
            IF seats_taken = ?
        """)

    # ==========================================================================
    # Enrollments
    # ==========================================================================

    async def claim_key(self, enrollment: Enrollment) -> bool:
        """Claim the (organization, course, learner) slot. False if held."""
        result = await self.session.aexecute(
            self._claim_key,
            [
                enrollment.organization_id,
                enrollment.course_id,
                enrollment.user_id,
                enrollment.id,
            ],
        )
        return result.was_applied

    async def release_key(self, enrollment: Enrollment) -> None:
        await self.session.aexecute(
            self._release_key,
            [enrollment.organization_id, enrollment.course_id, enrollment.user_id],
        )

    async def insert_enrollment(self, enrollment: Enrollment) -> None:
        """Insert a new enrollment row at its starting revision."""
        await self.session.aexecute(
            self._insert_enrollment,
            [
                enrollment.organization_id,
                enrollment.id,
                enrollment.course_id,
                enrollment.user_id,
                enrollment.group_id,
                enrollment.status,
                enrollment.progress,
                enrollment.started_at,
                enrollment.completed_at,
                dump_json(enrollment.metadata),
                enrollment.created_at,
                enrollment.updated_at,
                enrollment.revision,
            ],
        )

    async def update_enrollment(
        self, enrollment: Enrollment, expected_revision: int
    ) -> bool:
        """Write the mutable columns if the row is still at ``expected_revision``.

        ``enrollment.revision`` must already hold the new revision. False when
        another writer got there first or the row is gone.
        """
        result = await self.session.aexecute(
            self._update_enrollment,
            [
                enrollment.group_id,
                enrollment.status,
                enrollment.progress,
                enrollment.started_at,
                enrollment.completed_at,
                dump_json(enrollment.metadata),
                enrollment.updated_at,
                enrollment.revision,
                enrollment.organization_id,
                enrollment.id,
                expected_revision,
            ],
        )
        return result.was_applied

    async def get_enrollment(
        self, organization_id: UUID, enrollment_id: UUID
    ) -> Enrollment | None:
        result = await self.session.aexecute(
            self._get_enrollment, [organization_id, enrollment_id]
        )
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def list_enrollments(self, organization_id: UUID) -> list[Enrollment]:
        rows = await self.session.aexecute(self._list_enrollments, [organization_id])
        enrollments = [Enrollment.from_row(row) for row in rows]
        return sorted(enrollments, key=lambda e: e.created_at)

    async def delete_enrollment(self, enrollment: Enrollment) -> None:
        """Delete the enrollment row and free its uniqueness slot."""
        await self.session.aexecute(
            self._delete_enrollment, [enrollment.organization_id, enrollment.id]
        )
        await self.release_key(enrollment)

    # ==========================================================================
    # Groups
    # ==========================================================================

    async def insert_group(self, group: Group) -> None:
        await self.session.aexecute(
            self._insert_group,
            [
                group.organization_id,
                group.id,
                group.course_id,
                group.name,
                group.description,
                group.capacity,
                group.seats_taken,
                dump_json(group.metadata),
                group.created_at,
                group.updated_at,
            ],
        )

    async def update_group(self, group: Group) -> None:
        """Write every group column except the seat counter."""
        await self.session.aexecute(
            self._update_group,
            [
                group.course_id,
                group.name,
                group.description,
                group.capacity,
                dump_json(group.metadata),
                group.updated_at,
                group.organization_id,
                group.id,
            ],
        )

    async def get_group(self, organization_id: UUID, group_id: UUID) -> Group | None:
        result = await self.session.aexecute(
            self._get_group, [organization_id, group_id]
        )
        row = result.one()
        return Group.from_row(row) if row else None

    async def list_groups(self, organization_id: UUID) -> list[Group]:
        rows = await self.session.aexecute(self._list_groups, [organization_id])
        groups = [Group.from_row(row) for row in rows]
        return sorted(groups, key=lambda g: g.created_at)

    async def delete_group(self, organization_id: UUID, group_id: UUID) -> None:
        await self.session.aexecute(self._delete_group, [organization_id, group_id])

    async def compare_and_set_seats(
        self, organization_id: UUID, group_id: UUID, expected: int, new: int
    ) -> bool:
        """Set ``seats_taken`` to ``new`` only if it still equals ``expected``."""
        result = await self.session.aexecute(
            self._cas_seats, [new, organization_id, group_id, expected]
        )
        return result.was_applied
