"""Cassandra access for module progress records.

Creation and updates are conditional; only deletes write unconditionally.
"""

from typing import TYPE_CHECKING
from uuid import UUID

from lms.progress.models import ModuleProgress


if TYPE_CHECKING:
    from cassandra.cluster import Session


class ProgressRepository:
    """Prepared statements and row mapping for module progress."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._create_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.module_progress
            (enrollment_id, module_id, status, score, attempts, started_at,
             completed_at, created_at, updated_at, revision)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_progress = self.session.prepare(f"""
            UPDATE {self.keyspace}.module_progress
            SET status = ?, score = ?, attempts = ?, started_at = ?,
                completed_at = ?, updated_at = ?, revision = ?
            WHERE enrollment_id = ? AND module_id = ?
            IF revision = ?
        """)

        self._get_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.module_progress
            WHERE enrollment_id = ? AND module_id = ?
        """)

        self._list_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.module_progress
            WHERE enrollment_id = ?
        """)

        self._delete_progress = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.module_progress
            WHERE enrollment_id = ? AND module_id = ?
        """)

        self._insert_by_module = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.module_progress_by_module
            (module_id, enrollment_id)
            VALUES (?, ?)
        """)

        self._list_by_module = self.session.prepare(f"""
            SELECT enrollment_id FROM {self.keyspace}.module_progress_by_module
            WHERE module_id = ?
        """)

        self._delete_by_module = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.module_progress_by_module
            WHERE module_id = ? AND enrollment_id = ?
        """)

    async def create_progress(self, progress: ModuleProgress) -> bool:
        """Insert a new record. False if one already exists for the pair.

        The lookup row is written first so a record is never unreachable from
        its module.
        """
        await self.session.aexecute(
            self._insert_by_module, [progress.module_id, progress.enrollment_id]
        )
        result = await self.session.aexecute(
            self._create_progress,
            [
                progress.enrollment_id,
                progress.module_id,
                progress.status,
                progress.score,
                progress.attempts,
                progress.started_at,
                progress.completed_at,
                progress.created_at,
                progress.updated_at,
                progress.revision,
            ],
        )
        return result.was_applied

    async def save_progress(
        self, progress: ModuleProgress, expected_revision: int
    ) -> bool:
        """Write the record if it is still at ``expected_revision``.

        False when another writer got there first or the record is gone.
        """
        result = await self.session.aexecute(
            self._update_progress,
            [
                progress.status,
                progress.score,
                progress.attempts,
                progress.started_at,
                progress.completed_at,
                progress.updated_at,
                progress.revision,
                progress.enrollment_id,
                progress.module_id,
                expected_revision,
            ],
        )
        return result.was_applied

    async def get_progress(
        self, enrollment_id: UUID, module_id: UUID
    ) -> ModuleProgress | None:
        result = await self.session.aexecute(
            self._get_progress, [enrollment_id, module_id]
        )
        row = result.one()
        return ModuleProgress.from_row(row) if row else None

    async def list_progress(self, enrollment_id: UUID) -> list[ModuleProgress]:
        rows = await self.session.aexecute(self._list_progress, [enrollment_id])
        return [ModuleProgress.from_row(row) for row in rows]

    async def delete_for_module(self, module_id: UUID) -> int:
        """Delete every progress record of a module. Returns the count."""
        rows = await self.session.aexecute(self._list_by_module, [module_id])
        enrollment_ids = [row.enrollment_id for row in rows]
        for enrollment_id in enrollment_ids:
            await self.session.aexecute(
                self._delete_progress, [enrollment_id, module_id]
            )
            await self.session.aexecute(
                self._delete_by_module, [module_id, enrollment_id]
            )
        return len(enrollment_ids)

    async def delete_for_enrollment(self, enrollment_id: UUID) -> int:
        """Delete every progress record of an enrollment. Returns the count."""
        records = await self.list_progress(enrollment_id)
        for record in records:
            await self.session.aexecute(
                self._delete_progress, [enrollment_id, record.module_id]
            )
            await self.session.aexecute(
                self._delete_by_module, [record.module_id, enrollment_id]
            )
        return len(records)
