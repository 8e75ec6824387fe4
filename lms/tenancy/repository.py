"""Cassandra access for organizations and memberships."""

from typing import TYPE_CHECKING
from uuid import UUID

from lms.tenancy.models import Organization, OrganizationMember


if TYPE_CHECKING:
    from cassandra.cluster import Session


class TenancyRepository:
    """Read-only queries over the tenancy tables."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_organization = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.organizations WHERE id = ?
        """)

        self._get_member = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.organization_members
            WHERE organization_id = ? AND user_id = ?
        """)

    async def get_organization(self, organization_id: UUID) -> Organization | None:
        result = await self.session.aexecute(
            self._get_organization, [organization_id]
        )
        row = result.one()
        return Organization.from_row(row) if row else None

    async def get_member(
        self, organization_id: UUID, user_id: UUID
    ) -> OrganizationMember | None:
        result = await self.session.aexecute(
            self._get_member, [organization_id, user_id]
        )
        row = result.one()
        return OrganizationMember.from_row(row) if row else None
