"""Database models for organizations and their members.

Only the read side lives here: accounts are provisioned by the identity
system, which writes these tables.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from lms.core.clock import ensure_utc_aware


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

ORGANIZATIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.organizations (
    id UUID PRIMARY KEY,
    name TEXT,
    created_at TIMESTAMP
)
"""

ORGANIZATION_MEMBERS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.organization_members (
    organization_id UUID,
    user_id UUID,
    role TEXT,
    joined_at TIMESTAMP,
    PRIMARY KEY (organization_id, user_id)
)
"""

TENANCY_TABLES_CQL = [
    ORGANIZATIONS_TABLE_CQL,
    ORGANIZATION_MEMBERS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Organization:
    """Tenant owning courses, groups and enrollments."""

    def __init__(
        self,
        id: UUID,
        name: str = "",
        created_at: datetime | None = None,
    ):
        self.id = id
        self.name = name
        self.created_at = ensure_utc_aware(created_at)

    @classmethod
    def from_row(cls, row: Any) -> "Organization":
        """Create Organization instance from Cassandra row."""
        return cls(id=row.id, name=row.name, created_at=row.created_at)

    def __repr__(self) -> str:
        return f"<Organization {self.name} ({self.id})>"


class OrganizationMember:
    """A user belonging to an organization."""

    def __init__(
        self,
        organization_id: UUID,
        user_id: UUID,
        role: str | None = None,
        joined_at: datetime | None = None,
    ):
        self.organization_id = organization_id
        self.user_id = user_id
        self.role = role
        self.joined_at = ensure_utc_aware(joined_at)

    @classmethod
    def from_row(cls, row: Any) -> "OrganizationMember":
        """Create OrganizationMember instance from Cassandra row."""
        return cls(
            organization_id=row.organization_id,
            user_id=row.user_id,
            role=row.role,
            joined_at=row.joined_at,
        )

    def __repr__(self) -> str:
        return f"<OrganizationMember {self.user_id} in {self.organization_id}>"
