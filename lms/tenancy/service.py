"""Identity resolution consumed by the catalog and the enrollment registry."""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog


if TYPE_CHECKING:
    from lms.tenancy.repository import TenancyRepository

logger = structlog.get_logger(__name__)


class TenantDirectory:
    """Answers existence and membership questions for a tenant."""

    def __init__(self, repository: "TenancyRepository"):
        self.repository = repository

    async def organization_exists(self, organization_id: UUID) -> bool:
        return await self.repository.get_organization(organization_id) is not None

    async def is_member(self, organization_id: UUID, user_id: UUID) -> bool:
        """Check that the user exists and belongs to the organization."""
        member = await self.repository.get_member(organization_id, user_id)
        if member is None:
            logger.debug(
                "membership_not_found",
                organization_id=str(organization_id),
                user_id=str(user_id),
            )
            return False
        return True
