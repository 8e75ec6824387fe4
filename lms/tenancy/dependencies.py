"""FastAPI dependencies for tenant scoping.

Every ``/v1`` route resolves the acting organization from the tenant header;
the value is then passed explicitly to the services.
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status

from lms.config import get_settings
from lms.core.context import set_organization_id


async def get_organization_id(request: Request) -> UUID:
    """Resolve the organization id from the tenant header.

    Raises:
        HTTPException 400: If the header is missing or not a UUID
    """
    header = get_settings().tenant_header
    raw = request.headers.get(header)
    if not raw:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing {header} header",
        )
    try:
        organization_id = UUID(raw)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header} header",
        ) from e

    set_organization_id(organization_id)
    return organization_id


OrganizationId = Annotated[UUID, Depends(get_organization_id)]
