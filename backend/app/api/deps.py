"""API dependencies."""

import uuid
from typing import Annotated

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.crud import organization as organization_crud
from app.models.organization import Organization


async def get_organization_or_404(
    organization_id: uuid.UUID, db: Annotated[AsyncSession, Depends(get_db)]
) -> Organization:
    """
    Resolve an organization id to the organization.

    Raises:
        HTTPException: 404 if the organization does not exist
    """
    organization = await organization_crud.get_organization(db, organization_id)
    if not organization:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Organization {organization_id} not found",
        )
    return organization


__all__ = ["get_db", "get_organization_or_404"]
