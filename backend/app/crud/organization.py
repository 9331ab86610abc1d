"""CRUD operations for organizations."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.organization import Organization


async def create_organization(db: AsyncSession, name: str, slug: str) -> Organization:
    """
    Create an organization.

    Args:
        db: Database session
        name: Display name
        slug: Unique URL-safe identifier

    Returns:
        Created organization
    """
    organization = Organization(name=name, slug=slug)
    db.add(organization)
    await db.commit()
    await db.refresh(organization)
    return organization


async def get_organization(db: AsyncSession, org_id: uuid.UUID) -> Organization | None:
    result = await db.execute(select(Organization).where(Organization.id == org_id))
    return result.scalar_one_or_none()
