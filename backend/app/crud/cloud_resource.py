"""CRUD operations for cloud resources."""

import uuid
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.cloud_resource import CloudResource


async def get_resources(db: AsyncSession, organization_id: uuid.UUID) -> list[CloudResource]:
    result = await db.execute(
        select(CloudResource)
        .where(CloudResource.organization_id == organization_id)
        .order_by(CloudResource.resource_id)
    )
    return list(result.scalars().all())


async def get_resources_by_type(
    db: AsyncSession, organization_id: uuid.UUID, resource_type: str
) -> list[CloudResource]:
    """
    Get an organization's resources of one ARM type.

    Resource Graph reports types in lower case, so the match is case-insensitive.

    Args:
        db: Database session
        organization_id: Organization UUID
        resource_type: ARM type, e.g. 'Microsoft.Compute/virtualMachines'

    Returns:
        Matching resources ordered by resource id
    """
    result = await db.execute(
        select(CloudResource)
        .where(
            CloudResource.organization_id == organization_id,
            func.lower(CloudResource.type) == resource_type.lower(),
        )
        .order_by(CloudResource.resource_id)
    )
    return list(result.scalars().all())


async def get_resource_by_resource_id(db: AsyncSession, resource_id: str) -> CloudResource | None:
    result = await db.execute(select(CloudResource).where(CloudResource.resource_id == resource_id))
    return result.scalar_one_or_none()


async def upsert_resource(
    db: AsyncSession,
    organization_id: uuid.UUID,
    subscription_id: str,
    resource_id: str,
    name: str,
    resource_type: str,
    resource_group: str | None = None,
    location: str | None = None,
    tags: dict[str, Any] | None = None,
) -> CloudResource:
    """
    Create or refresh a resource keyed by its ARM id.

    Metrics, cost and mapping tags written by later steps are preserved: provider
    tags are merged over the stored ones.

    Returns:
        Stored resource
    """
    resource = await get_resource_by_resource_id(db, resource_id)

    if resource:
        resource.organization_id = organization_id
        resource.subscription_id = subscription_id
        resource.name = name
        resource.type = resource_type
        resource.resource_group = resource_group
        resource.location = location
        resource.tags = {**(resource.tags or {}), **(tags or {})}
    else:
        resource = CloudResource(
            organization_id=organization_id,
            subscription_id=subscription_id,
            resource_id=resource_id,
            name=name,
            type=resource_type,
            resource_group=resource_group,
            location=location,
            tags=dict(tags or {}),
            metrics={},
        )
        db.add(resource)

    await db.commit()
    return resource


async def update_resource(
    db: AsyncSession,
    resource: CloudResource,
    tags: dict[str, Any] | None = None,
    metrics: dict[str, Any] | None = None,
    cost_monthly: float | None = None,
) -> CloudResource:
    """
    Update mutable resource fields. Only the arguments given are written.

    JSON columns are replaced with new dicts so the change is tracked.
    """
    if tags is not None:
        resource.tags = dict(tags)
    if metrics is not None:
        resource.metrics = dict(metrics)
    if cost_monthly is not None:
        resource.cost_monthly = cost_monthly

    await db.commit()
    return resource


async def delete_resources_not_in(
    db: AsyncSession, organization_id: uuid.UUID, keep_resource_ids: set[str]
) -> int:
    """
    Delete an organization's resources no longer reported by the provider.

    Returns:
        Number of resources deleted
    """
    result = await db.execute(
        delete(CloudResource).where(
            CloudResource.organization_id == organization_id,
            CloudResource.resource_id.not_in(keep_resource_ids),
        )
    )
    await db.commit()
    return result.rowcount or 0
