"""CRUD operations for cloud subscriptions."""

import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.cloud_subscription import CloudSubscription


async def upsert_subscription(
    db: AsyncSession,
    organization_id: uuid.UUID,
    subscription_id: str,
    name: str,
    provider: str = "azure",
) -> CloudSubscription:
    """
    Create or update a subscription keyed by its provider id.

    Args:
        db: Database session
        organization_id: Owning organization
        subscription_id: Provider subscription id
        name: Display name
        provider: Cloud provider

    Returns:
        Stored subscription
    """
    result = await db.execute(
        select(CloudSubscription).where(CloudSubscription.subscription_id == subscription_id)
    )
    subscription = result.scalar_one_or_none()

    if subscription:
        subscription.organization_id = organization_id
        subscription.name = name
        subscription.provider = provider
    else:
        subscription = CloudSubscription(
            organization_id=organization_id,
            subscription_id=subscription_id,
            name=name,
            provider=provider,
        )
        db.add(subscription)

    await db.commit()
    return subscription


async def get_subscriptions(db: AsyncSession, organization_id: uuid.UUID) -> list[CloudSubscription]:
    result = await db.execute(
        select(CloudSubscription)
        .where(CloudSubscription.organization_id == organization_id)
        .order_by(CloudSubscription.subscription_id)
    )
    return list(result.scalars().all())


async def get_first_subscription(
    db: AsyncSession, organization_id: uuid.UUID, provider: str = "azure"
) -> CloudSubscription | None:
    result = await db.execute(
        select(CloudSubscription)
        .where(
            CloudSubscription.organization_id == organization_id,
            CloudSubscription.provider == provider,
        )
        .order_by(CloudSubscription.created_at)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def delete_subscriptions_not_in(
    db: AsyncSession, organization_id: uuid.UUID, keep_ids: set[str]
) -> int:
    """
    Delete an organization's subscriptions whose id is not in keep_ids.

    Returns:
        Number of subscriptions deleted
    """
    statement = delete(CloudSubscription).where(CloudSubscription.organization_id == organization_id)
    if keep_ids:
        statement = statement.where(CloudSubscription.subscription_id.not_in(keep_ids))

    result = await db.execute(statement)
    await db.commit()
    return result.rowcount or 0
