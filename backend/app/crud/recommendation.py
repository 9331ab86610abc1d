"""CRUD operations for recommendations."""

import uuid
from typing import Any

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.cloud_resource import CloudResource
from app.models.recommendation import Recommendation, RecommendationStatus


async def get_recommendation(
    db: AsyncSession, organization_id: uuid.UUID, recommendation_id: uuid.UUID
) -> Recommendation | None:
    """
    Get a recommendation by ID, scoped to its organization.

    Args:
        db: Database session
        organization_id: Organization UUID
        recommendation_id: Recommendation UUID

    Returns:
        Recommendation or None if not found
    """
    result = await db.execute(
        select(Recommendation).where(
            Recommendation.id == recommendation_id,
            Recommendation.organization_id == organization_id,
        )
    )
    return result.scalar_one_or_none()


async def find_recommendation(
    db: AsyncSession, organization_id: uuid.UUID, rule_id: str, resource_id: str
) -> Recommendation | None:
    """Look up a recommendation by its (organization, rule, resource) key."""
    result = await db.execute(
        select(Recommendation).where(
            Recommendation.organization_id == organization_id,
            Recommendation.rule_id == rule_id,
            Recommendation.resource_id == resource_id,
        )
    )
    return result.scalar_one_or_none()


async def create_recommendation(
    db: AsyncSession,
    organization_id: uuid.UUID,
    rule_id: str,
    resource_id: str,
    subscription_id: str | None,
    title: str,
    description: str,
    impact_monthly: float,
    confidence: float,
    details: dict[str, Any],
) -> Recommendation:
    """Create a recommendation in the open state."""
    recommendation = Recommendation(
        organization_id=organization_id,
        rule_id=rule_id,
        resource_id=resource_id,
        subscription_id=subscription_id,
        title=title,
        description=description,
        impact_monthly=impact_monthly,
        confidence=confidence,
        details=dict(details),
        status=RecommendationStatus.OPEN.value,
    )
    db.add(recommendation)
    await db.commit()
    return recommendation


async def update_recommendation_content(
    db: AsyncSession,
    recommendation: Recommendation,
    title: str,
    description: str,
    impact_monthly: float,
    confidence: float,
    details: dict[str, Any],
    subscription_id: str | None = None,
) -> Recommendation:
    """
    Overwrite the descriptive fields of a recommendation.

    Status is never touched here. subscription_id only fills an empty value.
    """
    recommendation.title = title
    recommendation.description = description
    recommendation.impact_monthly = impact_monthly
    recommendation.confidence = confidence
    recommendation.details = dict(details)
    if subscription_id:
        recommendation.subscription_id = subscription_id

    await db.commit()
    return recommendation


async def list_recommendations(
    db: AsyncSession,
    organization_id: uuid.UUID,
    status: str | None = None,
    rule_id: str | None = None,
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[tuple[Recommendation, CloudResource | None]], int]:
    """
    List recommendations newest first, each joined with its resource.

    Args:
        db: Database session
        organization_id: Organization UUID
        status: Optional status filter
        rule_id: Optional rule filter
        offset: Rows to skip
        limit: Maximum rows to return

    Returns:
        Tuple of ((recommendation, resource) rows, total matching count)
    """
    filters = [Recommendation.organization_id == organization_id]
    if status:
        filters.append(Recommendation.status == status)
    if rule_id:
        filters.append(Recommendation.rule_id == rule_id)

    total = await db.scalar(select(func.count(Recommendation.id)).where(*filters))

    result = await db.execute(
        select(Recommendation, CloudResource)
        .outerjoin(
            CloudResource,
            and_(
                CloudResource.resource_id == Recommendation.resource_id,
                CloudResource.organization_id == Recommendation.organization_id,
            ),
        )
        .where(*filters)
        .order_by(Recommendation.created_at.desc(), Recommendation.id)
        .offset(offset)
        .limit(limit)
    )
    return [(row[0], row[1]) for row in result.all()], total or 0
