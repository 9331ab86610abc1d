"""Read side of recommendations."""

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.crud import recommendation as recommendation_crud
from app.schemas.recommendation import (
    RecommendationListResponse,
    RecommendationResponse,
    ResourceSummary,
)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


async def list_recommendations(
    db: AsyncSession,
    org_id: uuid.UUID,
    status: str | None = None,
    rule_id: str | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> RecommendationListResponse:
    """
    One page of an organization's recommendations, newest first.

    Args:
        db: Database session
        org_id: Organization UUID
        status: Optional status filter
        rule_id: Optional rule filter
        page: 1-based page number (values below 1 mean 1)
        page_size: Items per page, clamped to 1..100

    Returns:
        Items joined with their resource, plus the total matching count
    """
    page = max(1, page)
    page_size = min(max(1, page_size), MAX_PAGE_SIZE)

    rows, total = await recommendation_crud.list_recommendations(
        db,
        org_id,
        status=status,
        rule_id=rule_id,
        offset=(page - 1) * page_size,
        limit=page_size,
    )

    items = []
    for recommendation, resource in rows:
        item = RecommendationResponse.model_validate(recommendation)
        if resource is not None:
            item.resource = ResourceSummary.model_validate(resource)
        items.append(item)

    return RecommendationListResponse(items=items, total=total, page=page, page_size=page_size)
