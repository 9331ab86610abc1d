"""CRUD operations for pull request events."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.pull_request_event import PullRequestEvent
from app.models.recommendation import Recommendation, RecommendationStatus


async def record_pull_request_opened(
    db: AsyncSession,
    recommendation: Recommendation,
    repo: str,
    pr_number: int,
    branch: str,
    url: str,
    provider: str = "github",
) -> PullRequestEvent:
    """
    Write the audit event and move the recommendation to in_pr in one commit.

    Args:
        db: Database session
        recommendation: Recommendation the pull request applies
        repo: owner/name
        pr_number: Pull request number
        branch: Head branch
        url: Browser URL of the pull request
        provider: Repository host

    Returns:
        Created event
    """
    event = PullRequestEvent(
        organization_id=recommendation.organization_id,
        recommendation_id=recommendation.id,
        provider=provider,
        repo=repo,
        pr_number=pr_number,
        branch=branch,
        status="opened",
        url=url,
    )
    db.add(event)
    recommendation.status = RecommendationStatus.IN_PR.value

    await db.commit()
    return event


async def get_events_for_recommendation(
    db: AsyncSession, recommendation_id: uuid.UUID
) -> list[PullRequestEvent]:
    result = await db.execute(
        select(PullRequestEvent)
        .where(PullRequestEvent.recommendation_id == recommendation_id)
        .order_by(PullRequestEvent.created_at)
    )
    return list(result.scalars().all())
