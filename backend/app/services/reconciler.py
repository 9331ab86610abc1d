"""Merges rule output into persisted recommendations."""

import math

import structlog

from app.crud import cloud_resource as cloud_resource_crud
from app.crud import recommendation as recommendation_crud
from app.models.recommendation import Recommendation
from app.rules.helpers import read_string
from app.rules.types import RecommendationPayload, RuleContext

logger = structlog.get_logger()


async def upsert_recommendation(
    ctx: RuleContext, rule_id: str, payload: RecommendationPayload
) -> Recommendation | None:
    """
    Create or refresh the recommendation keyed by (organization, rule, resource).

    A new recommendation starts open. An existing one gets the latest title,
    description, impact, confidence and details; its status is left alone so
    an in-flight pull request is not forgotten.

    Args:
        ctx: Rule context of the running organization
        rule_id: Rule that produced the payload
        payload: Rule output; details["resourceId"] is required

    Returns:
        Stored recommendation, or None when the payload was dropped
    """
    details = dict(payload.details or {})
    resource_id = read_string(details.get("resourceId"))
    if not resource_id:
        logger.warning("recommendations.payload_dropped", rule_id=rule_id, reason="missing_resource_id")
        return None

    impact = payload.impact_monthly
    if not isinstance(impact, (int, float)) or not math.isfinite(impact) or impact < 0:
        logger.warning(
            "recommendations.payload_dropped",
            rule_id=rule_id,
            resource_id=resource_id,
            reason="invalid_impact",
            impact_monthly=impact,
        )
        return None

    subscription_id = read_string(details.get("subscriptionId"))
    if not subscription_id:
        resource = await cloud_resource_crud.get_resource_by_resource_id(ctx.db, resource_id)
        subscription_id = resource.subscription_id if resource else None

    existing = await recommendation_crud.find_recommendation(ctx.db, ctx.org_id, rule_id, resource_id)
    if existing is None:
        recommendation = await recommendation_crud.create_recommendation(
            ctx.db,
            organization_id=ctx.org_id,
            rule_id=rule_id,
            resource_id=resource_id,
            subscription_id=subscription_id,
            title=payload.title,
            description=payload.description,
            impact_monthly=float(impact),
            confidence=payload.confidence,
            details=details,
        )
        logger.info(
            "recommendations.created",
            rule_id=rule_id,
            resource_id=resource_id,
            recommendation_id=str(recommendation.id),
        )
        return recommendation

    return await recommendation_crud.update_recommendation_content(
        ctx.db,
        existing,
        title=payload.title,
        description=payload.description,
        impact_monthly=float(impact),
        confidence=payload.confidence,
        details=details,
        subscription_id=subscription_id if not existing.subscription_id else None,
    )
