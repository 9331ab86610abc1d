"""Stateless helpers shared by the Azure rules."""

import math
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Mapping

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.crud import cloud_resource as cloud_resource_crud
from app.models.cloud_resource import CloudResource
from app.providers.azure import AzureAPIError
from app.rules.types import RecommendationPayload, RuleConfig, RuleContext, RuleDefinition

logger = structlog.get_logger()

ThresholdRule = Callable[[RuleContext, dict[str, float]], Awaitable[list[RecommendationPayload]]]


def read_string(value: Any) -> str | None:
    """Non-blank string, stripped; None otherwise."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def read_number(value: Any) -> float | None:
    """Finite number from a number or numeric string; None otherwise."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def get_resource_tag(resource: CloudResource, keys: Iterable[str]) -> str | None:
    """First non-blank tag among keys, probed in order."""
    tags = _as_mapping(resource.tags)
    for key in keys:
        value = read_string(tags.get(key))
        if value:
            return value
    return None


def get_resource_metric(resource: CloudResource, keys: Iterable[str]) -> float | None:
    """First numeric cached metric among keys, probed in order."""
    metrics = _as_mapping(resource.metrics)
    for key in keys:
        value = read_number(metrics.get(key))
        if value is not None:
            return value
    return None


def get_resource_number(resource: CloudResource, metric_keys: Iterable[str], tag_keys: Iterable[str] = ()) -> float | None:
    """Numeric value from cached metrics first, then from tags."""
    value = get_resource_metric(resource, metric_keys)
    if value is not None:
        return value
    tags = _as_mapping(resource.tags)
    for key in tag_keys:
        value = read_number(tags.get(key))
        if value is not None:
            return value
    return None


def merge_thresholds(defaults: Mapping[str, float], overrides: Mapping[str, float] | None) -> dict[str, float]:
    return {**defaults, **(overrides or {})}


def parse_iso_date(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def age_in_days(created_at: datetime, now: datetime | None = None) -> int:
    """Whole days elapsed since created_at (floored)."""
    now = now or datetime.now(timezone.utc)
    return math.floor((now - created_at).total_seconds() / 86400)


def describe_percentage(value: float | None, digits: int = 1) -> str:
    if value is None:
        return "unknown"
    return f"{value:.{digits}f}%"


def format_currency(value: float) -> str:
    return f"${value:,.2f}"


async def load_resources(db: AsyncSession, org_id: uuid.UUID, resource_type: str) -> list[CloudResource]:
    return await cloud_resource_crud.get_resources_by_type(db, org_id, resource_type)


async def load_resource_map(
    db: AsyncSession, org_id: uuid.UUID, resource_type: str
) -> dict[str, CloudResource]:
    """Resources of one type keyed by lower-cased ARM id."""
    resources = await load_resources(db, org_id, resource_type)
    return {resource.resource_id.lower(): resource for resource in resources}


async def live_metric_or_cached(
    fetch: Callable[[], Awaitable[float | None]],
    resource: CloudResource,
    cached_keys: Iterable[str],
) -> float | None:
    """
    Query a live metric; when the call fails fall back to the cached metric keys.

    A live answer of None (no data points) is returned as-is.
    """
    try:
        return await fetch()
    except AzureAPIError as e:
        cached = get_resource_metric(resource, cached_keys)
        logger.warning(
            "rules.metric.live_query_failed",
            resource_id=resource.resource_id,
            transient=e.transient,
            fallback_available=cached is not None,
            error=str(e),
        )
        return cached


def define_rule(
    rule_id: str,
    label: str,
    thresholds: Mapping[str, float],
    enabled: bool = True,
) -> Callable[[ThresholdRule], RuleDefinition]:
    """
    Turn a rule body taking merged thresholds into a catalog entry.

    Thresholds passed at run time are layered over the catalog defaults, so a
    partial config never leaves a threshold unset.
    """
    defaults = RuleConfig(enabled=enabled, thresholds=dict(thresholds))

    def decorator(body: ThresholdRule) -> RuleDefinition:
        async def executor(ctx: RuleContext, config: RuleConfig) -> list[RecommendationPayload]:
            return await body(ctx, merge_thresholds(defaults.thresholds, config.thresholds))

        executor.__name__ = body.__name__
        return RuleDefinition(id=rule_id, label=label, default_config=defaults, executor=executor)

    return decorator
