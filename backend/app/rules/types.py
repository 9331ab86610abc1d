"""Rule data types."""

import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from app.providers.azure import AzureClient


@dataclass(frozen=True)
class RuleConfig:
    """Enabled flag plus numeric thresholds for one rule."""

    enabled: bool = True
    thresholds: dict[str, float] = field(default_factory=dict)


@dataclass
class RecommendationPayload:
    """One rule finding. details must carry resourceId to be persisted."""

    title: str
    description: str
    impact_monthly: float
    confidence: float
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class RuleContext:
    """Shared by every rule of one organization run."""

    org_id: uuid.UUID
    db: AsyncSession
    azure: AzureClient


RuleExecutor = Callable[[RuleContext, RuleConfig], Awaitable[list[RecommendationPayload]]]


@dataclass(frozen=True)
class RuleDefinition:
    """Immutable catalog entry."""

    id: str
    label: str
    default_config: RuleConfig
    executor: RuleExecutor


@dataclass(frozen=True)
class Rule:
    """Catalog entry bound to an organization's effective config."""

    id: str
    label: str
    config: RuleConfig
    run: Callable[[RuleContext], Awaitable[list[RecommendationPayload]]]
