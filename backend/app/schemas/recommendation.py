"""Recommendation Pydantic schemas for request/response validation."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.models.recommendation import RecommendationStatus


class ResourceSummary(BaseModel):
    """Resource a recommendation targets."""

    resource_id: str
    name: str
    type: str
    resource_group: str | None = None
    location: str | None = None
    cost_monthly: float | None = None

    model_config = {"from_attributes": True}


class RecommendationResponse(BaseModel):
    """Recommendation schema for API responses."""

    id: uuid.UUID
    organization_id: uuid.UUID
    subscription_id: str | None
    resource_id: str
    rule_id: str
    title: str
    description: str
    impact_monthly: float
    confidence: float
    status: RecommendationStatus
    details: dict[str, Any] | None = None
    created_at: datetime
    resource: ResourceSummary | None = None

    model_config = {"from_attributes": True}


class RecommendationListResponse(BaseModel):
    """Paginated list of recommendations."""

    items: list[RecommendationResponse]
    total: int
    page: int
    page_size: int


class CreatePullRequestRequest(BaseModel):
    """Request to open a pull request for a recommendation."""

    organization_id: uuid.UUID
    recommendation_id: uuid.UUID
    repo: str | None = Field(None, description="owner/name; defaults to details.repo")
    base_branch: str | None = None


class PullRequestResponse(BaseModel):
    """Opened pull request."""

    url: str
    number: int
    branch: str
    html_url: str

    model_config = {"from_attributes": True}
