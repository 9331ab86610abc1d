"""Recommendations API endpoints."""

import uuid
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_organization_or_404
from app.models.organization import Organization
from app.providers.github import GitHubAPIError, GitHubConfigurationError
from app.schemas.recommendation import (
    CreatePullRequestRequest,
    PullRequestResponse,
    RecommendationListResponse,
)
from app.services.pull_requests import (
    PullRequestError,
    RecommendationNotFoundError,
    ResourceNotFoundError,
    open_fix_pr,
)
from app.services.recommendations import DEFAULT_PAGE_SIZE, list_recommendations

logger = structlog.get_logger()

router = APIRouter()


@router.get("/", response_model=RecommendationListResponse)
async def get_recommendations(
    organization: Annotated[Organization, Depends(get_organization_or_404)],
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    rule_id: str | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> RecommendationListResponse:
    """
    List recommendations of an organization, newest first.

    page_size is clamped to 1..100.
    """
    return await list_recommendations(
        db,
        organization.id,
        status=status_filter,
        rule_id=rule_id,
        page=page,
        page_size=page_size,
    )


@router.post("/create-pr", response_model=PullRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_pull_request(
    request: CreatePullRequestRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PullRequestResponse:
    """
    Open a pull request recording a recommendation in its IaC file.

    Raises:
        HTTPException: 404 for an unknown recommendation or resource, 400 for
            other preconditions, 502 when GitHub fails
    """
    await get_organization_or_404(request.organization_id, db)

    try:
        result = await open_fix_pr(
            db,
            request.organization_id,
            request.recommendation_id,
            repo=request.repo,
            base_branch=request.base_branch,
        )
    except (RecommendationNotFoundError, ResourceNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (PullRequestError, GitHubConfigurationError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except GitHubAPIError as e:
        logger.error(
            "recommendations.create_pr_failed",
            recommendation_id=str(request.recommendation_id),
            status_code=e.status_code,
            error=str(e),
        )
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return PullRequestResponse.model_validate(result)
