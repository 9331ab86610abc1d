"""Opens a pull request that records a recommendation in the resource's IaC file."""

import re
import uuid
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.crud import pull_request_event as pull_request_event_crud
from app.crud import recommendation as recommendation_crud
from app.models.cloud_resource import CloudResource
from app.models.recommendation import Recommendation
from app.providers.github import CommitFile, GitHubClient, create_github_client
from app.rules.helpers import read_string
from app.services.patch_generator import generate_updated_content
from app.services.repo_mapper import find_iac_file_for_resource

logger = structlog.get_logger()

DEFAULT_BRANCH_NAME = "costops-recommendation"


class PullRequestError(Exception):
    """A pull request cannot be opened for this recommendation."""


class RecommendationNotFoundError(PullRequestError):
    pass


class ResourceNotFoundError(PullRequestError):
    pass


class MissingRepositoryError(PullRequestError):
    pass


class IaCFileNotFoundError(PullRequestError):
    pass


class NoChangesError(PullRequestError):
    pass


@dataclass
class PullRequestResult:
    url: str
    number: int
    branch: str
    html_url: str


def sanitize_branch_name(candidate: str) -> str:
    """
    Make a git-safe branch name.

    Lower-cases, turns runs of characters other than [a-z0-9-/] into one hyphen,
    collapses repeated hyphens and trims them from both ends.
    """
    cleaned = re.sub(r"[^a-z0-9\-/]+", "-", candidate.lower())
    cleaned = re.sub(r"-+", "-", cleaned).strip("-")
    return cleaned or DEFAULT_BRANCH_NAME


def _read_labels(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [label for label in (read_string(item) for item in value) if label]


def _default_body(recommendation: Recommendation, resource: CloudResource) -> str:
    return (
        f"This PR applies the CostOps recommendation **{recommendation.title}** "
        f"for resource `{resource.name}`.\n\n"
        f"- Estimated monthly impact: {recommendation.impact_monthly:.2f}\n"
        f"- Confidence: {recommendation.confidence}"
    )


async def _get_resource(db: AsyncSession, org_id: uuid.UUID, resource_id: str) -> CloudResource | None:
    result = await db.execute(
        select(CloudResource).where(
            CloudResource.resource_id == resource_id,
            CloudResource.organization_id == org_id,
        )
    )
    return result.scalar_one_or_none()


async def open_fix_pr(
    db: AsyncSession,
    org_id: uuid.UUID,
    recommendation_id: uuid.UUID,
    host: GitHubClient | None = None,
    repo: str | None = None,
    base_branch: str | None = None,
) -> PullRequestResult:
    """
    Open a pull request annotating the IaC file of a recommendation's resource.

    The recommendation moves to in_pr only after the pull request is open. The
    branch is not deleted when a later remote step fails.

    Args:
        db: Database session
        org_id: Organization UUID
        recommendation_id: Recommendation UUID
        host: Repository host client (built from settings when omitted)
        repo: owner/name, overriding details["repo"]
        base_branch: Base branch, overriding details["baseBranch"]

    Returns:
        The opened pull request

    Raises:
        PullRequestError: On a missing recommendation, resource, repository or
            IaC file, or when the patch would not change the file
        GitHubAPIError: When a repository host call fails
    """
    recommendation = await recommendation_crud.get_recommendation(db, org_id, recommendation_id)
    if not recommendation:
        raise RecommendationNotFoundError(
            f"Recommendation {recommendation_id} was not found for organization {org_id}."
        )

    resource = await _get_resource(db, org_id, recommendation.resource_id)
    if not resource:
        raise ResourceNotFoundError(
            f"Cloud resource {recommendation.resource_id} was not found for organization {org_id}."
        )

    details = recommendation.details if isinstance(recommendation.details, dict) else {}
    repo = read_string(repo) or read_string(details.get("repo"))
    if not repo:
        raise MissingRepositoryError(
            f"Recommendation {recommendation.id} is missing a target repository in details.repo."
        )

    base_branch = (
        read_string(base_branch) or read_string(details.get("baseBranch")) or settings.DEFAULT_BASE_BRANCH
    )
    branch_name = sanitize_branch_name(
        read_string(details.get("branchName")) or f"costops/recommendation-{recommendation.id}"
    )

    host = host or create_github_client()

    iac_file = await find_iac_file_for_resource(host, repo, resource)
    if not iac_file:
        raise IaCFileNotFoundError(
            f"Unable to locate an IaC file for resource {resource.name} in repository {repo}."
        )

    current = await host.get_file_content(repo, iac_file.path, ref=base_branch)
    updated = generate_updated_content(iac_file.format, current.content, recommendation, resource)
    if updated == current.content:
        raise NoChangesError("No changes were generated for the selected recommendation.")

    await host.create_branch(repo, base_branch, branch_name)

    commit_message = read_string(details.get("commitMessage")) or (
        f"Apply CostOps recommendation {recommendation.id} for {resource.name}"
    )
    commit_sha = None
    try:
        commit_sha = await host.commit_files(
            repo, branch_name, [CommitFile(path=iac_file.path, content=updated)], commit_message
        )
        pr = await host.open_pull_request(
            repo,
            head=branch_name,
            base=base_branch,
            title=read_string(details.get("pullRequestTitle"))
            or f"Apply recommendation: {recommendation.title}",
            body=read_string(details.get("pullRequestBody")) or _default_body(recommendation, resource),
            labels=_read_labels(details.get("labels")),
        )
    except Exception:
        logger.warning(
            "pull_requests.branch_left_behind",
            organization_id=str(org_id),
            recommendation_id=str(recommendation.id),
            repo=repo,
            branch=branch_name,
            commit_sha=commit_sha,
        )
        raise

    await pull_request_event_crud.record_pull_request_opened(
        db,
        recommendation,
        repo=repo,
        pr_number=pr.number,
        branch=pr.head_ref,
        url=pr.html_url,
    )

    logger.info(
        "pull_requests.opened",
        organization_id=str(org_id),
        recommendation_id=str(recommendation.id),
        repo=repo,
        pr_number=pr.number,
        path=iac_file.path,
    )
    return PullRequestResult(url=pr.url, number=pr.number, branch=pr.head_ref, html_url=pr.html_url)
