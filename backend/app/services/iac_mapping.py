"""Records which repository file declares each resource."""

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.crud import cloud_resource as cloud_resource_crud
from app.providers.github import (
    GitHubAPIError,
    GitHubClient,
    GitHubConfigurationError,
    TreeEntry,
    create_github_client,
)
from app.rules.helpers import read_string
from app.services.connections import get_connected_repositories
from app.services.repo_mapper import (
    MAPPED_FORMAT_TAG,
    MAPPED_PATH_TAG,
    MAPPED_REPO_TAG,
    find_iac_file_for_resource,
    match_tag_hint,
)

logger = structlog.get_logger()


async def reconcile_iac_mapping(
    db: AsyncSession, org_id: uuid.UUID, host: GitHubClient | None = None
) -> int:
    """
    Tag unmapped resources with the repository, path and format of their IaC file.

    Each connected repository is tried in turn; the first match wins. A
    repository tree is listed at most once per run, and a repository whose
    listing fails is logged and skipped for the rest of the run.

    Args:
        db: Database session
        org_id: Organization UUID
        host: Repository host client (built from settings when omitted)

    Returns:
        Number of resources newly mapped
    """
    repositories = await get_connected_repositories(db, org_id)
    if not repositories:
        return 0

    host = host or create_github_client()

    trees: dict[str, list[TreeEntry]] = {}
    failed_repos: set[str] = set()

    mapped = 0
    for resource in await cloud_resource_crud.get_resources(db, org_id):
        tags = dict(resource.tags) if isinstance(resource.tags, dict) else {}
        if read_string(tags.get(MAPPED_PATH_TAG)) and read_string(tags.get(MAPPED_REPO_TAG)):
            continue

        for repo in repositories:
            match = match_tag_hint(resource, repo)
            if not match:
                if repo in failed_repos:
                    continue
                if repo not in trees:
                    try:
                        trees[repo] = await host.get_tree(repo)
                    except (GitHubAPIError, GitHubConfigurationError) as e:
                        failed_repos.add(repo)
                        logger.warning(
                            "iac_mapping.repo_failed",
                            organization_id=str(org_id),
                            repo=repo,
                            error=str(e),
                        )
                        continue
                match = await find_iac_file_for_resource(host, repo, resource, tree=trees[repo])
            if not match:
                continue

            tags[MAPPED_REPO_TAG] = repo
            tags[MAPPED_PATH_TAG] = match.path
            tags[MAPPED_FORMAT_TAG] = match.format
            await cloud_resource_crud.update_resource(db, resource, tags=tags)
            mapped += 1
            break

    logger.info("iac_mapping.completed", organization_id=str(org_id), mapped=mapped)
    return mapped
