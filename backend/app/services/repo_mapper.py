"""Locates the IaC file that declares a cloud resource in a repository."""

import re
from dataclasses import dataclass
from pathlib import PurePosixPath

import structlog

from app.models.cloud_resource import CloudResource
from app.providers.github import GitHubClient, TreeEntry
from app.rules.helpers import get_resource_tag, read_string

logger = structlog.get_logger()

IAC_PATH_TAGS = ("iac_path", "IacPath", "iacPath")

# Written by the IaC mapping reconciliation
MAPPED_REPO_TAG = "costops_iac_repo"
MAPPED_PATH_TAG = "costops_iac_path"
MAPPED_FORMAT_TAG = "costops_iac_format"

FORMAT_BY_EXTENSION = {
    ".tf": "terraform",
    ".bicep": "bicep",
    ".json": "arm",
    ".arm": "arm",
}

# Conventional layouts, most specific first
FALLBACK_PATTERNS = [
    (re.compile(r"^(infra|iac|terraform)/.+\.(tf)$"), "terraform"),
    (re.compile(r"^(modules|environments)/.+\.(tf)$"), "terraform"),
    (re.compile(r"^(bicep|azure-bicep)/.+\.bicep$"), "bicep"),
    (re.compile(r"^(arm|templates|deployments)/.+\.(json|arm)$"), "arm"),
    (re.compile(r"main\.tf$"), "terraform"),
]


@dataclass(frozen=True)
class IaCFileMatch:
    path: str
    format: str  # 'terraform', 'bicep' or 'arm'


def infer_format_from_path(path: str) -> str | None:
    """IaC format implied by the file extension, or None."""
    return FORMAT_BY_EXTENSION.get(PurePosixPath(path.lower()).suffix)


def normalize_resource_name(name: str) -> str:
    """Lower-case slug: non-alphanumeric runs become one hyphen, edges trimmed."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def match_tag_hint(resource: CloudResource, repo: str) -> IaCFileMatch | None:
    """Path hinted by the resource tags for repo, when its format is known."""
    candidates = [get_resource_tag(resource, IAC_PATH_TAGS)]

    tags = resource.tags if isinstance(resource.tags, dict) else {}
    if read_string(tags.get(MAPPED_REPO_TAG)) == repo:
        candidates.append(read_string(tags.get(MAPPED_PATH_TAG)))

    for path in candidates:
        if not path:
            continue
        file_format = infer_format_from_path(path)
        if file_format:
            return IaCFileMatch(path=path, format=file_format)
    return None


async def find_iac_file_for_resource(
    host: GitHubClient, repo: str, resource: CloudResource, tree: list[TreeEntry] | None = None
) -> IaCFileMatch | None:
    """
    Find the file that most likely declares resource.

    Resolution order, first hit wins:
    1. An IaC path tag on the resource (the repository is not queried).
    2. A file whose name contains the slug of the resource name, in tree order.
    3. The first file under a conventional IaC directory, by pattern order then tree order.

    Args:
        host: Repository host client
        repo: owner/name
        resource: Resource to locate
        tree: Repository tree already listed by the caller; fetched when omitted

    Returns:
        Matched path and format, or None
    """
    hint = match_tag_hint(resource, repo)
    if hint:
        return hint

    if tree is None:
        tree = await host.get_tree(repo)
    files = [entry.path for entry in tree if entry.kind == "blob"]

    slug = normalize_resource_name(resource.name or "")
    if slug:
        for path in files:
            if slug in PurePosixPath(path).name.lower():
                file_format = infer_format_from_path(path)
                if file_format:
                    return IaCFileMatch(path=path, format=file_format)

    for pattern, file_format in FALLBACK_PATTERNS:
        for path in files:
            if pattern.search(path):
                return IaCFileMatch(path=path, format=file_format)

    logger.debug("iac.file_not_found", repo=repo, resource_id=resource.resource_id)
    return None
