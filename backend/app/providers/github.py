"""GitHub REST client authenticated as a GitHub App installation."""

import base64
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from app.core.config import settings
from app.core.security import create_github_app_jwt

logger = structlog.get_logger()

GITHUB_API_VERSION = "2022-11-28"
TOKEN_REFRESH_SKEW = timedelta(seconds=60)
DEFAULT_COMMIT_MESSAGE = "Apply infrastructure recommendation"
REF_EXISTS_MESSAGE = "Reference already exists"


class GitHubAPIError(Exception):
    """Raised when the GitHub API answers with an error status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GitHubConfigurationError(Exception):
    """Raised when GitHub App credentials or repository names are unusable."""


@dataclass
class TreeEntry:
    path: str
    kind: str  # 'blob' or 'tree'


@dataclass
class FileContent:
    content: str
    sha: str


@dataclass
class CommitFile:
    path: str
    content: str
    mode: str = "100644"


@dataclass
class PullRequestInfo:
    number: int
    url: str
    html_url: str
    head_ref: str


def parse_repo(repo: str) -> tuple[str, str]:
    """
    Split "owner/name" into its parts.

    Raises:
        GitHubConfigurationError: If the name is not of the form owner/name
    """
    owner, _, name = repo.strip().partition("/")
    if not owner or not name or "/" in name:
        raise GitHubConfigurationError(f"Invalid repository name: {repo}")
    return owner, name


class GitHubClient:
    """
    GitHub App client.

    Authenticates as the app (RS256 JWT), resolves the installation for each
    repository and caches installation tokens until shortly before they expire.
    """

    def __init__(
        self,
        app_id: str,
        private_key: str,
        api_url: str = "https://api.github.com",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not app_id or not private_key:
            raise GitHubConfigurationError(
                "Missing GitHub App credentials. Ensure GITHUB_APP_ID and GITHUB_APP_PRIVATE_KEY are set."
            )
        self.app_id = app_id
        self.private_key = private_key
        self.api_url = api_url.rstrip("/")
        self._transport = transport

        # Installation token cache keyed by "owner/name"
        self._installation_tokens: dict[str, tuple[str, datetime]] = {}

    async def _request(
        self,
        method: str,
        path: str,
        authorization: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        """
        Call the GitHub API.

        Raises:
            GitHubAPIError: On network failure or a non-2xx response
        """
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": authorization,
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

        try:
            async with httpx.AsyncClient(
                base_url=self.api_url, timeout=30.0, transport=self._transport
            ) as client:
                response = await client.request(
                    method, path, params=params, json=json_data, headers=headers
                )
        except httpx.HTTPError as e:
            raise GitHubAPIError(f"GitHub request {method} {path} failed: {e}") from e

        if response.is_error:
            raise GitHubAPIError(
                f"GitHub request {method} {path} failed: {response.status_code} {response.text[:500]}".strip(),
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _get_installation_token(self, repo: str) -> str:
        cached = self._installation_tokens.get(repo)
        if cached and datetime.now(timezone.utc) < cached[1]:
            return cached[0]

        owner, name = parse_repo(repo)
        app_auth = f"Bearer {create_github_app_jwt(self.app_id, self.private_key)}"

        installation = await self._request("GET", f"/repos/{owner}/{name}/installation", app_auth)
        token_data = await self._request(
            "POST", f"/app/installations/{installation['id']}/access_tokens", app_auth
        )

        expires_at = datetime.fromisoformat(token_data["expires_at"].replace("Z", "+00:00"))
        self._installation_tokens[repo] = (token_data["token"], expires_at - TOKEN_REFRESH_SKEW)
        return token_data["token"]

    async def _repo_request(
        self,
        repo: str,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        owner, name = parse_repo(repo)
        token = await self._get_installation_token(repo)
        return await self._request(
            method,
            f"/repos/{owner}/{name}{path}",
            f"Bearer {token}",
            params=params,
            json_data=json_data,
        )

    async def _get_branch_sha(self, repo: str, branch: str) -> str:
        ref = await self._repo_request(repo, "GET", f"/git/ref/heads/{quote(branch)}")
        return ref["object"]["sha"]

    async def get_tree(self, repo: str, ref: str | None = None) -> list[TreeEntry]:
        """
        List every path in the repository (recursive).

        Args:
            repo: owner/name
            ref: Branch name; the default branch when omitted
        """
        if ref is None:
            repo_info = await self._repo_request(repo, "GET", "")
            ref = repo_info["default_branch"]

        commit_sha = await self._get_branch_sha(repo, ref)
        commit = await self._repo_request(repo, "GET", f"/git/commits/{commit_sha}")
        tree = await self._repo_request(
            repo, "GET", f"/git/trees/{commit['tree']['sha']}", params={"recursive": "true"}
        )

        if tree.get("truncated"):
            logger.warning("github.tree.truncated", repo=repo, ref=ref)

        return [
            TreeEntry(path=item["path"], kind=item["type"])
            for item in tree.get("tree") or []
            if item.get("path") and item.get("type")
        ]

    async def get_file_content(self, repo: str, path: str, ref: str | None = None) -> FileContent:
        """Fetch and decode a file."""
        params = {"ref": ref} if ref else None
        data = await self._repo_request(repo, "GET", f"/contents/{quote(path)}", params=params)

        if isinstance(data, list) or data.get("type") != "file":
            raise GitHubAPIError(f"Expected {path} to be a file in {repo}.")

        content = base64.b64decode(data.get("content") or "").decode("utf-8")
        return FileContent(content=content, sha=data["sha"])

    async def create_branch(self, repo: str, base: str, branch: str) -> None:
        """Create branch from the tip of base. An existing branch is left untouched."""
        base_sha = await self._get_branch_sha(repo, base)
        try:
            await self._repo_request(
                repo,
                "POST",
                "/git/refs",
                json_data={"ref": f"refs/heads/{branch}", "sha": base_sha},
            )
        except GitHubAPIError as e:
            if e.status_code == 422 and REF_EXISTS_MESSAGE in str(e):
                logger.info("github.branch.exists", repo=repo, branch=branch)
                return
            raise

    async def commit_files(
        self,
        repo: str,
        branch: str,
        files: list[CommitFile],
        message: str = DEFAULT_COMMIT_MESSAGE,
    ) -> str:
        """
        Commit files on top of branch and move the branch to the new commit.

        Returns:
            SHA of the new commit
        """
        if not files:
            raise ValueError("commit_files requires at least one file to update.")

        parent_sha = await self._get_branch_sha(repo, branch)
        parent = await self._repo_request(repo, "GET", f"/git/commits/{parent_sha}")

        tree_items = []
        for file in files:
            blob = await self._repo_request(
                repo, "POST", "/git/blobs", json_data={"content": file.content, "encoding": "utf-8"}
            )
            tree_items.append({"path": file.path, "mode": file.mode, "type": "blob", "sha": blob["sha"]})

        tree = await self._repo_request(
            repo,
            "POST",
            "/git/trees",
            json_data={"base_tree": parent["tree"]["sha"], "tree": tree_items},
        )
        commit = await self._repo_request(
            repo,
            "POST",
            "/git/commits",
            json_data={"message": message, "tree": tree["sha"], "parents": [parent_sha]},
        )
        await self._repo_request(
            repo, "PATCH", f"/git/refs/heads/{quote(branch)}", json_data={"sha": commit["sha"]}
        )
        return commit["sha"]

    async def open_pull_request(
        self,
        repo: str,
        head: str,
        base: str,
        title: str,
        body: str,
        labels: list[str] | None = None,
    ) -> PullRequestInfo:
        """Open a pull request and apply labels when given."""
        pr = await self._repo_request(
            repo,
            "POST",
            "/pulls",
            json_data={"head": head, "base": base, "title": title, "body": body},
        )

        if labels:
            await self._repo_request(
                repo, "POST", f"/issues/{pr['number']}/labels", json_data={"labels": labels}
            )

        return PullRequestInfo(
            number=pr["number"],
            url=pr["url"],
            html_url=pr["html_url"],
            head_ref=pr["head"]["ref"],
        )


def create_github_client() -> GitHubClient:
    """Build a client from the GitHub App settings."""
    return GitHubClient(
        app_id=settings.GITHUB_APP_ID,
        private_key=settings.GITHUB_APP_PRIVATE_KEY,
        api_url=settings.GITHUB_API_URL,
    )
