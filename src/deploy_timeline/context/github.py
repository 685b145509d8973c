"""GitHub API client for correlating builds with pull requests.

Two lookups are needed per deployed build:
- GET /repos/{repo}/commits/{sha}/pulls - the PR a commit belongs to
- GET /repos/{repo}/pulls/{number}/commits - the commits of that PR

Design notes:
- Uses httpx for async HTTP requests
- Follows the Link header for paginated commit lists
- Uses a Protocol so the enricher doesn't depend on the concrete class
- Only the first PR returned for a commit is used; commits reachable from
  several PRs (non-linear branch histories) are not disambiguated

GitHub API docs: https://docs.github.com/en/rest
"""

from __future__ import annotations

import os
from typing import Any, Protocol

import httpx

from deploy_timeline.errors import (
    RemoteSourceError,
    remote_source_errors,
    unexpected_payload_errors,
)
from deploy_timeline.schemas import PullRequest, PullRequestCommit

# ---------------------------------------------------------------------------
# Protocol (Interface)
# ---------------------------------------------------------------------------


class CodeHostSourceProtocol(Protocol):
    """Protocol defining the code-host lookups the enricher needs."""

    async def find_pull_request_for_commit(
        self, repository: str, sha: str
    ) -> PullRequest | None:
        """Return the pull request a commit was merged through, if any.

        Args:
            repository: Repository in "owner/name" format
            sha: Commit SHA

        Returns:
            The first matching PullRequest, or None
        """
        ...

    async def list_pull_request_commits(
        self, repository: str, number: int
    ) -> list[PullRequestCommit]:
        """Return every commit of a pull request, oldest first.

        Args:
            repository: Repository in "owner/name" format
            number: Pull request number

        Returns:
            The PR's commits
        """
        ...


# ---------------------------------------------------------------------------
# Concrete Implementation
# ---------------------------------------------------------------------------


class GitHubClient:
    """Real GitHub API client using httpx.

    Usage:
        client = GitHubClient(token="ghp_...")
        pr = await client.find_pull_request_for_commit("myorg/api", "abc123")
    """

    DEFAULT_BASE_URL = "https://api.github.com"

    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the GitHub client.

        Args:
            token: GitHub personal access token. Falls back to
                   GITHUB_TOKEN environment variable if not provided.
            base_url: API root. Falls back to GITHUB_API (GitHub
                      Enterprise), then the public API.
            transport: Optional httpx transport (used by tests)
            timeout: Per-request timeout in seconds
        """
        self._token = token or os.environ.get("GITHUB_TOKEN", "")
        self._base_url = base_url or os.environ.get("GITHUB_API") or self.DEFAULT_BASE_URL
        self._transport = transport
        self._timeout = timeout
        self._headers: dict[str, str] = {
            "Accept": "application/vnd.github.v3+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            self._headers["Authorization"] = f"Bearer {self._token}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def find_pull_request_for_commit(
        self, repository: str, sha: str
    ) -> PullRequest | None:
        """Look up the pull request associated with a commit.

        Raises:
            RemoteSourceError: If the GitHub API call fails or answers
                               with an unexpected body
        """
        with remote_source_errors("github"):
            async with self._client() as client:
                resp = await client.get(f"/repos/{repository}/commits/{sha}/pulls")
                resp.raise_for_status()

        with unexpected_payload_errors("github"):
            pulls = resp.json()
        if not isinstance(pulls, list):
            raise RemoteSourceError("github", "expected a JSON array of pull requests")
        if not pulls:
            return None

        # TODO: pick the PR whose base is the deployed branch once builds carry their branch.
        with unexpected_payload_errors("github"):
            first = pulls[0]
            base_repo = ((first.get("base") or {}).get("repo") or {}).get("full_name")
            return PullRequest(number=first["number"], repository=base_repo or repository)

    async def list_pull_request_commits(
        self, repository: str, number: int
    ) -> list[PullRequestCommit]:
        """Fetch every commit of a pull request.

        Raises:
            RemoteSourceError: If any GitHub API call fails or a page is
                               not a list of commits
        """
        with remote_source_errors("github"):
            async with self._client() as client:
                commits_data = await self._handle_pagination(
                    client, f"/repos/{repository}/pulls/{number}/commits"
                )

        with unexpected_payload_errors("github"):
            return [
                PullRequestCommit(sha=c["sha"], author_date=c["commit"]["author"]["date"])
                for c in commits_data
            ]

    async def _handle_pagination(
        self,
        client: httpx.AsyncClient,
        url: str,
    ) -> list[dict[str, Any]]:
        """Collect all items of a paginated list endpoint.

        GitHub returns a 'Link' header with next/prev/last URLs for
        paginated responses. The next URL already carries the query.
        """
        all_items: list[dict[str, Any]] = []
        resp = await client.get(url, params={"per_page": 100})

        while True:
            resp.raise_for_status()
            with unexpected_payload_errors("github"):
                page = resp.json()
            if not isinstance(page, list):
                raise RemoteSourceError("github", f"expected a JSON array from {resp.url.path}")
            all_items.extend(page)
            next_url = self._parse_next_link(resp.headers.get("link", ""))
            if next_url is None:
                return all_items
            resp = await client.get(next_url)

    @staticmethod
    def _parse_next_link(link_header: str) -> str | None:
        """Extract the 'next' URL from a GitHub Link header."""
        if not link_header:
            return None
        for part in link_header.split(","):
            if 'rel="next"' in part:
                return part.split(";")[0].strip().strip("<>")
        return None


# ---------------------------------------------------------------------------
# Mock Implementation (for testing)
# ---------------------------------------------------------------------------


class MockGitHubClient:
    """Mock GitHub client that returns predefined data.

    Usage:
        client = MockGitHubClient(
            pull_requests={"myorg/api": {"abc123": 42}},
            commits={"myorg/api": {42: [{"sha": "c1", "author_date": "2019-12-01"}]}},
        )
    """

    def __init__(
        self,
        pull_requests: dict[str, dict[str, int]] | None = None,
        commits: dict[str, dict[int, list[dict[str, Any]]]] | None = None,
    ) -> None:
        """Initialize with optional predefined data.

        Args:
            pull_requests: repo -> commit sha -> PR number
            commits: repo -> PR number -> list of {"sha", "author_date"}
        """
        self._pull_requests = pull_requests or {}
        self._commits = commits or {}

    async def find_pull_request_for_commit(
        self, repository: str, sha: str
    ) -> PullRequest | None:
        number = self._pull_requests.get(repository, {}).get(sha)
        if number is None:
            return None
        return PullRequest(number=number, repository=repository)

    async def list_pull_request_commits(
        self, repository: str, number: int
    ) -> list[PullRequestCommit]:
        data = self._commits.get(repository, {}).get(number, [])
        return [PullRequestCommit.model_validate(c) for c in data]
