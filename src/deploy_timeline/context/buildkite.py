"""Buildkite client for fetching pipeline builds.

The auditor only needs one endpoint: the paginated build list of a
pipeline. Entries are returned raw (as dicts); turning them into
BuildRecords is normalize.py's job.

Design notes:
- Uses a Protocol so the fetcher can run against the mock in tests
- One httpx.AsyncClient per request; pages are fetched sequentially anyway
- Any transport/auth/rate-limit failure surfaces as RemoteSourceError;
  nothing is retried here

API docs: https://buildkite.com/docs/apis/rest-api/builds
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import Any, Protocol

import httpx

from deploy_timeline.errors import (
    ConfigurationError,
    RemoteSourceError,
    remote_source_errors,
    unexpected_payload_errors,
)

# ---------------------------------------------------------------------------
# Protocol (Interface)
# ---------------------------------------------------------------------------


class BuildStatusSourceProtocol(Protocol):
    """Protocol for build-status sources."""

    async def list_builds(
        self,
        pipeline: str,
        *,
        finished_before: datetime,
        created_after: datetime,
        page: int,
        page_size: int,
    ) -> list[dict[str, Any]]:
        """Fetch one page of builds, newest first.

        Args:
            pipeline: Pipeline in "org/pipeline" format
            finished_before: Upper bound of the query window
            created_after: Lower bound of the query window
            page: 1-based page number
            page_size: Maximum number of builds per page

        Returns:
            Raw build entries
        """
        ...


# ---------------------------------------------------------------------------
# Concrete Implementation
# ---------------------------------------------------------------------------


def builds_path(pipeline: str) -> str:
    """API path of the build list for an "org/pipeline" identifier."""
    org, _, name = pipeline.partition("/")
    if not org or not name or "/" in name:
        raise ConfigurationError(
            f"Pipeline must be in 'org/pipeline' format, got {pipeline!r}"
        )
    return f"/v2/organizations/{org}/pipelines/{name}/builds"


class BuildkiteClient:
    """Real Buildkite REST client using httpx.

    Usage:
        client = BuildkiteClient(token="bkua_...")
        page = await client.list_builds(
            "myorg/deploy", finished_before=end, created_after=start,
            page=1, page_size=30,
        )
    """

    DEFAULT_BASE_URL = "https://api.buildkite.com"

    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the Buildkite client.

        Args:
            token: API access token. Falls back to BUILDKITE_TOKEN.
            base_url: API root. Falls back to BUILDKITE_API, then the
                      public Buildkite API.
            transport: Optional httpx transport (used by tests)
            timeout: Per-request timeout in seconds
        """
        self._token = token or os.environ.get("BUILDKITE_TOKEN", "")
        self._base_url = base_url or os.environ.get("BUILDKITE_API") or self.DEFAULT_BASE_URL
        self._transport = transport
        self._timeout = timeout
        self._headers: dict[str, str] = {"Accept": "application/json"}
        if self._token:
            self._headers["Authorization"] = f"Bearer {self._token}"

    async def list_builds(
        self,
        pipeline: str,
        *,
        finished_before: datetime,
        created_after: datetime,
        page: int,
        page_size: int,
    ) -> list[dict[str, Any]]:
        """Fetch one page of a pipeline's builds.

        Buildkite has no "finished before" filter, so the upper bound is
        applied to creation time; the exact finish-time cut happens in
        timeline.filter_in_before_end.

        Raises:
            RemoteSourceError: If the request fails or the body is not a list
        """
        params = {
            "created_from": created_after.isoformat(),
            "created_to": finished_before.isoformat(),
            "page": page,
            "per_page": page_size,
        }
        with remote_source_errors("buildkite"):
            async with httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.get(builds_path(pipeline), params=params)
                resp.raise_for_status()

        with unexpected_payload_errors("buildkite"):
            data = resp.json()
        if not isinstance(data, list):
            raise RemoteSourceError("buildkite", "expected a JSON array of builds")
        return data


# ---------------------------------------------------------------------------
# Mock Implementation (for testing)
# ---------------------------------------------------------------------------


class MockBuildkiteClient:
    """Mock build source serving a fixed newest-first list of raw builds.

    Every call is recorded in `calls` so tests can assert how many pages
    were requested.
    """

    def __init__(self, builds: list[dict[str, Any]] | None = None) -> None:
        self._builds = builds or []
        self.calls: list[dict[str, Any]] = []

    async def list_builds(
        self,
        pipeline: str,
        *,
        finished_before: datetime,
        created_after: datetime,
        page: int,
        page_size: int,
    ) -> list[dict[str, Any]]:
        self.calls.append({"pipeline": pipeline, "page": page, "page_size": page_size})
        start = (page - 1) * page_size
        return self._builds[start:start + page_size]
