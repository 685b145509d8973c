"""Exception types raised by the deploy timeline pipeline.

Every failure aborts the run; there is no partial-result mode. The CLI
maps these to exit codes:
- ConfigurationError -> usage error before any network call
- MalformedRecordError / RemoteSourceError -> run failure
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import httpx


class DeployTimelineError(Exception):
    """Base class for all errors raised by the auditor."""


class MalformedRecordError(DeployTimelineError, ValueError):
    """A fetched build entry cannot be trusted (e.g. missing CommitDate)."""

    def __init__(self, build_id: str, reason: str) -> None:
        self.build_id = build_id
        self.reason = reason
        super().__init__(f"Malformed build record {build_id}: {reason}")


class RemoteSourceError(DeployTimelineError):
    """Transport, auth or rate-limit failure from a remote source.

    Attributes:
        source: Which collaborator failed ("buildkite" or "github")
        status_code: HTTP status if the server answered, else None
    """

    def __init__(
        self,
        source: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.source = source
        self.status_code = status_code
        super().__init__(f"{source} request failed: {message}")


class ConfigurationError(DeployTimelineError, ValueError):
    """Missing or invalid run parameters."""


@contextmanager
def remote_source_errors(source: str) -> Iterator[None]:
    """Translate httpx failures raised inside the block into RemoteSourceError."""
    try:
        yield
    except httpx.HTTPStatusError as exc:
        raise RemoteSourceError(source, str(exc), exc.response.status_code) from exc
    except httpx.HTTPError as exc:
        raise RemoteSourceError(source, str(exc) or type(exc).__name__) from exc


@contextmanager
def unexpected_payload_errors(source: str) -> Iterator[None]:
    """Turn a response body of the wrong shape into RemoteSourceError.

    Covers undecodable JSON and missing or mistyped fields while mapping
    the body onto models.
    """
    try:
        yield
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise RemoteSourceError(
            source, f"unexpected response payload ({type(exc).__name__}: {exc})"
        ) from exc
