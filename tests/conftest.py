"""Shared fixtures for the deploy timeline tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from deploy_timeline.schemas import BuildRecord

COMMIT_ANNOTATION = (
    "commit {sha}\n"
    "Author:     Dev One <dev1@example.com>\n"
    "AuthorDate: Sun Dec 1 09:00:00 2019 +0800\n"
    "Commit:     Dev One <dev1@example.com>\n"
    "CommitDate: {commit_date}\n"
    "\n"
    "    Fix the thing\n"
)


def _utc(day: int, hour: int = 12, month: int = 1, year: int = 2020) -> datetime:
    return datetime(year, month, day, hour, tzinfo=UTC)


@pytest.fixture
def utc() -> Callable[..., datetime]:
    """Builds aware UTC datetimes, January 2020 by default."""
    return _utc


@pytest.fixture
def commit_annotation() -> str:
    """`git show --pretty=fuller` output with {sha} and {commit_date} placeholders."""
    return COMMIT_ANNOTATION


@pytest.fixture
def make_raw_build() -> Callable[..., dict[str, Any]]:
    """Factory for raw Buildkite build entries."""

    def _make(
        number: int,
        *,
        commit: str | None = None,
        created_at: str = "2019-12-01T08:00:00Z",
        finished_at: str | None = "2019-12-01T08:30:00Z",
        deployed_at: str | None = None,
        meta_data: dict[str, Any] | None = None,
        slug: str = "deploy",
        repository: str = "myorg/api",
    ) -> dict[str, Any]:
        jobs: list[dict[str, Any]] = [
            {"name": "Unit tests", "state": "passed", "finished_at": finished_at},
            {"type": "waiter", "name": None, "state": None, "finished_at": None},
        ]
        if deployed_at is not None:
            jobs.append({"name": ":rocket: Prod", "state": "passed", "finished_at": deployed_at})
        return {
            "number": number,
            "commit": commit or f"sha{number}",
            "created_at": created_at,
            "finished_at": finished_at,
            "meta_data": meta_data or {},
            "jobs": jobs,
            "pipeline": {
                "slug": slug,
                "provider": {"settings": {"repository": repository}},
            },
        }

    return _make


@pytest.fixture
def make_record() -> Callable[..., BuildRecord]:
    """Factory for normalized BuildRecords."""

    def _make(
        number: int,
        *,
        finished_at: datetime | None = None,
        deployed_at: datetime | None = None,
        repository: str = "myorg/api",
    ) -> BuildRecord:
        return BuildRecord(
            build_id=f"deploy/{number}",
            commit=f"sha{number}",
            committed_at=finished_at or _utc(1),
            repository=repository,
            finished_at=finished_at,
            deployed_at=deployed_at,
        )

    return _make
