"""Tests for pull request enrichment.

The code host is replaced by MockGitHubClient or AsyncMock so these
tests never reach GitHub.

Run with: pytest tests/test_enrich.py -v
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from deploy_timeline.context.github import MockGitHubClient
from deploy_timeline.enrich import PullRequestEnricher
from deploy_timeline.errors import RemoteSourceError
from deploy_timeline.schemas import BuildRecord, PullRequest, PullRequestCommit, PullRequestCommitRecord
from deploy_timeline.timeline import add_deploy_build


@pytest.fixture
def deployed(make_record, utc) -> list[BuildRecord]:
    """Two stamped builds: 2 is a PR merge, 1 was pushed directly."""
    return add_deploy_build(
        [
            make_record(2, finished_at=utc(5), deployed_at=utc(6)),
            make_record(1, finished_at=utc(3)),
        ]
    )


@pytest.fixture
def code_host() -> MockGitHubClient:
    return MockGitHubClient(
        pull_requests={"myorg/api": {"sha2": 42}},
        commits={
            "myorg/api": {
                42: [
                    {"sha": "c1", "author_date": "2020-01-01T09:00:00Z"},
                    {"sha": "c2", "author_date": "2020-01-02T09:00:00Z"},
                    {"sha": "c3", "author_date": "2020-01-03T09:00:00Z"},
                ]
            }
        },
    )


class TestExpand:
    """Tests for PullRequestEnricher.expand."""

    @pytest.mark.asyncio
    async def test_no_pull_request_passes_through(self, deployed, code_host) -> None:
        enricher = PullRequestEnricher(code_host)

        result = await enricher.expand(deployed[1])

        assert result == [deployed[1]]
        assert type(result[0]) is BuildRecord

    @pytest.mark.asyncio
    async def test_expands_into_one_record_per_commit(self, deployed, code_host) -> None:
        enricher = PullRequestEnricher(code_host)
        build = deployed[0]

        result = await enricher.expand(build)

        assert len(result) == 3
        assert all(isinstance(r, PullRequestCommitRecord) for r in result)
        assert [r.commit for r in result] == ["c1", "c2", "c3"]
        assert [r.committed_at.day for r in result] == [1, 2, 3]
        for r in result:
            assert r.build_id == build.build_id
            assert r.repository == build.repository
            assert r.finished_at == build.finished_at
            assert r.deployed_at == build.deployed_at
            assert r.deploy_build == build.deploy_build
            assert r.pr_number == 42

    @pytest.mark.asyncio
    async def test_only_first_candidate_is_used(self, make_record) -> None:
        code_host = AsyncMock()
        code_host.find_pull_request_for_commit.return_value = PullRequest(number=7, repository="myorg/api")
        code_host.list_pull_request_commits.return_value = [
            PullRequestCommit(sha="c1", author_date=datetime(2020, 1, 1, tzinfo=UTC)),
        ]
        enricher = PullRequestEnricher(code_host)

        await enricher.expand(make_record(1))

        code_host.find_pull_request_for_commit.assert_awaited_once_with("myorg/api", "sha1")
        code_host.list_pull_request_commits.assert_awaited_once_with("myorg/api", 7)

    @pytest.mark.asyncio
    async def test_pull_request_without_commits_yields_nothing(self, make_record) -> None:
        code_host = MockGitHubClient(pull_requests={"myorg/api": {"sha1": 3}})
        result = await PullRequestEnricher(code_host).expand(make_record(1))
        assert result == []


class TestEnrich:
    """Tests for PullRequestEnricher.enrich."""

    @pytest.mark.asyncio
    async def test_flattens_all_records(self, deployed, code_host) -> None:
        result = await PullRequestEnricher(code_host).enrich(deployed)

        assert sorted(r.commit for r in result) == ["c1", "c2", "c3", "sha1"]
        assert {r.build_id for r in result} == {"deploy/2", "deploy/1"}

    @pytest.mark.asyncio
    async def test_empty_input(self, code_host) -> None:
        assert await PullRequestEnricher(code_host).enrich([]) == []

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, make_record) -> None:
        in_flight = 0
        peak = 0

        class SlowCodeHost:
            async def find_pull_request_for_commit(self, repository, sha):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                in_flight -= 1
                return None

            async def list_pull_request_commits(self, repository, number):
                return []

        records = [make_record(n) for n in range(20)]
        result = await PullRequestEnricher(SlowCodeHost(), max_concurrency=3).enrich(records)

        assert len(result) == 20
        assert 1 < peak <= 3

    @pytest.mark.asyncio
    async def test_remote_failure_aborts(self, deployed) -> None:
        code_host = AsyncMock()
        code_host.find_pull_request_for_commit.side_effect = RemoteSourceError("github", "rate limited", 403)

        with pytest.raises(RemoteSourceError) as exc_info:
            await PullRequestEnricher(code_host).enrich(deployed)
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_failure_cancels_pending_lookups(self, make_record) -> None:
        finished: list[str] = []
        cancelled: list[str] = []

        class FlakyCodeHost:
            async def find_pull_request_for_commit(self, repository, sha):
                if sha == "sha0":
                    await asyncio.sleep(0.01)
                    raise RemoteSourceError("github", "bad gateway", 502)
                try:
                    await asyncio.sleep(5)
                except asyncio.CancelledError:
                    cancelled.append(sha)
                    raise
                finished.append(sha)
                return None

            async def list_pull_request_commits(self, repository, number):
                return []

        records = [make_record(n) for n in range(4)]
        with pytest.raises(RemoteSourceError):
            await PullRequestEnricher(FlakyCodeHost(), max_concurrency=4).enrich(records)

        assert finished == []
        assert sorted(cancelled) == ["sha1", "sha2", "sha3"]

    def test_rejects_zero_concurrency(self, code_host) -> None:
        with pytest.raises(ValueError):
            PullRequestEnricher(code_host, max_concurrency=0)
