"""Tests for BuildRecord normalization.

Run with: pytest tests/test_normalize.py -v
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from deploy_timeline.errors import MalformedRecordError
from deploy_timeline.normalize import (
    COMMIT_ANNOTATION_KEY,
    find_deployed_at,
    normalize_build,
    normalize_page,
)
from deploy_timeline.schemas import RawJob


class TestCommittedAt:
    """committed_at comes from metadata or falls back to created_at."""

    def test_empty_metadata_uses_created_at(self, make_raw_build) -> None:
        raw = make_raw_build(7, created_at="2019-12-03T04:05:06Z", meta_data={})
        record = normalize_build(raw)
        assert record.committed_at == datetime(2019, 12, 3, 4, 5, 6, tzinfo=UTC)

    def test_null_metadata_uses_created_at(self, make_raw_build) -> None:
        raw = make_raw_build(7, created_at="2019-12-03T04:05:06Z")
        raw["meta_data"] = None
        assert normalize_build(raw).committed_at == datetime(2019, 12, 3, 4, 5, 6, tzinfo=UTC)

    def test_commit_date_annotation(self, make_raw_build, commit_annotation) -> None:
        annotation = commit_annotation.format(sha="abc", commit_date="Mon Dec 2 10:00:00 2019 +0800")
        raw = make_raw_build(7, meta_data={COMMIT_ANNOTATION_KEY: annotation})
        record = normalize_build(raw)
        # CommitDate wins over AuthorDate and created_at
        assert record.committed_at == datetime(2019, 12, 2, 2, 0, tzinfo=UTC)

    def test_missing_commit_date_line_is_malformed(self, make_raw_build) -> None:
        raw = make_raw_build(7, meta_data={COMMIT_ANNOTATION_KEY: "commit abc\nAuthor: x\n"})
        with pytest.raises(MalformedRecordError) as exc_info:
            normalize_build(raw)
        assert exc_info.value.build_id == "deploy/7"
        assert "CommitDate" in str(exc_info.value)

    def test_metadata_without_annotation_is_malformed(self, make_raw_build) -> None:
        raw = make_raw_build(7, meta_data={"release-version": "1.2.3"})
        with pytest.raises(MalformedRecordError):
            normalize_build(raw)

    def test_unparsable_commit_date_is_malformed(self, make_raw_build, commit_annotation) -> None:
        annotation = commit_annotation.format(sha="abc", commit_date="someday")
        raw = make_raw_build(7, meta_data={COMMIT_ANNOTATION_KEY: annotation})
        with pytest.raises(MalformedRecordError, match="unparsable"):
            normalize_build(raw)


class TestDeployedAt:
    """deployed_at is the finish time of the last passed production job."""

    def test_not_deployed(self, make_raw_build) -> None:
        assert normalize_build(make_raw_build(1)).deployed_at is None

    def test_deployed(self, make_raw_build) -> None:
        raw = make_raw_build(1, deployed_at="2019-12-01T09:00:00Z")
        record = normalize_build(raw)
        assert record.deployed_at == datetime(2019, 12, 1, 9, 0, tzinfo=UTC)
        assert record.is_deployed

    def test_failed_prod_job_ignored(self) -> None:
        jobs = [RawJob(name="Deploy Prod", state="failed", finished_at="2019-12-01T09:00:00Z")]
        assert find_deployed_at(jobs) is None

    def test_last_matching_job_wins(self) -> None:
        jobs = [
            RawJob(name="Prod (eu)", state="passed", finished_at="2019-12-01T09:00:00Z"),
            RawJob(name="Staging", state="passed", finished_at="2019-12-01T09:30:00Z"),
            RawJob(name="Prod (us)", state="passed", finished_at="2019-12-01T10:00:00Z"),
            RawJob(name="Prod (ap)", state="failed", finished_at="2019-12-01T11:00:00Z"),
        ]
        assert find_deployed_at(jobs) == datetime(2019, 12, 1, 10, 0, tzinfo=UTC)

    def test_custom_prod_job_marker(self) -> None:
        jobs = [
            RawJob(name="Prod", state="passed", finished_at="2019-12-01T09:00:00Z"),
            RawJob(name="Release to Live", state="passed", finished_at="2019-12-01T10:00:00Z"),
        ]
        assert find_deployed_at(jobs, prod_job="Live") == datetime(2019, 12, 1, 10, 0, tzinfo=UTC)

    def test_unnamed_jobs_never_match(self) -> None:
        jobs = [RawJob(name=None, state="passed", finished_at="2019-12-01T09:00:00Z")]
        assert find_deployed_at(jobs) is None


class TestNormalizeBuild:
    """Identity fields of the normalized record."""

    def test_identity_fields(self, make_raw_build) -> None:
        raw = make_raw_build(42, commit="deadbeef", slug="web-deploy", repository="myorg/web")
        record = normalize_build(raw)
        assert record.build_id == "web-deploy/42"
        assert record.commit == "deadbeef"
        assert record.repository == "myorg/web"
        assert record.finished_at == datetime(2019, 12, 1, 8, 30, tzinfo=UTC)
        assert record.deploy_build is None

    def test_unfinished_build(self, make_raw_build) -> None:
        assert normalize_build(make_raw_build(1, finished_at=None)).finished_at is None

    def test_structurally_invalid_entry_is_malformed(self, make_raw_build) -> None:
        raw = make_raw_build(3)
        del raw["commit"]
        with pytest.raises(MalformedRecordError) as exc_info:
            normalize_build(raw)
        assert exc_info.value.build_id == "deploy/3"

    def test_page_keeps_order(self, make_raw_build) -> None:
        records = normalize_page([make_raw_build(n) for n in (9, 8, 7)])
        assert [r.build_id for r in records] == ["deploy/9", "deploy/8", "deploy/7"]
