"""Normalize raw Buildkite build entries into BuildRecords.

Two fields need real work:
- committed_at: Buildkite only records the commit's authoring time inside
  the `git show` output it stores in build metadata. When a build carries
  no metadata (e.g. triggered by API) the build's creation time is used.
- deployed_at: a build counts as deployed when its production job passed.
  The production job is recognised by a marker in its name ("Prod").
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from deploy_timeline.errors import MalformedRecordError
from deploy_timeline.schemas import BuildRecord, RawBuild, RawJob
from deploy_timeline.timewindow import parse_timestamp

DEFAULT_PROD_JOB = "Prod"

COMMIT_ANNOTATION_KEY = "buildkite:git:commit"

_COMMIT_DATE_RE = re.compile(r"^CommitDate:\s*(.+?)\s*$", re.MULTILINE)


def extract_commit_date(build_id: str, meta_data: dict[str, Any]) -> datetime:
    """Read the CommitDate line from a build's commit annotation.

    Args:
        build_id: Used for error reporting only
        meta_data: Non-empty Buildkite build metadata

    Raises:
        MalformedRecordError: If the annotation or its CommitDate line is
            missing, or the date cannot be parsed
    """
    annotation = meta_data.get(COMMIT_ANNOTATION_KEY)
    if not isinstance(annotation, str):
        raise MalformedRecordError(
            build_id, f"metadata has no {COMMIT_ANNOTATION_KEY!r} annotation"
        )

    match = _COMMIT_DATE_RE.search(annotation)
    if match is None:
        raise MalformedRecordError(build_id, "commit annotation has no CommitDate line")

    try:
        return parse_timestamp(match.group(1))
    except ValueError as exc:
        raise MalformedRecordError(
            build_id, f"unparsable CommitDate {match.group(1)!r}"
        ) from exc


def find_deployed_at(jobs: Iterable[RawJob], prod_job: str = DEFAULT_PROD_JOB) -> datetime | None:
    """Finish time of the last passed job whose name contains prod_job."""
    deployed_at = None
    for job in jobs:
        if job.state == "passed" and job.name and prod_job in job.name:
            deployed_at = job.finished_at
    return deployed_at


def normalize_build(
    entry: dict[str, Any] | RawBuild,
    prod_job: str = DEFAULT_PROD_JOB,
) -> BuildRecord:
    """Convert one raw page entry into a BuildRecord.

    Args:
        entry: A build as returned by the Buildkite builds API
        prod_job: Marker identifying the production job by name

    Returns:
        The canonical BuildRecord (deploy_build not yet set)

    Raises:
        MalformedRecordError: If the entry is structurally invalid or its
            metadata lacks a commit date
    """
    if isinstance(entry, RawBuild):
        raw = entry
    else:
        try:
            raw = RawBuild.model_validate(entry)
        except ValidationError as exc:
            raise MalformedRecordError(_describe(entry), str(exc)) from exc

    build_id = f"{raw.pipeline.slug}/{raw.number}"

    if raw.meta_data:
        committed_at = extract_commit_date(build_id, raw.meta_data)
    else:
        committed_at = raw.created_at

    return BuildRecord(
        build_id=build_id,
        commit=raw.commit,
        committed_at=committed_at,
        repository=raw.pipeline.provider.settings.repository,
        finished_at=raw.finished_at,
        deployed_at=find_deployed_at(raw.jobs, prod_job),
    )


def normalize_page(
    entries: Iterable[dict[str, Any] | RawBuild],
    prod_job: str = DEFAULT_PROD_JOB,
) -> list[BuildRecord]:
    """Normalize every entry of a page, preserving order."""
    return [normalize_build(entry, prod_job) for entry in entries]


def _describe(entry: Any) -> str:
    if not isinstance(entry, dict):
        return "<unknown>"
    pipeline = entry.get("pipeline")
    slug = pipeline.get("slug") if isinstance(pipeline, dict) else None
    return f"{slug or '<unknown>'}/{entry.get('number', '?')}"
