"""Pydantic models for the records that flow through the pipeline.

There are two groups of models here:
- Raw wire shapes (RawBuild, RawJob, ...) that validate one entry of a
  Buildkite builds page before it is normalized
- Canonical records (BuildRecord, PullRequestCommitRecord) that every
  pipeline stage consumes and produces

Ordering: every list of BuildRecord handled by the pipeline is
newest-first, matching Buildkite's default ordering.

Key design decisions:
- All timestamps are aware UTC datetimes (see timewindow.parse_timestamp)
- A record stamped before any deploy was seen carries the NO_DEPLOY
  sentinel (empty string) in deploy_build/deployed_at, never None, so
  "not yet propagated" (None) and "no deploy carried it" ("") stay distinct
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Final, Literal

from pydantic import BaseModel, BeforeValidator, Field

from deploy_timeline.timewindow import parse_timestamp

NO_DEPLOY: Final = ""

NoDeploy = Literal[""]


def _coerce_timestamp(value: Any) -> Any:
    if isinstance(value, (str, date, datetime)) and value != "":
        return parse_timestamp(value)
    return value


Timestamp = Annotated[datetime, BeforeValidator(_coerce_timestamp)]


# ---------------------------------------------------------------------------
# Raw Buildkite shapes
# ---------------------------------------------------------------------------


class RawJob(BaseModel):
    """One job of a Buildkite build.

    Waiter and block steps come through without a name or finish time.
    """

    name: str | None = None
    state: str | None = None
    finished_at: Timestamp | None = None


class RawProviderSettings(BaseModel):
    repository: str


class RawProvider(BaseModel):
    settings: RawProviderSettings


class RawPipeline(BaseModel):
    slug: str
    provider: RawProvider


class RawBuild(BaseModel):
    """One entry of a Buildkite "list builds" page.

    Attributes:
        number: Build number, unique within the pipeline
        commit: Commit SHA the build ran against
        created_at: When the build was created
        finished_at: When the build finished (None while running)
        meta_data: Free-form build metadata; Buildkite stores the
                   `git show` output of the commit under
                   "buildkite:git:commit"
        jobs: The build's jobs
        pipeline: Owning pipeline (slug and source repository)
    """

    number: int
    commit: str
    created_at: Timestamp
    finished_at: Timestamp | None = None
    meta_data: dict[str, Any] | None = None
    jobs: list[RawJob] = Field(default_factory=list)
    pipeline: RawPipeline


# ---------------------------------------------------------------------------
# Code host shapes
# ---------------------------------------------------------------------------


class PullRequest(BaseModel):
    """A pull request associated with a commit."""

    number: int = Field(..., gt=0)
    repository: str = Field(..., description="Repository the PR was merged into")


class PullRequestCommit(BaseModel):
    """One commit belonging to a pull request."""

    sha: str
    author_date: Timestamp


# ---------------------------------------------------------------------------
# Canonical records
# ---------------------------------------------------------------------------


class BuildRecord(BaseModel):
    """One build of the pipeline under audit.

    Attributes:
        build_id: "<pipelineSlug>/<buildNumber>", unique per build
        commit: Source commit SHA that triggered the build
        committed_at: Authoring time of that commit
        repository: Source repository in "owner/name" form
        finished_at: When the build completed
        deployed_at: When the production job last passed; None if never
                     deployed. After deploy propagation this is the deploy
                     time of the build that shipped this one, or NO_DEPLOY.
        deploy_build: build_id of the build that shipped this one; None
                      until propagation, NO_DEPLOY if no deploy was seen
    """

    build_id: str = Field(..., description="<pipelineSlug>/<buildNumber>")
    commit: str = Field(..., description="Commit SHA that triggered the build")
    committed_at: Timestamp
    repository: str = Field(..., description="Repository in owner/name form")
    finished_at: Timestamp | None = None
    deployed_at: Timestamp | NoDeploy | None = None
    deploy_build: str | None = None

    @property
    def is_deployed(self) -> bool:
        """True if deployed_at holds a real deploy time."""
        return isinstance(self.deployed_at, datetime)


class PullRequestCommitRecord(BuildRecord):
    """A BuildRecord expanded to one of the commits of its pull request.

    Build-level fields are copied from the originating BuildRecord;
    commit and committed_at belong to the PR commit.
    """

    pr_number: int = Field(..., gt=0, description="Pull request the commit came from")
