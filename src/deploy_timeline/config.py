"""Run configuration for an audit.

Options can come from a YAML file, from CLI flags, or both (flags win).
Example file:

    start_time: 2019-12-01
    end_time: 2019-12-08
    pipeline: myorg/deploy
    prod_job: Prod
    max_concurrency: 4

Every problem with the configuration is reported as ConfigurationError
before any network call is made.
"""

from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from deploy_timeline.enrich import DEFAULT_MAX_CONCURRENCY
from deploy_timeline.errors import ConfigurationError
from deploy_timeline.fetcher import DEFAULT_PAGE_SIZE
from deploy_timeline.normalize import DEFAULT_PROD_JOB
from deploy_timeline.timewindow import parse_timestamp


class RunConfig(BaseModel):
    """Validated options for one audit run.

    Attributes:
        start_time: Window start (ISO date or datetime, UTC if no offset)
        end_time: Window end
        pipeline: Buildkite pipeline in "org/pipeline" format
        prod_job: Marker identifying the production job by name
        page_size: Builds requested per page
        max_concurrency: Concurrent pull request lookups
    """

    start_time: datetime
    end_time: datetime
    pipeline: str = Field(..., pattern=r"^[^/\s]+/[^/\s]+$")
    prod_job: str = Field(DEFAULT_PROD_JOB, min_length=1)
    page_size: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=100)
    max_concurrency: int = Field(DEFAULT_MAX_CONCURRENCY, ge=1)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_window_bound(cls, value: Any) -> Any:
        if isinstance(value, (str, date)):
            return parse_timestamp(value)
        return value

    @model_validator(mode="after")
    def check_window(self) -> RunConfig:
        """Ensure the window is not empty."""
        if self.start_time >= self.end_time:
            raise ValueError(
                f"start_time ({self.start_time.isoformat()}) must be earlier "
                f"than end_time ({self.end_time.isoformat()})"
            )
        return self


def load_run_config(path: str | Path | None = None, **overrides: Any) -> RunConfig:
    """Build a RunConfig from an optional YAML file plus overrides.

    Args:
        path: Optional YAML file with run options
        **overrides: Options that take precedence over the file; None
                     values are ignored so unset CLI flags don't mask it

    Returns:
        A validated RunConfig

    Raises:
        ConfigurationError: If the file is missing or invalid, or the
            merged options fail validation
    """
    raw: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        try:
            raw = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

    raw.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return RunConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid run configuration: {exc}") from exc
