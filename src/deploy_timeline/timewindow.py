"""Date helpers shared by every filtering stage.

All timestamps inside the pipeline are timezone-aware UTC datetimes.
Values coming from the outside world (CLI arguments, Buildkite, GitHub,
git commit annotations) go through parse_timestamp() first.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from typing import Any

# `git show --pretty=fuller` date format, e.g. "Mon Dec 2 10:00:00 2019 +0800"
GIT_DATE_FORMAT = "%a %b %d %H:%M:%S %Y %z"

REPORT_TIME_FORMAT = "%a, %d %b %Y %H:%M:%S"


def parse_timestamp(value: str | date | datetime) -> datetime:
    """Parse an ISO-8601 (or git-style) timestamp into an aware UTC datetime.

    Date-only values mean midnight UTC. Naive datetimes are taken as UTC.

    Raises:
        ValueError: If the string is not a recognised timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            try:
                parsed = datetime.strptime(text, GIT_DATE_FORMAT)
            except ValueError as exc:
                raise ValueError(f"Unrecognised timestamp: {value!r}") from exc
    else:
        raise TypeError(f"Cannot parse timestamp from {type(value).__name__}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def is_date_early(d1: Any, d2: Any) -> bool:
    """True if d1 is strictly earlier than d2.

    Missing values (None, the no-deploy sentinel) are never early.
    """
    if not isinstance(d1, datetime) or not isinstance(d2, datetime):
        return False
    return d1 < d2


def year_ago(time: datetime) -> datetime:
    """One year (365 days) before the given time."""
    return time - timedelta(days=365)


def format_time(time: Any) -> str:
    """Human-readable UTC time, e.g. "Thu, 05 Dec 2019 10:00:00".

    Returns an empty string for missing values.
    """
    if not isinstance(time, datetime):
        return ""
    return time.astimezone(UTC).strftime(REPORT_TIME_FORMAT)
