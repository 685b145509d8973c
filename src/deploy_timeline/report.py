"""Report rendering: turns the final record list into text.

The default format is one tab-separated row per record, ready to paste
into a spreadsheet:

    repository  commit  committed time  deployed time  deploy build

Rows are written in the order received; nothing is filtered here.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Sequence
from typing import Protocol, TextIO

from deploy_timeline.schemas import BuildRecord
from deploy_timeline.timewindow import format_time

COLUMN_SEPARATOR = "\t"

REPORT_COLUMNS = ("repository", "commit", "committed_at", "deployed_at", "deploy_build")


def render_row(record: BuildRecord) -> str:
    """Format one record as a tab-separated line."""
    return COLUMN_SEPARATOR.join(
        [
            record.repository,
            record.commit,
            format_time(record.committed_at),
            format_time(record.deployed_at),
            record.deploy_build or "",
        ]
    )


def render_report(records: Sequence[BuildRecord]) -> list[str]:
    return [render_row(r) for r in records]


class ReportSink(Protocol):
    """Anything that accepts the final record list."""

    def write(self, records: Sequence[BuildRecord]) -> None: ...


class TabularReportSink:
    """Writes tab-separated rows to a text stream (stdout by default)."""

    def __init__(self, stream: TextIO | None = None, header: bool = False) -> None:
        self._stream = stream or sys.stdout
        self._header = header

    def write(self, records: Sequence[BuildRecord]) -> None:
        if self._header:
            self._stream.write(COLUMN_SEPARATOR.join(REPORT_COLUMNS) + "\n")
        for line in render_report(records):
            self._stream.write(line + "\n")
        self._stream.flush()


class JSONReportSink:
    """Writes the records as a JSON array, for machine consumers."""

    def __init__(self, stream: TextIO | None = None, indent: int | None = 2) -> None:
        self._stream = stream or sys.stdout
        self._indent = indent

    def write(self, records: Sequence[BuildRecord]) -> None:
        payload = [r.model_dump(mode="json") for r in records]
        self._stream.write(json.dumps(payload, indent=self._indent) + "\n")
        self._stream.flush()
