"""Window filtering and deploy-build propagation.

Every function here takes and returns a newest-first list of records.
The filters only drop records; they never reorder.

Stages, in pipeline order:
1. filter_in_before_end - drop builds finished after the window
2. filter_in_after_start - cut at the first deploy older than the window
3. filter_undeployed - drop the in-flight head that no deploy carried yet
4. add_deploy_build - stamp each build with the deploy that shipped it
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from functools import reduce

from deploy_timeline.schemas import NO_DEPLOY, BuildRecord
from deploy_timeline.timewindow import is_date_early


def filter_in_before_end(records: Sequence[BuildRecord], end_time: datetime) -> list[BuildRecord]:
    """Keep records whose finished_at is strictly earlier than end_time.

    Records that never finished are dropped.
    """
    return [r for r in records if is_date_early(r.finished_at, end_time)]


def filter_in_after_start(records: Sequence[BuildRecord], start_time: datetime) -> list[BuildRecord]:
    """Keep the prefix up to (excluding) the first deploy older than start_time.

    If no record was deployed before start_time, all records are kept.
    """
    for index, record in enumerate(records):
        if is_date_early(record.deployed_at, start_time):
            return list(records[:index])
    return list(records)


def filter_undeployed(records: Sequence[BuildRecord]) -> list[BuildRecord]:
    """Drop the leading records that no deploy has carried yet.

    If no record has been deployed at all, the list is returned unchanged;
    callers treat that as "nothing ready to report".
    """
    for index, record in enumerate(records):
        if record.is_deployed:
            return list(records[index:])
    return list(records)


def filter_window(
    records: Sequence[BuildRecord],
    start_time: datetime,
    end_time: datetime,
) -> list[BuildRecord]:
    """Apply the three window filters in order."""
    records = filter_in_before_end(records, end_time)
    records = filter_in_after_start(records, start_time)
    return filter_undeployed(records)


def _stamp(
    acc: tuple[list[BuildRecord], str, datetime | str],
    record: BuildRecord,
) -> tuple[list[BuildRecord], str, datetime | str]:
    stamped, deploy_build, deployed_at = acc
    if record.is_deployed:
        deploy_build, deployed_at = record.build_id, record.deployed_at
    stamped.append(
        record.model_copy(update={"deploy_build": deploy_build, "deployed_at": deployed_at})
    )
    return stamped, deploy_build, deployed_at


def add_deploy_build(records: Sequence[BuildRecord]) -> list[BuildRecord]:
    """Stamp each record with the deploy that shipped it.

    Scans newest to oldest carrying the most recent deploy seen so far.
    A record with its own deploy becomes the current deploy and is
    stamped with itself. Records seen before any deploy get NO_DEPLOY in
    both deploy_build and deployed_at.

    Must run sequentially: each stamp depends on the records before it.
    """
    stamped, _, _ = reduce(_stamp, records, ([], NO_DEPLOY, NO_DEPLOY))
    return stamped
