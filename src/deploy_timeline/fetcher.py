"""Paginated build retrieval with an early-stop condition.

Buildkite returns builds newest-first. To report on a window we need
every build finished before the window's end, going back far enough to
find a deploy older than the window's start: that deploy brackets the
window and everything older can be skipped.

The query itself starts one year before the window so a build whose
deploy happened long after it finished is still captured.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import datetime

from deploy_timeline.context.buildkite import BuildStatusSourceProtocol
from deploy_timeline.logging_config import get_logger
from deploy_timeline.normalize import DEFAULT_PROD_JOB, normalize_page
from deploy_timeline.schemas import BuildRecord
from deploy_timeline.timewindow import is_date_early, year_ago

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 30

StopPredicate = Callable[[BuildRecord], bool]


def deployed_before(start_time: datetime) -> StopPredicate:
    """Default stop predicate: the record was deployed before start_time."""

    def _stop(record: BuildRecord) -> bool:
        return is_date_early(record.deployed_at, start_time)

    return _stop


class PaginatedBuildFetcher:
    """Fetches normalized build records page by page.

    Pages are requested sequentially: whether page n+1 is needed depends
    on the content of page n.

    Usage:
        fetcher = PaginatedBuildFetcher(BuildkiteClient())
        records = await fetcher.fetch_until("myorg/deploy", start, end)
    """

    def __init__(
        self,
        source: BuildStatusSourceProtocol,
        prod_job: str = DEFAULT_PROD_JOB,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._source = source
        self._prod_job = prod_job
        self._page_size = page_size

    async def iter_pages(
        self,
        pipeline: str,
        start_time: datetime,
        end_time: datetime,
        stop: StopPredicate,
    ) -> AsyncIterator[list[BuildRecord]]:
        """Yield normalized pages until the source is exhausted or stop matches.

        The loop ends after a page shorter than the page size, or after a
        page containing a record for which stop() is true. If the source
        never runs dry and stop() never matches, this keeps paging; that is
        a caller configuration error.
        """
        created_after = year_ago(start_time)
        page = 1
        while True:
            raw = await self._source.list_builds(
                pipeline,
                finished_before=end_time,
                created_after=created_after,
                page=page,
                page_size=self._page_size,
            )
            records = normalize_page(raw, self._prod_job)
            logger.debug("build_page_fetched", pipeline=pipeline, page=page, count=len(records))
            yield records

            if len(records) < self._page_size:
                return
            if any(stop(r) for r in records):
                logger.debug("build_paging_stopped", pipeline=pipeline, page=page)
                return
            page += 1

    async def fetch_until(
        self,
        pipeline: str,
        start_time: datetime,
        end_time: datetime,
        stop: StopPredicate | None = None,
    ) -> list[BuildRecord]:
        """Fetch every page needed to bracket the window.

        Args:
            pipeline: Pipeline in "org/pipeline" format
            start_time: Window start
            end_time: Window end
            stop: Stop predicate; defaults to deployed_before(start_time)

        Returns:
            Newest-first records, deduplicated by build_id (the first
            occurrence wins)
        """
        stop = stop or deployed_before(start_time)
        seen: set[str] = set()
        records: list[BuildRecord] = []
        pages = 0

        async for page in self.iter_pages(pipeline, start_time, end_time, stop):
            pages += 1
            for record in page:
                if record.build_id in seen:
                    continue
                seen.add(record.build_id)
                records.append(record)

        logger.info("builds_fetched", pipeline=pipeline, pages=pages, count=len(records))
        return records
