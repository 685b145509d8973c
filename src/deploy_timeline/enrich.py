"""Pull request enrichment for deployed builds.

A build only names the commit that triggered it, usually the merge
commit of a pull request. To know which commits a deploy shipped, each
build is replaced by one record per commit of its pull request.

Lookups for different builds are independent and run concurrently,
bounded by a semaphore so the code host's rate limits are respected.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from itertools import chain

from deploy_timeline.context.github import CodeHostSourceProtocol
from deploy_timeline.logging_config import get_logger
from deploy_timeline.schemas import BuildRecord, PullRequestCommitRecord

logger = get_logger(__name__)

DEFAULT_MAX_CONCURRENCY = 8


class PullRequestEnricher:
    """Expands build records into the pull-request commits they shipped.

    Usage:
        enricher = PullRequestEnricher(GitHubClient(), max_concurrency=8)
        records = await enricher.enrich(builds)
    """

    def __init__(
        self,
        code_host: CodeHostSourceProtocol,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._code_host = code_host
        self._max_concurrency = max_concurrency

    async def expand(self, record: BuildRecord) -> list[BuildRecord]:
        """Expand one build into its pull request's commits.

        Returns:
            [record] unchanged if the commit has no pull request, otherwise
            one PullRequestCommitRecord per PR commit
        """
        pr = await self._code_host.find_pull_request_for_commit(record.repository, record.commit)
        if pr is None:
            return [record]

        commits = await self._code_host.list_pull_request_commits(pr.repository, pr.number)
        logger.debug(
            "pull_request_expanded",
            build_id=record.build_id,
            pr_number=pr.number,
            commits=len(commits),
        )
        build_fields = record.model_dump(exclude={"commit", "committed_at", "pr_number"})
        return [
            PullRequestCommitRecord(
                **build_fields,
                commit=c.sha,
                committed_at=c.author_date,
                pr_number=pr.number,
            )
            for c in commits
        ]

    async def enrich(self, records: Sequence[BuildRecord]) -> list[BuildRecord]:
        """Expand every record concurrently and flatten the results.

        Any failed lookup aborts the whole call; there is no partial result.
        Lookups still running when one fails are cancelled before the
        error propagates.
        """
        sem = asyncio.Semaphore(self._max_concurrency)

        async def _bounded(record: BuildRecord) -> list[BuildRecord]:
            async with sem:
                return await self.expand(record)

        tasks = [asyncio.create_task(_bounded(r)) for r in records]
        try:
            expanded = await asyncio.gather(*tasks)
        except Exception:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        flattened = list(chain.from_iterable(expanded))
        logger.info("builds_enriched", builds=len(records), records=len(flattened))
        return flattened
