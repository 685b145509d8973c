"""Orchestrator for a deploy timeline audit.

This module ties the pipeline stages together:
- Build fetching (fetcher.py) against Buildkite
- Window filtering and deploy propagation (timeline.py)
- Pull request enrichment (enrich.py) against GitHub
- Report output (report.py)

The audit follows this flow:
1. Fetch builds page by page until a deploy older than the window is seen
2. Trim to the window and drop the undeployed head
3. Stamp every build with the deploy that shipped it
4. Expand builds into the commits of their pull requests
5. Write the report

Any failure aborts the run; there is no partial report.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from dotenv import load_dotenv

from deploy_timeline.config import RunConfig, load_run_config
from deploy_timeline.context.buildkite import BuildkiteClient, BuildStatusSourceProtocol
from deploy_timeline.context.github import CodeHostSourceProtocol, GitHubClient
from deploy_timeline.enrich import PullRequestEnricher
from deploy_timeline.errors import ConfigurationError, DeployTimelineError
from deploy_timeline.fetcher import PaginatedBuildFetcher
from deploy_timeline.logging_config import LOG_LEVELS, get_logger, setup_logging
from deploy_timeline.report import JSONReportSink, ReportSink, TabularReportSink
from deploy_timeline.schemas import BuildRecord
from deploy_timeline.timeline import add_deploy_build, filter_window

logger = get_logger(__name__)


class DeployTimelineAuditor:
    """Runs one deploy timeline audit.

    Stateless apart from its collaborators; each call to run() is
    independent.

    Usage:
        auditor = DeployTimelineAuditor(config)
        records = await auditor.run()
    """

    def __init__(
        self,
        config: RunConfig,
        build_source: BuildStatusSourceProtocol | None = None,
        code_host: CodeHostSourceProtocol | None = None,
    ) -> None:
        """Initialize the auditor with its collaborators.

        Args:
            config: Validated run configuration
            build_source: Build-status source. Defaults to BuildkiteClient.
            code_host: Code host. Defaults to GitHubClient.
        """
        self.config = config
        self.fetcher = PaginatedBuildFetcher(
            build_source or BuildkiteClient(),
            prod_job=config.prod_job,
            page_size=config.page_size,
        )
        self.enricher = PullRequestEnricher(
            code_host or GitHubClient(),
            max_concurrency=config.max_concurrency,
        )

    async def run(self) -> list[BuildRecord]:
        """Reconstruct the deploy timeline for the configured window.

        Returns:
            Newest-first build records (or their pull request commits),
            each stamped with the deploy that shipped it. Empty when no
            build in the window has been deployed.

        Raises:
            MalformedRecordError: If a fetched build cannot be trusted
            RemoteSourceError: If Buildkite or GitHub fails
        """
        cfg = self.config
        logger.info(
            "audit_started",
            pipeline=cfg.pipeline,
            start_time=cfg.start_time.isoformat(),
            end_time=cfg.end_time.isoformat(),
            prod_job=cfg.prod_job,
        )
        try:
            fetched = await self.fetcher.fetch_until(cfg.pipeline, cfg.start_time, cfg.end_time)
            windowed = filter_window(fetched, cfg.start_time, cfg.end_time)

            if not any(r.is_deployed for r in windowed):
                logger.warning("no_deploys_in_window", pipeline=cfg.pipeline, builds=len(windowed))
                return []

            stamped = add_deploy_build(windowed)
            records = await self.enricher.enrich(stamped)

            logger.info(
                "audit_complete",
                pipeline=cfg.pipeline,
                fetched=len(fetched),
                builds=len(stamped),
                records=len(records),
            )
            return records
        except Exception as e:
            logger.error(
                "audit_failed",
                pipeline=cfg.pipeline,
                error=str(e),
                exc_info=True,
            )
            raise


# ---------------------------------------------------------------------------
# CLI Entry Point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deploy-timeline",
        description="Report which commits each production deploy shipped",
    )
    parser.add_argument("--start-time", "--startTime", dest="start_time",
                        help="Window start, ISO date (e.g. 2019-12-01)")
    parser.add_argument("--end-time", "--endTime", dest="end_time",
                        help="Window end, ISO date (e.g. 2019-12-08)")
    parser.add_argument("--pipeline", help="Buildkite pipeline as org/pipeline")
    parser.add_argument("--prod-job", "--prodJob", dest="prod_job",
                        help="Name marker of the production job (default: Prod)")
    parser.add_argument("--config", "-c", help="YAML file with run options")
    parser.add_argument("--format", choices=("tsv", "json"), default="tsv",
                        help="Report format (default: tsv)")
    parser.add_argument("--header", action="store_true",
                        help="Print a header row (tsv only)")
    parser.add_argument("--log-level", dest="log_level", type=str.upper, choices=LOG_LEVELS,
                        help="Log level (default: LOG_LEVEL or INFO)")
    return parser


def make_sink(report_format: str, header: bool = False) -> ReportSink:
    if report_format == "json":
        return JSONReportSink()
    return TabularReportSink(header=header)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Usage:
        deploy-timeline --start-time 2019-12-01 --end-time 2019-12-08 \\
            --pipeline myorg/deploy --prod-job Prod

    Tokens are read from BUILDKITE_TOKEN and GITHUB_TOKEN (a local .env
    file is loaded first).
    """
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        setup_logging(log_level=args.log_level)
    except ValueError as e:
        # LOG_LEVEL from the environment
        parser.error(str(e))

    try:
        config = load_run_config(
            args.config,
            start_time=args.start_time,
            end_time=args.end_time,
            pipeline=args.pipeline,
            prod_job=args.prod_job,
        )
    except ConfigurationError as e:
        parser.error(str(e))

    auditor = DeployTimelineAuditor(config)
    try:
        records = asyncio.run(auditor.run())
    except DeployTimelineError:
        # already logged by the auditor
        sys.exit(1)

    make_sink(args.format, header=args.header).write(records)


if __name__ == "__main__":
    main()
