"""Poll loop.

Runs the relay pipeline (session check, feed fetch, artifact download, feed
rebuild) on a fixed interval and publishes the rebuilt feed. Only one cycle is
ever in flight; a failed cycle publishes nothing and is retried after a
longer backoff.
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Optional

import httpx

from feed_relay.config import ServerConfig
from feed_relay.exceptions import CycleInProgressError, FetchError, RelayError
from feed_relay.models.schemas import CycleReport, DownloadOutcome, OutputFeed
from feed_relay.services.client import create_client
from feed_relay.services.feed_builder import FeedRebuilder
from feed_relay.services.feed_fetcher import FeedFetcher
from feed_relay.services.session import SessionManager
from feed_relay.storage.artifact_cache import ArtifactCache


logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class PollLoop:
    """Owns the shared client and the currently published feed."""

    def __init__(
        self,
        config: ServerConfig,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.client = client if client is not None else create_client(config)
        self.session = SessionManager(self.client, config)
        self.fetcher = FeedFetcher(self.client, config)
        self.cache = ArtifactCache(self.client, config)
        self.rebuilder = FeedRebuilder(config)

        self.state = LoopState.IDLE
        self.published: Optional[OutputFeed] = None
        self.last_report: Optional[CycleReport] = None
        self.cycles = 0

    def get_feed_content_xml(self) -> Optional[str]:
        """Return the published feed XML, or None before the first good cycle."""
        published = self.published
        return published.xml if published else None

    async def run_cycle(self) -> CycleReport:
        """Run one full cycle.

        Returns:
            The report of the cycle; ``success`` is False if a stage failed

        Raises:
            CycleInProgressError: If another cycle is still running
        """
        if self.state is LoopState.RUNNING:
            raise CycleInProgressError("a poll cycle is already running")

        self.state = LoopState.RUNNING
        self.cycles += 1
        report = CycleReport(started_at=datetime.now())
        try:
            await self._run_stages(report)
            report.success = True
        except RelayError as e:
            report.error = f"{type(e).__name__}: {e}"
            logger.error(f"Poll cycle failed: {report.error}")
        except Exception as e:
            report.error = f"{type(e).__name__}: {e}"
            logger.error(f"Poll cycle crashed: {report.error}", exc_info=True)
        finally:
            report.finished_at = datetime.now()
            self.last_report = report
            self.state = LoopState.IDLE
        return report

    async def _run_stages(self, report: CycleReport) -> None:
        await self.session.ensure_authenticated()

        fetched = await self.fetcher.fetch()
        if not fetched.ok:
            raise FetchError(fetched.error)
        report.items = len(fetched.items)

        results = await self.cache.download_all(fetched.items)
        for result in results:
            if result.outcome is DownloadOutcome.DOWNLOADED:
                report.downloaded += 1
            elif result.outcome is DownloadOutcome.CACHED_EXISTING:
                report.cached += 1
            else:
                report.failed += 1

        output = self.rebuilder.build(fetched.items, results)
        # publish by replacing the reference; readers keep whatever they already hold
        self.published = output
        report.published_items = output.item_count
        logger.info(f"New feed published with {output.item_count} items")

    async def run_forever(self) -> None:
        """Run cycles until the task is cancelled.

        The next cycle waits ``check_interval`` after a success and
        ``retry_interval`` after a failure.
        """
        logger.info(
            f"Poll loop started: interval={self.config.check_interval}s, "
            f"backoff={self.config.retry_interval}s"
        )
        while True:
            try:
                report = await self.run_cycle()
            except CycleInProgressError:
                # a manually triggered cycle is running; check back shortly
                await self._sleep(1)
                continue

            if report.success:
                delay = self.config.check_interval
            else:
                delay = self.config.retry_interval
                logger.info(f"Retrying poll cycle in {delay:.0f}s")
            await self._sleep(delay)

    async def _sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)

    async def aclose(self) -> None:
        await self.client.aclose()
