"""Unit tests for the poll loop.

Covers cycle sequencing, publication, failure handling and backoff.
"""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from lxml import etree

from feed_relay.exceptions import CycleInProgressError
from feed_relay.models.schemas import CycleReport
from feed_relay.services.poller import LoopState, PollLoop

from tests.conftest import rss_document


pytestmark = pytest.mark.anyio


FEED_ITEMS = [
    {"title": "One", "link": "https://tracker.example/details.php?id=1&hit=1", "guid": "a"},
    {"title": "Two", "link": "https://tracker.example/details.php?id=2&hit=1", "guid": "b"},
]


def serve_feed(upstream, items=FEED_ITEMS):
    upstream.routes["/rss.php"] = lambda request: httpx.Response(200, text=rss_document(items))


def output_items(xml: str):
    root = etree.fromstring(xml.encode("utf-8"))
    return [(e.findtext("guid"), e.findtext("link")) for e in root.findall("channel/item")]


class TestRunCycle:
    """Tests for a single poll cycle."""

    async def test_end_to_end_omits_failed_download(self, client, config, upstream):
        serve_feed(upstream)
        upstream.artifact("1")
        upstream.failing_artifact("2")
        poller = PollLoop(config, client)

        assert poller.get_feed_content_xml() is None
        report = await poller.run_cycle()

        assert report.success is True
        assert report.items == 2
        assert report.downloaded == 1
        assert report.failed == 1
        assert output_items(poller.get_feed_content_xml()) == [
            ("a", "http://relay.local:3001/torrent/1.torrent"),
        ]
        assert poller.state is LoopState.IDLE

    async def test_stages_run_in_order(self, client, config, upstream):
        serve_feed(upstream)
        upstream.artifact("1")
        upstream.artifact("2")
        poller = PollLoop(config, client)

        await poller.run_cycle()

        assert upstream.paths() == ["/", "/rss.php", "/download.php", "/download.php"]

    async def test_unmatched_links_never_published(self, client, config, upstream):
        serve_feed(upstream, [
            {"title": "Odd", "link": "https://tracker.example/forum.php?topic=9", "guid": "odd"},
            FEED_ITEMS[0],
        ])
        upstream.artifact("1")
        poller = PollLoop(config, client)

        await poller.run_cycle()

        assert [guid for guid, _ in output_items(poller.get_feed_content_xml())] == ["a"]

    async def test_fetch_failure_keeps_previous_feed(self, client, config, upstream):
        serve_feed(upstream)
        upstream.artifact("1")
        upstream.artifact("2")
        poller = PollLoop(config, client)
        await poller.run_cycle()
        published = poller.get_feed_content_xml()

        upstream.routes["/rss.php"] = lambda request: httpx.Response(500)
        report = await poller.run_cycle()

        assert report.success is False
        assert report.error.startswith("FetchError")
        assert poller.get_feed_content_xml() == published

    async def test_auth_failure_aborts_before_fetch(self, client, config, upstream):
        upstream.logged_in = False
        upstream.routes["/login.php"] = lambda request: httpx.Response(200, text="denied")
        serve_feed(upstream)
        poller = PollLoop(config, client)

        report = await poller.run_cycle()

        assert report.success is False
        assert report.error.startswith("AuthError")
        assert "/rss.php" not in upstream.paths()
        assert poller.get_feed_content_xml() is None
        assert poller.session.state.authenticated is False

    async def test_unexpected_exception_is_a_failed_cycle(self, client, config, upstream):
        poller = PollLoop(config, client)
        poller.fetcher.fetch = AsyncMock(side_effect=RuntimeError("boom"))

        report = await poller.run_cycle()

        assert report.success is False
        assert "boom" in report.error
        assert poller.state is LoopState.IDLE

    async def test_concurrent_cycle_is_refused(self, client, config, upstream):
        poller = PollLoop(config, client)
        poller.state = LoopState.RUNNING

        with pytest.raises(CycleInProgressError):
            await poller.run_cycle()


class TestRunForever:
    """Tests for interval and backoff scheduling."""

    async def test_uses_interval_after_success_and_backoff_after_failure(self, client, config):
        poller = PollLoop(config, client)
        outcomes = iter([True, False, True])
        delays = []

        async def fake_cycle():
            return CycleReport(started_at=datetime.now(), success=next(outcomes))

        async def fake_sleep(delay):
            delays.append(delay)
            if len(delays) == 3:
                raise asyncio.CancelledError()

        poller.run_cycle = fake_cycle
        with patch.object(poller, "_sleep", fake_sleep):
            with pytest.raises(asyncio.CancelledError):
                await poller.run_forever()

        assert delays == [config.check_interval, config.retry_interval, config.check_interval]
