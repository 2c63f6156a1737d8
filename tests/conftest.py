"""Shared fixtures for feed_relay tests.

``FakeUpstream`` plays the tracker behind an ``httpx.MockTransport`` so the
services run against a real AsyncClient with a real cookie jar.
"""

from typing import Callable, Dict, List
from xml.sax.saxutils import escape

import httpx
import pytest

from feed_relay.config import LOGIN_FLOWS, ServerConfig
from feed_relay.services.client import create_client


SITE = "https://tracker.example/"


def rss_document(items: List[Dict[str, str]], title: str = "Tracker") -> str:
    """Render a minimal RSS 2.0 document from item dicts."""
    body = "".join(
        "<item>"
        + "".join(f"<{key}>{escape(value)}</{key}>" for key, value in item.items())
        + "</item>"
        for item in items
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel>'
        f"<title>{title}</title><link>{SITE}</link><description>latest</description>"
        f"{body}</channel></rss>"
    )


class FakeUpstream:
    """Routes requests by path and records every call."""

    def __init__(self):
        self.calls: List[httpx.Request] = []
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.logged_in = True

        self.routes["/"] = self._home
        self.routes["/login.php"] = lambda request: httpx.Response(200, text="<form></form>")
        self.routes["/account-upd.php"] = lambda request: httpx.Response(200, text="ok")
        self.routes["/rss.php"] = lambda request: httpx.Response(200, text=rss_document([]))

    def _home(self, request: httpx.Request) -> httpx.Response:
        if self.logged_in:
            return httpx.Response(200, text="welcome")
        return httpx.Response(200, headers={"Refresh": "0; url=login.php"}, text="")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404)
        return route(request)

    def paths(self) -> List[str]:
        return [request.url.path for request in self.calls]

    def artifact(self, artifact_id: str, body: bytes = b"d8:announce0:e") -> None:
        previous = self.routes.get("/download.php")
        artifacts = getattr(previous, "artifacts", {}) if previous else {}
        artifacts[artifact_id] = body

        def download(request: httpx.Request) -> httpx.Response:
            wanted = request.url.params.get("id")
            if wanted not in artifacts:
                return httpx.Response(404)
            value = artifacts[wanted]
            if isinstance(value, Exception):
                raise value
            return httpx.Response(200, content=value)

        download.artifacts = artifacts
        self.routes["/download.php"] = download

    def failing_artifact(self, artifact_id: str) -> None:
        self.artifact(artifact_id)
        self.routes["/download.php"].artifacts[artifact_id] = httpx.ConnectError("connection refused")


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def config(tmp_path) -> ServerConfig:
    return ServerConfig(
        username="alice",
        password="secret",
        site_url=SITE,
        login_flow=LOGIN_FLOWS["account-update"],
        cache_dir=str(tmp_path / "torrent-cache"),
        public_base_url="http://relay.local:3001",
        check_interval=0.01,
        retry_interval=0.02,
    )


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
async def client(config, upstream):
    client = create_client(config, transport=httpx.MockTransport(upstream.handler))
    yield client
    await client.aclose()
