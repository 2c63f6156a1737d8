"""Shared HTTP client context.

Every upstream call goes through one cookie-bearing ``httpx.AsyncClient`` so
the session cookies minted at login are sent with feed and artifact requests.
"""

from typing import Optional

import httpx

from feed_relay.config import BROWSER_USER_AGENT, ServerConfig


BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9,ja;q=0.8,zh-CN;q=0.7,zh;q=0.6",
    "User-Agent": BROWSER_USER_AGENT,
}


def create_client(
    config: ServerConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the client shared by the session manager, fetcher and cache.

    Args:
        config: Server configuration
        transport: Optional transport override (used by tests)

    Returns:
        An AsyncClient with an empty cookie jar
    """
    return httpx.AsyncClient(
        cookies=httpx.Cookies(),
        follow_redirects=True,
        timeout=httpx.Timeout(config.request_timeout),
        verify=config.verify_tls,
        headers=BROWSER_HEADERS,
        transport=transport,
    )
