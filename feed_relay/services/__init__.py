"""Services for feed_relay."""

from .client import create_client
from .feed_builder import FeedRebuilder
from .feed_fetcher import FeedFetcher
from .poller import PollLoop
from .session import SessionManager

__all__ = [
    "create_client",
    "FeedRebuilder",
    "FeedFetcher",
    "PollLoop",
    "SessionManager",
]
