"""Data models for feed_relay.

This module defines the structures passed between the stages of a poll cycle.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


@dataclass
class SessionState:
    """Observable state of the upstream session. Cookies live in the client jar."""

    authenticated: bool = False
    error: Optional[str] = None
    last_checked: Optional[datetime] = None


@dataclass(frozen=True)
class FeedItem:
    """One <item> of the upstream feed."""

    guid: str
    link: str
    title: str
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class FetchResult:
    """Outcome of a feed fetch. Callers must check ``error`` before using items."""

    meta: Dict[str, str] = field(default_factory=dict)
    items: List[FeedItem] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DownloadOutcome(str, Enum):
    CACHED_EXISTING = "cached-existing"
    DOWNLOADED = "downloaded"
    FAILED = "failed"


@dataclass(frozen=True)
class DownloadResult:
    """Result of caching the artifact of one feed item."""

    guid: str
    artifact_id: Optional[str]
    outcome: DownloadOutcome
    error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.outcome is not DownloadOutcome.FAILED


@dataclass(frozen=True)
class OutputFeed:
    """A regenerated feed document ready to be served."""

    xml: str
    item_count: int
    built_at: datetime


@dataclass
class CycleReport:
    """Summary of one poll cycle."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    success: bool = False
    error: Optional[str] = None
    items: int = 0
    downloaded: int = 0
    cached: int = 0
    failed: int = 0
    published_items: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "success": self.success,
            "error": self.error,
            "items": self.items,
            "downloaded": self.downloaded,
            "cached": self.cached,
            "failed": self.failed,
            "published_items": self.published_items,
        }
