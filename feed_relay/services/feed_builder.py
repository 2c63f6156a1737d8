"""Feed rebuilder service.

Builds the RSS 2.0 document served to local clients, with every item link
pointing at the cached copy of its artifact.
"""

from datetime import datetime, timezone
from email.utils import format_datetime
from typing import List

from lxml import etree

from feed_relay.config import ServerConfig
from feed_relay.models.schemas import DownloadResult, FeedItem, OutputFeed


GENERATOR = "feed_relay"


class FeedRebuilder:
    """Cross-references feed items with download results to build the output feed."""

    def __init__(self, config: ServerConfig):
        self.config = config

    def artifact_url(self, artifact_id: str) -> str:
        return f"{self.config.base_url}/torrent/{artifact_id}.torrent"

    def build(self, items: List[FeedItem], results: List[DownloadResult]) -> OutputFeed:
        """Build the output feed.

        Items keep their source order. An item is left out when it has no
        result or its download failed.

        Args:
            items: Items of the upstream feed
            results: Download results, matched to items by guid

        Returns:
            The serialized OutputFeed
        """
        by_guid = {result.guid: result for result in results}
        now = datetime.now(timezone.utc)

        rss = etree.Element("rss", version="2.0")
        channel = etree.SubElement(rss, "channel")
        etree.SubElement(channel, "title").text = self.config.feed_title
        etree.SubElement(channel, "description").text = self.config.feed_description
        etree.SubElement(channel, "link").text = self.config.feed_link
        etree.SubElement(channel, "generator").text = GENERATOR
        etree.SubElement(channel, "lastBuildDate").text = format_datetime(now)

        count = 0
        for item in items:
            result = by_guid.get(item.guid)
            if result is None or not result.available:
                continue

            entry = etree.SubElement(channel, "item")
            etree.SubElement(entry, "title").text = item.title
            etree.SubElement(entry, "link").text = self.artifact_url(result.artifact_id)
            etree.SubElement(entry, "guid", isPermaLink="false").text = item.guid
            if item.metadata.get("pubDate"):
                etree.SubElement(entry, "pubDate").text = item.metadata["pubDate"]
            count += 1

        xml = etree.tostring(
            rss, xml_declaration=True, encoding="UTF-8", pretty_print=True
        ).decode("utf-8")
        return OutputFeed(xml=xml, item_count=count, built_at=now)
