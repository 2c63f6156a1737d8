"""Feed fetcher service.

This module downloads the upstream RSS feed with the authenticated client and
parses it incrementally while the body streams in.
"""

import logging
from typing import Dict, List, Optional

import httpx
from lxml import etree

from feed_relay.config import ServerConfig
from feed_relay.models.schemas import FeedItem, FetchResult


logger = logging.getLogger(__name__)

FEED_HEADERS = {
    "Accept": "application/rss+xml,application/xml;q=0.9,text/xml;q=0.8,*/*;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "Upgrade-Insecure-Requests": "1",
}


def _local_name(tag) -> str:
    if not isinstance(tag, str):
        return ""
    return etree.QName(tag).localname


def _text(element) -> str:
    return (element.text or "").strip()


def item_from_element(element) -> Optional[FeedItem]:
    """Convert a parsed <item> element into a FeedItem.

    Child elements other than title, link and guid are kept as metadata; an
    element with attributes but no text (such as <enclosure>) contributes
    ``name.attr`` entries.

    Returns:
        A FeedItem, or None if the item has neither guid nor link
    """
    fields: Dict[str, str] = {}
    metadata: Dict[str, str] = {}

    for child in element:
        name = _local_name(child.tag)
        if not name:
            continue
        value = _text(child)
        if name in ("title", "link", "guid"):
            fields[name] = value
            continue
        if value:
            metadata.setdefault(name, value)
        for attr, attr_value in child.attrib.items():
            metadata[f"{name}.{_local_name(attr)}"] = attr_value

    link = fields.get("link", "")
    guid = fields.get("guid") or link
    if not guid:
        return None

    return FeedItem(
        guid=guid,
        link=link,
        title=fields.get("title", ""),
        metadata=metadata,
    )


class FeedStreamParser:
    """Incremental RSS 2.0 parser fed with raw byte chunks.

    Items are emitted as soon as their closing tag is seen and the element is
    released afterwards, so memory stays bounded by a single item.
    """

    def __init__(self):
        self._parser = etree.XMLPullParser(events=("end",), resolve_entities=False)
        self.meta: Dict[str, str] = {}
        self.items: List[FeedItem] = []

    def feed(self, chunk: bytes) -> None:
        self._parser.feed(chunk)
        self._drain()

    def close(self) -> None:
        self._parser.close()
        self._drain()

    def _drain(self) -> None:
        for _, element in self._parser.read_events():
            name = _local_name(element.tag)
            parent = element.getparent()
            parent_name = _local_name(parent.tag) if parent is not None else ""

            if name == "item":
                item = item_from_element(element)
                if item is not None:
                    self.items.append(item)
                element.clear()
                # drop already-processed siblings too
                while element.getprevious() is not None:
                    del element.getparent()[0]
            elif parent_name == "channel" and name and len(element) == 0 and _text(element):
                self.meta.setdefault(name, _text(element))


class FeedFetcher:
    """Retrieves the upstream feed through the shared client."""

    def __init__(self, client: httpx.AsyncClient, config: ServerConfig):
        self.client = client
        self.config = config

    async def fetch(self) -> FetchResult:
        """Fetch and parse the upstream feed.

        Transport, status and parse failures are reported in
        ``FetchResult.error`` instead of being raised.

        Returns:
            FetchResult with feed meta and items in source order
        """
        url = self.config.rss_url
        logger.info(f"Fetching feed: {url}")

        result = FetchResult()
        parser = FeedStreamParser()

        try:
            async with self.client.stream(
                "GET",
                url,
                headers={**FEED_HEADERS, "Referer": self.config.site_url},
            ) as response:
                if response.status_code != 200:
                    result.error = f"status code wrong: {response.status_code}"
                    logger.error(f"Failed to fetch feed: {result.error}")
                    return result

                async for chunk in response.aiter_bytes():
                    parser.feed(chunk)
            parser.close()
        except httpx.HTTPError as e:
            result.error = f"transport error: {e}"
        except etree.XMLSyntaxError as e:
            result.error = f"parse error: {e}"

        result.meta = parser.meta
        result.items = parser.items

        if result.error:
            logger.error(f"Failed to fetch feed: {result.error}")
        else:
            logger.info(f"Parsed {len(result.items)} items from feed")
        return result
