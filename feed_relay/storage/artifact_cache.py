"""Artifact cache for feed_relay.

This module downloads the .torrent file behind each feed item into a local
directory. The directory itself is the index: a file at the expected path
means the artifact is cached. Downloads go to a ``.part`` file that is renamed
into place only after the write stream closed, so readers never see a
truncated artifact.

Cache location: ./torrent-cache (or FEED_RELAY_CACHE_DIR env var)
"""

import logging
import os
import re
from pathlib import Path
from typing import List, Optional

import httpx

from feed_relay.config import ServerConfig
from feed_relay.exceptions import DownloadFailure, WriteFailure
from feed_relay.models.schemas import DownloadOutcome, DownloadResult, FeedItem


logger = logging.getLogger(__name__)

ARTIFACT_ID_PATTERN = re.compile(r"id=(\d+)&")
ARTIFACT_FILE_PATTERN = re.compile(r"^(\d+)\.torrent$")
ARTIFACT_SUFFIX = ".torrent"
PARTIAL_SUFFIX = ".part"


def extract_artifact_id(link: str) -> Optional[str]:
    """Extract the artifact id embedded in a feed item link.

    Args:
        link: Item link such as ``https://host/details.php?id=123&hit=1``

    Returns:
        The numeric id as a string, or None if the link has no ``id=<n>&``
    """
    match = ARTIFACT_ID_PATTERN.search(link or "")
    return match.group(1) if match else None


class ArtifactCache:
    """Downloads and serves cached artifacts, one item at a time."""

    def __init__(self, client: httpx.AsyncClient, config: ServerConfig):
        self.client = client
        self.config = config
        self.cache_dir = Path(config.cache_dir)

    def path_for(self, artifact_id: str) -> Path:
        return self.cache_dir / f"{artifact_id}{ARTIFACT_SUFFIX}"

    def resolve(self, file_name: str) -> Optional[Path]:
        """Map a requested file name to a cached artifact.

        Only ``<digits>.torrent`` names are accepted, which keeps lookups
        inside the cache directory.

        Returns:
            Path of the cached file, or None if the name is invalid or not cached
        """
        match = ARTIFACT_FILE_PATTERN.match(file_name)
        if not match:
            return None
        path = self.path_for(match.group(1))
        return path if path.is_file() else None

    def list_cached(self) -> List[str]:
        """List the ids of all cached artifacts, sorted numerically."""
        if not self.cache_dir.is_dir():
            return []
        ids = []
        for entry in self.cache_dir.iterdir():
            match = ARTIFACT_FILE_PATTERN.match(entry.name)
            if match and entry.is_file():
                ids.append(match.group(1))
        return sorted(ids, key=int)

    async def download_all(self, items: List[FeedItem]) -> List[DownloadResult]:
        """Cache the artifact of every item, sequentially and in input order.

        Downloads are deliberately not parallelized to keep the load on the
        upstream host low. Every item yields exactly one result.

        Args:
            items: Feed items to process

        Returns:
            One DownloadResult per item, in the same order
        """
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        results = []
        for item in items:
            results.append(await self.download(item))

        downloaded = sum(1 for r in results if r.outcome is DownloadOutcome.DOWNLOADED)
        failed = sum(1 for r in results if r.outcome is DownloadOutcome.FAILED)
        logger.info(
            f"Processed {len(results)} artifacts: {downloaded} downloaded, "
            f"{len(results) - downloaded - failed} cached, {failed} failed"
        )
        return results

    async def download(self, item: FeedItem) -> DownloadResult:
        """Cache the artifact of a single item.

        Returns:
            DownloadResult with outcome cached-existing, downloaded or failed
        """
        artifact_id = extract_artifact_id(item.link)
        if artifact_id is None:
            logger.warning(f"No artifact id in link, skipping: {item.link}")
            return DownloadResult(
                guid=item.guid,
                artifact_id=None,
                outcome=DownloadOutcome.FAILED,
                error="link carries no artifact id",
            )

        path = self.path_for(artifact_id)
        if path.exists():
            return DownloadResult(item.guid, artifact_id, DownloadOutcome.CACHED_EXISTING)

        try:
            await self._stream_to_file(self.config.download_url(artifact_id), path)
        except (DownloadFailure, WriteFailure) as e:
            logger.error(f"Failed to cache artifact {artifact_id}: {e}")
            return DownloadResult(item.guid, artifact_id, DownloadOutcome.FAILED, str(e))

        logger.info(f"Cached artifact {artifact_id}")
        return DownloadResult(item.guid, artifact_id, DownloadOutcome.DOWNLOADED)

    async def _stream_to_file(self, url: str, path: Path) -> None:
        """Stream ``url`` into ``path`` via a partial file.

        Raises:
            DownloadFailure: On transport errors or a non-200 status
            WriteFailure: If the partial file cannot be written or renamed
        """
        part_path = path.with_name(path.name + PARTIAL_SUFFIX)
        try:
            async with self.client.stream("GET", url) as response:
                if response.status_code != 200:
                    raise DownloadFailure(f"status code wrong: {response.status_code}")

                with open(part_path, "wb") as handle:
                    async for chunk in response.aiter_bytes():
                        handle.write(chunk)

            os.replace(part_path, path)
        except httpx.HTTPError as e:
            self._discard(part_path)
            raise DownloadFailure(f"transport error: {e}") from e
        except OSError as e:
            self._discard(part_path)
            raise WriteFailure(f"write error: {e}") from e
        except DownloadFailure:
            self._discard(part_path)
            raise

    @staticmethod
    def _discard(part_path: Path) -> None:
        try:
            part_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove partial file {part_path}: {e}")
        else:
            logger.debug(f"{part_path} unlinked")
