"""Storage layer for feed_relay."""

from .artifact_cache import ArtifactCache, extract_artifact_id

__all__ = [
    "ArtifactCache",
    "extract_artifact_id",
]
