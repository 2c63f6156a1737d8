"""Data models for feed_relay."""
