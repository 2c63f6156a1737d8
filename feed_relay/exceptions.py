"""Exceptions raised by feed_relay services."""


class RelayError(Exception):
    """Base class for relay failures."""


class AuthError(RelayError):
    """The upstream session could not be verified or restored."""


class FetchError(RelayError):
    """The upstream feed could not be retrieved or parsed."""


class DownloadFailure(RelayError):
    """A single artifact could not be retrieved from upstream."""


class WriteFailure(RelayError):
    """A single artifact could not be written to the cache."""


class CycleInProgressError(RelayError):
    """A poll cycle was requested while another one is still running."""
