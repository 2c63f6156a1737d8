"""feed_relay - authenticated tracker feed relay with a local artifact cache."""

__version__ = "0.1.0"
