"""Main module for the feed_relay server.

This module allows the server to be run as a Python module using:
python -m feed_relay

It delegates to the server application's main function.
"""

from feed_relay.server.app import main

if __name__ == "__main__":
    main()
