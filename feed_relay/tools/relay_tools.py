"""Feed relay MCP tools.

This module provides MCP tools for inspecting and driving the poll loop.

NOTE: Never use Optional parameters in MCP tools - they break MCP clients.
"""

import logging
from typing import Any, Callable, Dict, List

from mcp.server.fastmcp import Context

from feed_relay.exceptions import CycleInProgressError
from feed_relay.services.poller import PollLoop


logger = logging.getLogger(__name__)


def create_relay_tools(poller: PollLoop) -> List[Callable]:
    """Build the relay tools bound to a poll loop.

    Args:
        poller: The poll loop whose state the tools expose

    Returns:
        List of async tool functions ready for registration
    """

    async def get_relay_status(ctx: Context = None) -> Dict[str, Any]:
        """Report the upstream session state and the outcome of the last poll cycle.

        Args:
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - loop_state: "idle" or "running"
            - cycles: number of cycles started since process start
            - session: authenticated flag, last error, last check time
            - last_cycle: report of the last cycle, or null
            - feed_published: whether a feed is being served
        """
        logger.info("get_relay_status called")

        session = poller.session.state
        report = poller.last_report
        return {
            "success": True,
            "loop_state": poller.state.value,
            "cycles": poller.cycles,
            "session": {
                "authenticated": session.authenticated,
                "error": session.error,
                "last_checked": session.last_checked.isoformat() if session.last_checked else None,
            },
            "last_cycle": report.to_dict() if report else None,
            "feed_published": poller.published is not None,
        }

    async def get_feed_xml(ctx: Context = None) -> Dict[str, Any]:
        """Return the currently published feed document.

        Args:
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - item_count: number of items in the feed
            - built_at: ISO timestamp of the build
            - xml: the RSS document
            - error: string if no feed has been published yet
        """
        logger.info("get_feed_xml called")

        published = poller.published
        if published is None:
            return {
                "success": False,
                "error": "No feed has been published yet",
            }
        return {
            "success": True,
            "item_count": published.item_count,
            "built_at": published.built_at.isoformat(),
            "xml": published.xml,
        }

    async def list_cached_artifacts(ctx: Context = None) -> Dict[str, Any]:
        """List the artifacts present in the local cache.

        Args:
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - count: number of cached artifacts
            - artifacts: list of objects with artifact_id and url
        """
        logger.info("list_cached_artifacts called")

        ids = poller.cache.list_cached()
        return {
            "success": True,
            "count": len(ids),
            "artifacts": [
                {"artifact_id": artifact_id, "url": poller.rebuilder.artifact_url(artifact_id)}
                for artifact_id in ids
            ],
        }

    async def run_poll_cycle(ctx: Context = None) -> Dict[str, Any]:
        """Run one poll cycle immediately instead of waiting for the interval.

        Refused while a cycle is already in flight.

        Args:
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool, whether the cycle completed and published a feed
            - cycle: the cycle report
            - error: string if the cycle failed or could not start
        """
        logger.info("run_poll_cycle called")

        try:
            report = await poller.run_cycle()
        except CycleInProgressError as e:
            return {
                "success": False,
                "error": str(e),
            }

        response = {
            "success": report.success,
            "cycle": report.to_dict(),
        }
        if report.error:
            response["error"] = report.error
        return response

    return [get_relay_status, get_feed_xml, list_cached_artifacts, run_poll_cycle]
