"""feed_relay - HTTP front door and MCP server

This module wires the poll loop into a FastMCP server. Besides the MCP tools,
the server exposes two plain HTTP routes for feed readers and torrent clients:
``/feeds.rss`` serves the published feed and ``/torrent/{file_name}`` serves
cached artifacts.
"""

import asyncio
import os
import sys
from typing import Optional

import click
from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings
from starlette.requests import Request
from starlette.responses import FileResponse, PlainTextResponse, Response

from feed_relay.config import ServerConfig, get_config
from feed_relay.logging_config import setup_logging, logger
from feed_relay.services.poller import PollLoop
from feed_relay.tools.relay_tools import create_relay_tools


FEED_CONTENT_TYPE = "text/xml; charset=UTF-8"


def create_mcp_server(
    config: Optional[ServerConfig] = None,
    poller: Optional[PollLoop] = None,
) -> FastMCP:
    """Create the MCP server with relay tools and HTTP routes.

    Args:
        config: Optional server configuration
        poller: Optional poll loop (one is created from config if omitted)

    Returns:
        Configured FastMCP server instance
    """
    if config is None:
        config = get_config()
    if poller is None:
        poller = PollLoop(config)

    # DNS rebinding protection is disabled by default for development
    dns_protection = os.getenv("MCP_DNS_REBINDING_PROTECTION", "false").lower() == "true"
    allowed_hosts_env = os.getenv("MCP_ALLOWED_HOSTS", "")
    allowed_hosts = [h.strip() for h in allowed_hosts_env.split(",") if h.strip()]
    logger.info(f"DNS rebinding protection: {'enabled' if dns_protection else 'disabled'}")

    mcp_server = FastMCP(
        config.name or "feed_relay",
        host=config.host,
        port=config.port,
        transport_security=TransportSecuritySettings(
            enable_dns_rebinding_protection=dns_protection,
            allowed_hosts=allowed_hosts,
        ),
    )

    register_tools(mcp_server, poller)
    register_routes(mcp_server, poller)

    logger.info(f"Server '{mcp_server.name}' initialized")
    return mcp_server


def register_tools(mcp_server: FastMCP, poller: PollLoop) -> None:
    """Register all relay tools with the server."""
    for tool_func in create_relay_tools(poller):
        mcp_server.tool(name=tool_func.__name__)(tool_func)
        logger.info(f"Registered relay tool: {tool_func.__name__}")


def register_routes(mcp_server: FastMCP, poller: PollLoop) -> None:
    """Register the feed and artifact routes."""

    @mcp_server.custom_route("/feeds.rss", methods=["GET"])
    async def feed(request: Request) -> Response:
        xml = poller.get_feed_content_xml()
        if xml is None:
            return PlainTextResponse("feed not available yet", status_code=503)
        return Response(content=xml, headers={"Content-Type": FEED_CONTENT_TYPE})

    @mcp_server.custom_route("/torrent/{file_name}", methods=["GET"])
    async def torrent(request: Request) -> Response:
        file_name = request.path_params["file_name"]
        logger.info(f"try download {file_name}")
        path = poller.cache.resolve(file_name)
        if path is None:
            return PlainTextResponse("not found", status_code=404)
        return FileResponse(
            path,
            media_type="application/x-bittorrent",
            filename=file_name,
        )


async def run_once(config: ServerConfig) -> bool:
    """Run a single poll cycle and report whether it succeeded."""
    poller = PollLoop(config)
    try:
        report = await poller.run_cycle()
    finally:
        await poller.aclose()
    return report.success


async def serve(config: ServerConfig, transport: str) -> None:
    """Run the poll loop in the background while serving the chosen transport."""
    poller = PollLoop(config)
    server = create_mcp_server(config, poller)
    poll_task = asyncio.create_task(poller.run_forever(), name="poll-loop")
    try:
        if transport == "sse":
            logger.info(f"Starting server with SSE transport on {config.host}:{config.port}")
            await server.run_sse_async()
        elif transport == "streamable-http":
            logger.info(f"Starting server with Streamable HTTP transport on {config.host}:{config.port}")
            server.settings.streamable_http_path = "/mcp"
            await server.run_streamable_http_async()
        else:
            raise ValueError(f"Unknown transport: {transport}")
    finally:
        poll_task.cancel()
        try:
            await poll_task
        except asyncio.CancelledError:
            pass
        await poller.aclose()


@click.command()
@click.option(
    "--port",
    default=None,
    type=int,
    help="Port to listen on (defaults to FEED_RELAY_PORT or 3001)"
)
@click.option(
    "--host",
    default=None,
    help="Host to bind to (use 0.0.0.0 for Docker)"
)
@click.option(
    "--transport",
    type=click.Choice(["sse", "streamable-http"]),
    default="streamable-http",
    help="Transport type (sse or streamable-http)"
)
@click.option(
    "--once",
    is_flag=True,
    help="Run a single poll cycle and exit"
)
def main(port: Optional[int], host: Optional[str], transport: str, once: bool) -> int:
    """Run the feed_relay server with specified transport."""
    config = get_config()
    if port is not None:
        config.port = port
    if host is not None:
        config.host = host
    setup_logging(config)

    try:
        if once:
            ok = asyncio.run(run_once(config))
            sys.exit(0 if ok else 1)
        asyncio.run(serve(config, transport))
        return 0
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        return 0
