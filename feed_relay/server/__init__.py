"""HTTP/MCP server package initialization"""

from feed_relay.server.app import create_mcp_server

__all__ = ["create_mcp_server"]
