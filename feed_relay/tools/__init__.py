"""MCP tools for feed_relay."""
