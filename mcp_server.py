"""Import path ``mcp_server:mcp`` for hosts that load the webmail tool server by module."""

from mailbot.mcp.server import configure_browser_agent, mcp  # noqa: F401

__all__ = ["mcp", "configure_browser_agent"]
