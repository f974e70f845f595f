"""FastMCP server exposing the mailbot interaction helpers."""

from .server import configure_browser_agent, mcp

__all__ = ["configure_browser_agent", "mcp"]
