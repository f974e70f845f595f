"""Mailbot: human-like webmail browser automation with an MCP server."""

from .app import app
from .browser import BrowserBot, BrowserSession, Provider, Selector, SelectorKind, create_browserbot
from .mcp import configure_browser_agent, mcp

__all__ = [
    "BrowserBot",
    "BrowserSession",
    "Provider",
    "Selector",
    "SelectorKind",
    "create_browserbot",
    "mcp",
    "configure_browser_agent",
    "app",
]
