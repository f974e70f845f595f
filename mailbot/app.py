"""ASGI app serving the mailbot webmail tools over streamable HTTP."""

from __future__ import annotations

from fastmcp import FastMCP

from mailbot.mcp import mcp

app = mcp.http_app()


def get_app() -> FastMCP:
    """Return the server whose tools ``app`` serves."""
    return mcp
