"""FastMCP server that exposes the BrowserBot interaction helpers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastmcp import Context, FastMCP
from playwright.async_api import Error, TimeoutError

from mailbot.browser.core import BrowserBot
from mailbot.browser.errors import ErrorReporter
from mailbot.browser.navigation import Provider
from mailbot.browser.selectors import SelectorKind
from mailbot.browser.session import BrowserSession

logger = logging.getLogger(__name__)

mcp = FastMCP(name="mailbot-browser")


@dataclass
class _SessionBundle:
    session: BrowserSession
    bot: BrowserBot
    reporter: ErrorReporter
    lock: asyncio.Lock


_SESSION_KEY_DEFAULT = "__default__"
_session_config: Dict[str, Any] = {"headless": True, "provider": None}
_session_bundles: Dict[str, _SessionBundle] = {}
_session_registry_lock = asyncio.Lock()

# Methods that live on the session rather than on BrowserBot.
_SESSION_METHODS = {"navigate", "ensure_login"}


async def configure_browser_agent(
    *,
    headless: bool = True,
    provider: Provider | str | None = None,
) -> None:
    """Set the default session configuration and reset existing sessions.

    Without ``provider`` each session picks the provider of the webmail
    domain it navigates to.
    """
    global _session_config
    _session_config = {
        "headless": headless,
        "provider": Provider.parse(provider) if provider is not None else None,
    }
    await _reset_sessions()


async def _run_bot(
    method: str,
    *args,
    client_id: Optional[str] = None,
    **kwargs,
) -> Dict[str, Any]:
    """Invoke a session or BrowserBot method inside a per-client critical section."""
    bundle = await _get_bundle(client_id)
    async with bundle.lock:
        bundle.reporter.clear()
        try:
            if method in _SESSION_METHODS:
                return await getattr(bundle.session, method)(*args, **kwargs)
            await bundle.session.get_page()
            outcome = await getattr(bundle.bot, method)(*args, **kwargs)
        except TimeoutError as exc:
            return {"error": "timeout", "operation": method, "message": str(exc)}
        except Error as exc:
            return {"error": "playwright", "operation": method, "message": str(exc)}
        except Exception as exc:
            logger.exception("Unexpected error in %s", method)
            return {"error": "unexpected", "operation": method, "message": str(exc)}
    failure = bundle.reporter.last_error
    if failure is not None:
        return {
            "error": failure["error"],
            "operation": method,
            "message": failure["message"],
            "details": failure["details"],
        }
    return {"operation": method, "result": outcome}


async def _reset_sessions() -> None:
    """Shutdown and clear all active sessions."""
    async with _session_registry_lock:
        bundles = list(_session_bundles.values())
        _session_bundles.clear()
    for bundle in bundles:
        try:
            await bundle.session.shutdown()
        except Exception:
            logger.warning("Failed to shut down browser session", exc_info=True)


async def _get_bundle(client_id: Optional[str]) -> _SessionBundle:
    """Return the session bundle for the given client, creating it if needed."""
    key = client_id or _SESSION_KEY_DEFAULT
    async with _session_registry_lock:
        bundle = _session_bundles.get(key)
        if bundle is None:
            session = BrowserSession(
                headless=_session_config["headless"],
                provider=_session_config["provider"],
            )
            reporter = ErrorReporter()
            bot = BrowserBot(session, context_id=key, error_handler=reporter)
            bundle = _SessionBundle(
                session=session, bot=bot, reporter=reporter, lock=asyncio.Lock()
            )
            _session_bundles[key] = bundle
    return bundle


def _client_id_from_context(ctx: Optional[Context]) -> Optional[str]:
    return getattr(ctx, "client_id", None) if ctx is not None else None


def _target(selector: str, kind: str) -> Dict[str, str]:
    return {"selector": selector, "kind": kind}


@mcp.tool
async def ensure_login(
    domain: str,
    *,
    force: bool = False,
    ctx: Optional[Context] = None,
) -> Dict[str, Any]:
    """Ensure an authenticated webmail session is cached for ``domain``."""
    return await _run_bot(
        "ensure_login",
        domain,
        force=force,
        client_id=_client_id_from_context(ctx),
    )


@mcp.tool
async def navigate(
    url: str,
    *,
    wait_until: str = "load",
    ctx: Optional[Context] = None,
) -> Dict[str, Any]:
    """Navigate to ``url`` and return the final location and title."""
    return await _run_bot(
        "navigate",
        url,
        wait_until=wait_until,
        client_id=_client_id_from_context(ctx),
    )


@mcp.tool
async def type_text(
    selector: str,
    text: str,
    *,
    kind: str = SelectorKind.SELECTOR.value,
    ctx: Optional[Context] = None,
) -> Dict[str, Any]:
    """Type ``text`` into the element like a human; newlines press Enter."""
    return await _run_bot(
        "type_text",
        _target(selector, kind),
        text,
        client_id=_client_id_from_context(ctx),
    )


@mcp.tool
async def key_press(
    selector: str,
    key: str,
    *,
    kind: str = SelectorKind.SELECTOR.value,
    ctx: Optional[Context] = None,
) -> Dict[str, Any]:
    """Focus the element and press ``key`` (e.g. ``Enter``)."""
    return await _run_bot(
        "key_press",
        _target(selector, kind),
        key,
        client_id=_client_id_from_context(ctx),
    )


@mcp.tool
async def click_element(
    selector: str,
    *,
    kind: str = SelectorKind.SELECTOR.value,
    settle_ms: Optional[int] = None,
    ctx: Optional[Context] = None,
) -> Dict[str, Any]:
    """Click the element and wait for the resulting navigations to settle."""
    return await _run_bot(
        "click_element",
        _target(selector, kind),
        settle_ms=settle_ms,
        client_id=_client_id_from_context(ctx),
    )


@mcp.tool
async def clear_input(
    selector: str,
    *,
    kind: str = SelectorKind.SELECTOR.value,
    ctx: Optional[Context] = None,
) -> Dict[str, Any]:
    """Clear an input field by selecting its contents and deleting them."""
    return await _run_bot(
        "clear_input",
        _target(selector, kind),
        client_id=_client_id_from_context(ctx),
    )


@mcp.tool
async def select_option(
    selector: str,
    value: str,
    *,
    kind: str = SelectorKind.SELECTOR.value,
    ctx: Optional[Context] = None,
) -> Dict[str, Any]:
    """Select the option with ``value`` in a dropdown (CSS or XPath)."""
    return await _run_bot(
        "select_option",
        _target(selector, kind),
        value,
        client_id=_client_id_from_context(ctx),
    )


@mcp.tool
async def check_element(
    selector: str,
    *,
    kind: str = SelectorKind.SELECTOR.value,
    ctx: Optional[Context] = None,
) -> Dict[str, Any]:
    """Report whether the selector matches an element on the current page."""
    return await _run_bot(
        "check_element",
        _target(selector, kind),
        client_id=_client_id_from_context(ctx),
    )


@mcp.tool
async def get_attribute(
    selector: str,
    attribute: str,
    *,
    kind: str = SelectorKind.SELECTOR.value,
    ctx: Optional[Context] = None,
) -> Dict[str, Any]:
    """Read an attribute (or name/value/href/text/html) from an element."""
    return await _run_bot(
        "get_attribute",
        _target(selector, kind),
        attribute,
        client_id=_client_id_from_context(ctx),
    )


@mcp.tool
async def scroll_to_bottom(ctx: Optional[Context] = None) -> Dict[str, Any]:
    """Scroll the current page down to the end of the document."""
    return await _run_bot(
        "scroll_to_bottom_page",
        client_id=_client_id_from_context(ctx),
    )


@mcp.tool
async def random_scroll(
    *,
    max_scrolling_time: int = 60000,
    min_scrolling_time: int = 30000,
    max_scrolling_speed: int = 3000,
    min_scrolling_speed: int = 500,
    ctx: Optional[Context] = None,
) -> Dict[str, Any]:
    """Browse the page with randomized, mostly downward scrolling."""
    return await _run_bot(
        "random_scroll",
        max_scrolling_time,
        min_scrolling_time,
        max_scrolling_speed,
        min_scrolling_speed,
        client_id=_client_id_from_context(ctx),
    )


@mcp.tool
async def scroll_to_element(
    selector: str,
    *,
    kind: str = SelectorKind.SELECTOR.value,
    offset: int = 500,
    ctx: Optional[Context] = None,
) -> Dict[str, Any]:
    """Scroll near the element, linger, then bring it into view."""
    return await _run_bot(
        "scroll_to_element",
        _target(selector, kind),
        offset=offset,
        client_id=_client_id_from_context(ctx),
    )


def main() -> None:
    """Run the Mailbot MCP server using the default configuration."""
    mcp.run()


__all__ = [
    "mcp",
    "configure_browser_agent",
    "ensure_login",
    "navigate",
    "type_text",
    "key_press",
    "click_element",
    "clear_input",
    "select_option",
    "check_element",
    "get_attribute",
    "scroll_to_bottom",
    "random_scroll",
    "scroll_to_element",
    "main",
]
