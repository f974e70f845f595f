"""Playwright page interaction helpers for webmail automation."""

from .core import BrowserBot, create_browserbot
from .errors import BrowserBotError, ElementNotFound, ErrorReporter, UnsupportedSelectorKind
from .navigation import NavigationTimings, Provider, strategy_for
from .selectors import Selector, SelectorKind
from .session import BrowserSession

__all__ = [
    "BrowserBot",
    "BrowserBotError",
    "BrowserSession",
    "ElementNotFound",
    "ErrorReporter",
    "NavigationTimings",
    "Provider",
    "Selector",
    "SelectorKind",
    "UnsupportedSelectorKind",
    "create_browserbot",
    "strategy_for",
]
