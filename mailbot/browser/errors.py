"""Error types and the shared error handler used by BrowserBot.

Public BrowserBot operations never raise: failures are routed to a single
handler together with the caller's context identifier and diagnostics, and
the operation returns ``None``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Protocol

logger = logging.getLogger(__name__)


class BrowserBotError(Exception):
    """Base class for errors raised inside the interaction layer."""


class UnsupportedSelectorKind(BrowserBotError):
    """Raised when a selector kind is outside the recognized set."""

    def __init__(self, kind: object, *, reason: Optional[str] = None) -> None:
        self.kind = kind
        message = f"Unsupported selector type: {kind}."
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)


class ElementNotFound(BrowserBotError):
    """Raised when a selector resolves to no element."""

    def __init__(self, selector: str, kind: object) -> None:
        self.selector = selector
        self.kind = kind
        label = "XPath" if str(getattr(kind, "value", kind)) in ("xpath", "allXpath") else "Selector"
        super().__init__(f"Element with {label} selector '{selector}' not found")


class ErrorHandler(Protocol):
    def __call__(
        self,
        context_id: Optional[str],
        error: BaseException,
        operation: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        ...


class ErrorReporter:
    """Default error handler: log the failure and remember the last one.

    ``last_error`` lets callers that need a failure signal (the MCP layer,
    tests) inspect what happened after an operation returned ``None``.
    """

    def __init__(self) -> None:
        self.last_error: Optional[Dict[str, Any]] = None

    def __call__(
        self,
        context_id: Optional[str],
        error: BaseException,
        operation: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        record: Dict[str, Any] = {
            "context_id": context_id,
            "operation": operation,
            "error": type(error).__name__,
            "message": str(error),
            "details": {k: v for k, v in (details or {}).items() if v is not None},
        }
        logger.error(
            "%s failed (context=%s): %s %s",
            operation or "operation",
            context_id,
            record["message"],
            record["details"],
            exc_info=error,
        )
        self.last_error = record

    def clear(self) -> None:
        self.last_error = None


__all__ = [
    "BrowserBotError",
    "ElementNotFound",
    "ErrorHandler",
    "ErrorReporter",
    "UnsupportedSelectorKind",
]
