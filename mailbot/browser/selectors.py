"""Selector descriptors passed by value into every BrowserBot action."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Union

from .errors import UnsupportedSelectorKind


class SelectorKind(str, Enum):
    SELECTOR = "selector"
    XPATH = "xpath"
    ID = "id"
    CLASS = "class"
    ALL_SELECTOR = "allSelector"
    ALL_XPATH = "allXpath"

    @classmethod
    def parse(cls, value: Union["SelectorKind", str, None]) -> "SelectorKind":
        """Return the kind for ``value``; ``None`` means a plain selector."""
        if value is None:
            return cls.SELECTOR
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for kind in cls:
                if value == kind.value or value.lower() == kind.name.lower():
                    return kind
        raise UnsupportedSelectorKind(value)

    @property
    def is_bulk(self) -> bool:
        return self in (SelectorKind.ALL_SELECTOR, SelectorKind.ALL_XPATH)

    @property
    def is_xpath(self) -> bool:
        return self in (SelectorKind.XPATH, SelectorKind.ALL_XPATH)


@dataclass(frozen=True)
class Selector:
    """A selector string plus the tag telling how to interpret it."""

    selector: str
    kind: SelectorKind = SelectorKind.SELECTOR

    @classmethod
    def css(cls, selector: str) -> "Selector":
        return cls(selector, SelectorKind.SELECTOR)

    @classmethod
    def xpath(cls, selector: str) -> "Selector":
        return cls(selector, SelectorKind.XPATH)

    @classmethod
    def coerce(cls, target: "SelectorLike") -> "Selector":
        """Build a ``Selector`` from a descriptor, mapping or bare string.

        Mappings may use either ``kind`` or the legacy ``type`` key.
        """
        if isinstance(target, Selector):
            return target
        if isinstance(target, str):
            return cls(target, SelectorKind.SELECTOR)
        if isinstance(target, Mapping):
            selector = target.get("selector")
            if not isinstance(selector, str) or not selector:
                raise ValueError("selector must be a non-empty string.")
            kind = target.get("kind", target.get("type"))
            return cls(selector, SelectorKind.parse(kind))
        raise TypeError(
            "target must be a Selector, a mapping with 'selector', or a string."
        )

    def describe(self) -> dict[str, Any]:
        return {"selector": self.selector, "kind": self.kind.value}


SelectorLike = Union[Selector, Mapping[str, Any], str]

__all__ = ["Selector", "SelectorKind", "SelectorLike"]
