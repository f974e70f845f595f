"""Human-like page interaction helpers for webmail automation.

``BrowserBot`` resolves selector descriptors to live Playwright element
handles and performs one interaction per call: typing, clicking (with
provider-specific navigation settlement), clearing inputs, selecting
dropdown options and scrolling.  Every public method catches its own errors
and forwards them to the configured error handler with the selector, kind
and relevant arguments, then returns ``None``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import ElementNotFound, ErrorHandler, ErrorReporter, UnsupportedSelectorKind
from .selectors import Selector, SelectorKind, SelectorLike
from .session import BrowserSession
from ..helpers import compute_end_time, normalize_bounds, random_number

logger = logging.getLogger(__name__)

XPATH_FIRST_MATCH_SCRIPT = """
(xpath) => document.evaluate(
    xpath, document, null, XPathResult.FIRST_ORDERED_NODE_TYPE, null
).singleNodeValue
"""

XPATH_EXISTS_SCRIPT = """
(xpath) => document.evaluate(
    xpath, document, null, XPathResult.FIRST_ORDERED_NODE_TYPE, null
).singleNodeValue !== null
"""

IS_FOCUSED_SCRIPT = "(el) => document.activeElement === el"

DROPDOWN_IDENTITY_SCRIPT = """
(el) => ({
    name: el.name || null,
    id: el.id || null,
    className: (typeof el.className === 'string' && el.className.trim()) || null,
})
"""

ATTRIBUTE_SCRIPTS = {
    "name": "(el) => el.name || null",
    "value": "(el) => el.value || null",
    "href": "(el) => el.href || null",
    "text": "(el) => el.innerText || el.textContent || null",
    "html": "(el) => el.innerHTML || null",
}

CUSTOM_ATTRIBUTE_SCRIPT = "(el, attr) => el.getAttribute(attr) || null"

SCROLL_TO_BOTTOM_SCRIPT = """
async ({ distance, delay }) => {
    const root = document.scrollingElement || document.documentElement;
    while (root.scrollTop + window.innerHeight < root.scrollHeight) {
        const before = root.scrollTop;
        root.scrollBy(0, distance);
        await new Promise((resolve) => setTimeout(resolve, delay));
        if (root.scrollTop === before) {
            break;
        }
    }
}
"""

RANDOM_SCROLL_SCRIPT = """
async ({ minSpeed, maxSpeed, endTime, downProbability, minStep, maxStep }) => {
    const delay = (ms) => new Promise((resolve) => setTimeout(resolve, ms));
    while (Date.now() < endTime) {
        const isScrollDown = Math.random() < downProbability;
        const step = Math.floor(Math.random() * (maxStep - minStep + 1)) + minStep;
        const next = window.scrollY + (isScrollDown ? step : -step);
        window.scrollTo(0, Math.max(0, next));
        await delay(Math.random() * (maxSpeed - minSpeed) + minSpeed);
    }
}
"""

SCROLL_TO_ELEMENT_SCRIPT = """
async ({ selector, isXpath, offset, minSpeed, maxSpeed, endTime, dwellMs, minStep, maxStep }) => {
    const delay = (ms) => new Promise((resolve) => setTimeout(resolve, ms));
    const el = isXpath
        ? document.evaluate(selector, document, null, XPathResult.FIRST_ORDERED_NODE_TYPE, null).singleNodeValue
        : document.querySelector(selector);
    if (!el) {
        return false;
    }
    const targetPosition = el.getBoundingClientRect().top + window.scrollY;
    const initialOffset = Math.max(0, targetPosition - offset);
    window.scrollTo(0, initialOffset);
    await delay(dwellMs);
    while (Date.now() < endTime) {
        const step = Math.floor(Math.random() * (maxStep - minStep + 1)) + minStep;
        window.scrollTo(0, initialOffset + step);
        await delay(Math.random() * (maxSpeed - minSpeed) + minSpeed);
    }
    el.scrollIntoView({ behavior: "smooth", block: "center" });
    return true;
}
"""

RECAPTCHA_CLIENTS_SCRIPT = """
() => {
    if (typeof ___grecaptcha_cfg === 'undefined') {
        return [];
    }
    return Object.entries(___grecaptcha_cfg.clients).map(([cid, client]) => {
        const data = { id: cid, version: cid >= 10000 ? 'V3' : 'V2' };
        const objects = Object.entries(client).filter(([_, value]) => value && typeof value === 'object');
        objects.forEach(([toplevelKey, toplevel]) => {
            const found = Object.entries(toplevel).find(([_, value]) => (
                value && typeof value === 'object' && 'sitekey' in value && 'size' in value
            ));
            if (toplevel instanceof HTMLElement && toplevel.tagName === 'DIV') {
                data.pageurl = toplevel.baseURI;
            }
            if (found) {
                const [sublevelKey, sublevel] = found;
                data.sitekey = sublevel.sitekey;
                const callbackKey = data.version === 'V2' ? 'callback' : 'promise-callback';
                const callback = sublevel[callbackKey];
                if (!callback) {
                    data.callback = null;
                    data.function = null;
                } else {
                    data.function = typeof callback === 'function' ? callback.name || 'anonymous' : callback;
                    const keys = [cid, toplevelKey, sublevelKey, callbackKey].map((key) => `['${key}']`).join('');
                    data.callback = `___grecaptcha_cfg.clients${keys}`;
                }
            }
        });
        return data;
    });
}
"""

CLEAR_CLICK_RANGE = (3, 6)
TYPE_DELAY_RANGE_MS = (1, 2)
SCROLL_STEP_RANGE_PX = (300, 550)
DWELL_STEP_RANGE_PX = (400, 550)
SCROLL_DOWN_PROBABILITY = 0.75
ELEMENT_DWELL_MS = 1500


class BrowserBot:
    """Interaction helpers bound to one ``BrowserSession``.

    ``context_id`` is an opaque identifier passed to the error handler with
    every failure so the caller can tell which job or account it belongs to.
    """

    def __init__(
        self,
        session: BrowserSession,
        *,
        context_id: Optional[str] = None,
        error_handler: Optional[ErrorHandler] = None,
        wait_range_ms: Tuple[int, int] = (500, 1500),
    ) -> None:
        self.session = session
        self.context_id = context_id
        self.error_handler = error_handler or ErrorReporter()
        self._wait_range_ms = normalize_bounds(*wait_range_ms)

    @property
    def page(self) -> Any:
        return self.session.page

    # ------------------------------------------------------------------ #
    # Element lookup
    # ------------------------------------------------------------------ #

    async def fetch_dom(self, script: str, arg: Optional[Any] = None) -> Any:
        """Evaluate ``script`` in the page and return its result."""
        try:
            if arg is None:
                result = await self.page.evaluate(script)
            else:
                result = await self.page.evaluate(script, arg)
            return result
        except Exception as exc:
            self._handle_error("fetch_dom", exc)
            return None

    async def check_element(self, target: SelectorLike) -> Optional[bool]:
        """Return whether ``target`` matches at least one element."""
        selector: Optional[Selector] = None
        try:
            selector = Selector.coerce(target)
            kind = SelectorKind.parse(selector.kind)
            if kind is SelectorKind.XPATH:
                return bool(await self.page.evaluate(XPATH_EXISTS_SCRIPT, selector.selector))
            found = await self._query(self.page, selector)
            return bool(found)
        except Exception as exc:
            self._handle_error("check_element", exc, **_describe(selector, target))
            return None

    async def check_element_by_selector(self, selector_expression: str) -> Optional[bool]:
        return await self.check_element(Selector.css(selector_expression))

    async def check_element_by_xpath(self, xpath_expression: str) -> Optional[bool]:
        return await self.check_element(Selector.xpath(xpath_expression))

    async def get_element(self, target: SelectorLike, frame: Optional[Any] = None) -> Any:
        """Resolve ``target`` to an element handle.

        Bulk kinds return a list of handles.  A selector matching nothing
        yields ``None`` (or an empty list for bulk kinds) rather than an
        error.
        """
        selector: Optional[Selector] = None
        try:
            selector = Selector.coerce(target)
            return await self._query(frame or self.page, selector)
        except Exception as exc:
            self._handle_error("get_element", exc, **_describe(selector, target))
            return None

    async def get_attribute(self, target: SelectorLike, attribute: str) -> Optional[str]:
        """Read ``attribute`` from the element matching ``target``.

        ``name``, ``value``, ``href``, ``text`` and ``html`` read DOM
        properties; anything else is read with ``getAttribute``.
        """
        selector: Optional[Selector] = None
        try:
            selector = Selector.coerce(target)
            element = await self._query_one(self.page, selector)
            script = ATTRIBUTE_SCRIPTS.get(attribute)
            if script is not None:
                return await element.evaluate(script)
            return await element.evaluate(CUSTOM_ATTRIBUTE_SCRIPT, attribute)
        except Exception as exc:
            self._handle_error(
                "get_attribute", exc, attribute=attribute, **_describe(selector, target)
            )
            return None

    # ------------------------------------------------------------------ #
    # Keyboard input
    # ------------------------------------------------------------------ #

    async def key_press(self, target: SelectorLike, key: str) -> Optional[bool]:
        """Focus the element matching ``target`` and press ``key``."""
        selector: Optional[Selector] = None
        try:
            selector = Selector.coerce(target)
            self._log_call("key_press", key=key, **selector.describe())
            element = await self._query_one(self.page, selector)
            await element.focus()
            await self.page.keyboard.press(key)
            return True
        except Exception as exc:
            self._handle_error("key_press", exc, key=key, **_describe(selector, target))
            return None

    async def type_text(
        self,
        target: SelectorLike,
        text: Any,
        frame: Optional[Any] = None,
    ) -> Optional[bool]:
        """Type ``text`` into the element one character at a time.

        Each line break becomes an ``Enter`` press.  Focus is re-checked
        before every character because validation scripts on signup and
        compose forms sometimes move it elsewhere mid-type.
        """
        selector: Optional[Selector] = None
        text = str(text) if text else ""
        try:
            selector = Selector.coerce(target)
            self._log_call("type_text", length=len(text), **selector.describe())
            page = frame or self.page
            element = await self._query_one(page, selector)
            await element.focus()

            lines = text.split("\n")
            for index, line in enumerate(lines):
                for char in line:
                    await self._ensure_focus(page, element)
                    await element.type(char, delay=random_number(*TYPE_DELAY_RANGE_MS))
                if index < len(lines) - 1:
                    await element.press("Enter")
            return True
        except Exception as exc:
            self._handle_error("type_text", exc, text=text, **_describe(selector, target))
            return None

    async def type_text_by_selector(self, selector_expression: str, text: Any) -> Optional[bool]:
        return await self.type_text(Selector.css(selector_expression), text)

    async def type_text_by_xpath(self, xpath_expression: str, text: Any) -> Optional[bool]:
        return await self.type_text(Selector.xpath(xpath_expression), text)

    async def clear_input(
        self,
        target: SelectorLike,
        frame: Optional[Any] = None,
    ) -> Optional[bool]:
        """Select the field contents with a multi-click and delete them.

        Relies on repeated clicks selecting the whole value, which depends
        on the browser and platform; it is not a guaranteed clear.
        """
        selector: Optional[Selector] = None
        try:
            selector = Selector.coerce(target)
            self._log_call("clear_input", **selector.describe())
            element = await self._query_one(frame or self.page, selector)
            await element.click(click_count=random_number(*CLEAR_CLICK_RANGE))
            await self.random_wait()
            await element.press("Backspace")
            return True
        except Exception as exc:
            self._handle_error("clear_input", exc, **_describe(selector, target))
            return None

    async def clear_input_by_selector(self, selector_expression: str) -> Optional[bool]:
        return await self.clear_input(Selector.css(selector_expression))

    async def clear_input_by_xpath(self, xpath_expression: str) -> Optional[bool]:
        return await self.clear_input(Selector.xpath(xpath_expression))

    # ------------------------------------------------------------------ #
    # Clicking
    # ------------------------------------------------------------------ #

    async def click_element(
        self,
        target: SelectorLike,
        frame: Optional[Any] = None,
        settle_ms: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        """Click ``target`` and wait for any navigation it triggers to settle.

        The session's provider picks the settlement strategy; ``settle_ms``
        overrides the quiet window for this click only.
        """
        selector: Optional[Selector] = None
        try:
            selector = Selector.coerce(target)
            self._log_call(
                "click_element",
                provider=self.session.provider.value,
                settle_ms=settle_ms,
                **selector.describe(),
            )
            element = await self._query_one(frame or self.page, selector)
            strategy = self.session.navigation_strategy()
            navigation = await strategy.click_and_settle(
                self.page, element, settle_ms=settle_ms
            )
            result = {**selector.describe(), **navigation.summary()}
            self._log_result("click_element", result)
            return result
        except Exception as exc:
            self._handle_error("click_element", exc, **_describe(selector, target))
            return None

    async def click_element_by_selector(self, selector_expression: str) -> Optional[Dict[str, Any]]:
        return await self.click_element(Selector.css(selector_expression))

    async def click_element_by_xpath(self, xpath_expression: str) -> Optional[Dict[str, Any]]:
        return await self.click_element(Selector.xpath(xpath_expression))

    # ------------------------------------------------------------------ #
    # Dropdowns
    # ------------------------------------------------------------------ #

    async def select_option(self, target: SelectorLike, option_value: str) -> Optional[List[str]]:
        """Select ``option_value`` in a ``<select>`` located by CSS or XPath.

        Playwright's option selection takes a plain selector, so an XPath
        target is first resolved and re-addressed by its name, id or class.
        """
        selector: Optional[Selector] = None
        try:
            selector = Selector.coerce(target)
            kind = SelectorKind.parse(selector.kind)
            self._log_call("select_option", option_value=option_value, **selector.describe())
            if kind is SelectorKind.SELECTOR:
                plain = selector.selector
            elif kind is SelectorKind.XPATH:
                element = await self._query_one(self.page, selector)
                identity = await element.evaluate(DROPDOWN_IDENTITY_SCRIPT)
                plain = _plain_selector_for(identity)
                if plain is None:
                    raise ElementNotFound(selector.selector, kind)
            else:
                raise UnsupportedSelectorKind(kind, reason="Expected 'selector' or 'xpath'.")
            selected = await self.page.select_option(plain, option_value)
            logger.info(
                "Successfully selected option with value %r from dropdown %s.",
                option_value,
                plain,
            )
            return selected
        except Exception as exc:
            self._handle_error(
                "select_option", exc, option_value=option_value, **_describe(selector, target)
            )
            return None

    # ------------------------------------------------------------------ #
    # Scrolling
    # ------------------------------------------------------------------ #

    async def scroll_to_bottom_page(self) -> Optional[bool]:
        try:
            self._log_call("scroll_to_bottom_page")
            await self.page.evaluate(SCROLL_TO_BOTTOM_SCRIPT, {"distance": 100, "delay": 100})
            return True
        except Exception as exc:
            self._handle_error("scroll_to_bottom_page", exc)
            return None

    async def random_scroll(
        self,
        max_scrolling_time: float = 60000,
        min_scrolling_time: float = 30000,
        max_scrolling_speed: float = 3000,
        min_scrolling_speed: float = 500,
    ) -> Optional[bool]:
        """Scroll up and down at random for a bounded time, mostly downward.

        Times and speeds are milliseconds; reversed bounds are accepted.
        """
        try:
            min_time, max_time = normalize_bounds(min_scrolling_time, max_scrolling_time)
            min_speed, max_speed = normalize_bounds(min_scrolling_speed, max_scrolling_speed)
            end_time = compute_end_time(min_time, max_time)
            self._log_call(
                "random_scroll",
                min_time=min_time,
                max_time=max_time,
                min_speed=min_speed,
                max_speed=max_speed,
            )
            await self.page.evaluate(
                RANDOM_SCROLL_SCRIPT,
                {
                    "minSpeed": min_speed,
                    "maxSpeed": max_speed,
                    "endTime": end_time,
                    "downProbability": SCROLL_DOWN_PROBABILITY,
                    "minStep": SCROLL_STEP_RANGE_PX[0],
                    "maxStep": SCROLL_STEP_RANGE_PX[1],
                },
            )
            await self.random_wait()
            return True
        except Exception as exc:
            self._handle_error("random_scroll", exc)
            return None

    async def scroll_to_element(
        self,
        target: SelectorLike,
        max_scrolling_time: float = 5000,
        min_scrolling_time: float = 3000,
        max_scrolling_speed: float = 900,
        min_scrolling_speed: float = 500,
        offset: float = 500,
    ) -> Optional[bool]:
        """Scroll near ``target``, linger around it, then center it.

        When the element is missing a shorter random scroll runs instead and
        the call returns ``False``.
        """
        selector: Optional[Selector] = None
        try:
            selector = Selector.coerce(target)
            kind = SelectorKind.parse(selector.kind)
            min_time, max_time = normalize_bounds(min_scrolling_time, max_scrolling_time)
            min_speed, max_speed = normalize_bounds(min_scrolling_speed, max_scrolling_speed)
            end_time = compute_end_time(min_time, max_time)
            self._log_call("scroll_to_element", offset=offset, **selector.describe())

            if not await self.check_element(selector):
                logger.warning("Failed to locate element %s; scrolling randomly", selector.selector)
                await self.random_scroll(10000, 6000, 2000, 0)
                return False

            await self.page.evaluate(
                SCROLL_TO_ELEMENT_SCRIPT,
                {
                    "selector": selector.selector,
                    "isXpath": kind.is_xpath,
                    "offset": offset,
                    "minSpeed": min_speed,
                    "maxSpeed": max_speed,
                    "endTime": end_time,
                    "dwellMs": ELEMENT_DWELL_MS,
                    "minStep": DWELL_STEP_RANGE_PX[0],
                    "maxStep": DWELL_STEP_RANGE_PX[1],
                },
            )
            return True
        except Exception as exc:
            self._handle_error("scroll_to_element", exc, **_describe(selector, target))
            return None

    # ------------------------------------------------------------------ #
    # Misc
    # ------------------------------------------------------------------ #

    async def find_recaptcha_clients(self) -> Optional[List[Dict[str, Any]]]:
        """Describe the reCAPTCHA clients registered on the current page."""
        clients = await self.fetch_dom(RECAPTCHA_CLIENTS_SCRIPT)
        if clients is None:
            return None
        return list(clients)

    async def random_wait(
        self,
        min_ms: Optional[int] = None,
        max_ms: Optional[int] = None,
    ) -> None:
        """Sleep for a random human-like interval."""
        low = self._wait_range_ms[0] if min_ms is None else min_ms
        high = self._wait_range_ms[1] if max_ms is None else max_ms
        low, high = normalize_bounds(low, high)
        await asyncio.sleep(random_number(int(low), int(high)) / 1000)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    async def _query(self, page: Any, selector: Selector) -> Any:
        kind = SelectorKind.parse(selector.kind)
        if kind is SelectorKind.SELECTOR:
            return await page.query_selector(selector.selector)
        if kind is SelectorKind.ID:
            return await page.query_selector(f'[id="{selector.selector}"]')
        if kind is SelectorKind.CLASS:
            return await page.query_selector(f".{selector.selector}")
        if kind is SelectorKind.XPATH:
            handle = await page.evaluate_handle(XPATH_FIRST_MATCH_SCRIPT, selector.selector)
            element = handle.as_element()
            if element is None:
                await handle.dispose()
            return element
        if kind is SelectorKind.ALL_SELECTOR:
            return await page.query_selector_all(selector.selector)
        if kind is SelectorKind.ALL_XPATH:
            return await page.query_selector_all(f"xpath={selector.selector}")
        raise UnsupportedSelectorKind(kind)

    async def _query_one(self, page: Any, selector: Selector) -> Any:
        kind = SelectorKind.parse(selector.kind)
        if kind.is_bulk:
            raise UnsupportedSelectorKind(kind, reason="Expected a single-element selector.")
        element = await self._query(page, selector)
        if not element:
            raise ElementNotFound(selector.selector, kind)
        return element

    async def _ensure_focus(self, page: Any, element: Any) -> None:
        if not await page.evaluate(IS_FOCUSED_SCRIPT, element):
            await element.focus()

    def _handle_error(self, operation: str, error: BaseException, **details: Any) -> None:
        self.error_handler(self.context_id, error, operation, details)

    def _log_call(self, action: str, **kwargs: Any) -> None:
        logger.info("%s call: %s", action, {k: v for k, v in kwargs.items() if v is not None})

    def _log_result(self, action: str, result: Mapping[str, Any]) -> None:
        logger.info("%s result: %s", action, dict(result))


def _describe(selector: Optional[Selector], target: Any) -> Dict[str, Any]:
    if selector is not None:
        kind = selector.kind.value if isinstance(selector.kind, SelectorKind) else selector.kind
        return {"selector": selector.selector, "kind": kind}
    if isinstance(target, Mapping):
        return {"selector": target.get("selector"), "kind": target.get("kind", target.get("type"))}
    return {"selector": target}


def _plain_selector_for(identity: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not identity:
        return None
    if identity.get("name"):
        return f'[name="{identity["name"]}"]'
    if identity.get("id"):
        return f'[id="{identity["id"]}"]'
    if identity.get("className"):
        return "." + ".".join(identity["className"].split())
    return None


def create_browserbot(
    session: BrowserSession,
    *,
    context_id: Optional[str] = None,
    error_handler: Optional[ErrorHandler] = None,
) -> BrowserBot:
    """Factory helper mirroring ``BrowserBot(session, ...)``."""
    return BrowserBot(session, context_id=context_id, error_handler=error_handler)


__all__ = ["BrowserBot", "create_browserbot"]
