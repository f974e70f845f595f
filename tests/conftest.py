"""Shared fixtures: an in-memory stand-in for a Playwright page."""

import asyncio
from collections import defaultdict

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from mailbot.browser.core import (
    ATTRIBUTE_SCRIPTS,
    CUSTOM_ATTRIBUTE_SCRIPT,
    DROPDOWN_IDENTITY_SCRIPT,
    IS_FOCUSED_SCRIPT,
    XPATH_EXISTS_SCRIPT,
    BrowserBot,
)
from mailbot.browser.errors import ErrorReporter
from mailbot.browser.session import BrowserSession


class FakeFrame:
    def __init__(self, url):
        self.url = url


class FakeElement:
    def __init__(self, page, name, *, properties=None, attributes=None, identity=None, on_click=None):
        self.page = page
        self.name = name
        self.properties = properties or {}
        self.attributes = attributes or {}
        self.identity = identity
        self.on_click = on_click
        self.type_delays = []

    async def focus(self):
        self.page.active_element = self
        self.page.log.append(("focus", self.name))

    async def type(self, text, delay=None):
        self.type_delays.append(delay)
        self.page.log.append(("type", text))
        if self.page.steal_focus:
            self.page.active_element = None

    async def press(self, key):
        self.page.log.append(("press", key))

    async def click(self, click_count=1, **kwargs):
        self.page.log.append(("click", click_count))
        if self.on_click is not None:
            self.on_click()

    async def evaluate(self, script, arg=None):
        if script == DROPDOWN_IDENTITY_SCRIPT:
            return self.identity
        if script == CUSTOM_ATTRIBUTE_SCRIPT:
            return self.attributes.get(arg)
        for name, attribute_script in ATTRIBUTE_SCRIPTS.items():
            if script == attribute_script:
                return self.properties.get(name)
        raise AssertionError(f"unexpected element script: {script}")


class FakeHandle:
    def __init__(self, element):
        self.element = element
        self.disposed = False

    def as_element(self):
        return self.element

    async def dispose(self):
        self.disposed = True


class FakeNavigationWait:
    def __init__(self, page, timeout):
        self.page = page
        self.timeout = timeout

    async def __aenter__(self):
        self.page.navigation_waits.append(self.timeout)
        self.page.active_waits += 1
        self.page.max_active_waits = max(self.page.max_active_waits, self.page.active_waits)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        try:
            if exc_type is not None:
                return False
            idle_after = self.page.navigation_idle_after
            if idle_after is not None and idle_after * 1000 < self.timeout:
                await asyncio.sleep(idle_after)
                return False
            await asyncio.sleep(self.timeout / 1000)
            raise PlaywrightTimeoutError(f"Timeout {self.timeout}ms exceeded.")
        finally:
            self.page.active_waits -= 1


class FakeKeyboard:
    def __init__(self, page):
        self.page = page

    async def press(self, key):
        self.page.log.append(("keyboard", key))


class FakePage:
    """Implements the subset of the Playwright Page API used by mailbot."""

    def __init__(self):
        self.css = {}
        self.xpaths = {}
        self.listeners = defaultdict(list)
        self.log = []
        self.evaluations = []
        self.evaluate_results = {}
        self.active_element = None
        self.steal_focus = False
        self.navigation_idle_after = None
        self.navigation_waits = []
        self.active_waits = 0
        self.max_active_waits = 0
        self.selected = []
        self.keyboard = FakeKeyboard(self)
        self.url = "about:blank"
        self.closed = False

    def element(self, name="element", **kwargs):
        return FakeElement(self, name, **kwargs)

    def add(self, selector, *elements):
        self.css.setdefault(selector, []).extend(elements)

    def add_xpath(self, xpath, *elements):
        self.xpaths.setdefault(xpath, []).extend(elements)

    async def query_selector(self, selector):
        matches = self.css.get(selector)
        return matches[0] if matches else None

    async def query_selector_all(self, selector):
        if selector.startswith("xpath="):
            return list(self.xpaths.get(selector[len("xpath="):], []))
        return list(self.css.get(selector, []))

    async def evaluate_handle(self, script, arg=None):
        matches = self.xpaths.get(arg)
        return FakeHandle(matches[0] if matches else None)

    async def evaluate(self, script, arg=None):
        self.evaluations.append((script, arg))
        if script == IS_FOCUSED_SCRIPT:
            return self.active_element is arg
        if script == XPATH_EXISTS_SCRIPT:
            return bool(self.xpaths.get(arg))
        return self.evaluate_results.get(script)

    async def select_option(self, selector, value):
        self.selected.append((selector, value))
        return [value]

    def on(self, event, handler):
        self.listeners[event].append(handler)

    def remove_listener(self, event, handler):
        self.listeners[event].remove(handler)

    def emit(self, event, payload):
        for handler in list(self.listeners[event]):
            handler(payload)

    def expect_navigation(self, wait_until="load", timeout=None):
        return FakeNavigationWait(self, timeout)

    async def goto(self, url, wait_until="load"):
        self.url = url

    async def title(self):
        return "Inbox"

    def is_closed(self):
        return self.closed

    def actions(self, *kinds):
        return [entry for entry in self.log if entry[0] in kinds]


@pytest.fixture
def page():
    return FakePage()


@pytest.fixture
def reporter():
    return ErrorReporter()


@pytest.fixture
def session(page):
    return BrowserSession.from_page(page)


@pytest.fixture
def bot(session, reporter):
    return BrowserBot(session, context_id="job-1", error_handler=reporter, wait_range_ms=(0, 0))


@pytest.fixture
def frame_factory():
    return FakeFrame


@pytest.fixture
def page_factory():
    return FakePage
