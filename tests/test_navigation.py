"""Tests for click-triggered navigation settlement."""

import asyncio
import logging
import time

import pytest
from playwright.async_api import Error as PlaywrightError

from mailbot.browser.core import BrowserBot
from mailbot.browser.navigation import (
    GMAIL_TIMINGS,
    HOTMAIL_TIMINGS,
    GenericNavigation,
    GmailNavigation,
    GuardState,
    HotmailNavigation,
    NavigationSession,
    NavigationTimings,
    Provider,
    SettlementPhase,
    strategy_for,
    wait_for_navigation,
)
from mailbot.browser.session import BrowserSession

FAST = NavigationTimings(
    wait_timeout_ms=20,
    recheck_ms=5,
    settle_ms=30,
    handler_wait_timeout_ms=20,
)


def frame_navigated_records(caplog):
    return [r for r in caplog.records if r.getMessage().startswith("Frame navigated")]


class TestProviderParsing:
    def test_defaults_to_generic(self):
        assert Provider.parse(None) is Provider.GENERIC

    def test_is_case_insensitive(self):
        assert Provider.parse("HotMail") is Provider.HOTMAIL

    def test_rejects_unknown_provider(self):
        with pytest.raises(ValueError, match="provider must be one of"):
            Provider.parse("yahoo")

    @pytest.mark.parametrize(
        "provider, expected",
        [
            ("generic", GenericNavigation),
            ("hotmail", HotmailNavigation),
            ("gmail", GmailNavigation),
        ],
    )
    def test_strategy_for_provider(self, provider, expected):
        assert type(strategy_for(provider)) is expected

    def test_default_timings(self):
        assert strategy_for("hotmail").timings is HOTMAIL_TIMINGS
        assert HOTMAIL_TIMINGS.handler_timeout_ms == 10000
        assert HOTMAIL_TIMINGS.settle_ms == 10000
        assert GMAIL_TIMINGS.handler_timeout_ms == 3000
        assert GMAIL_TIMINGS.wait_timeout_ms == 5000
        assert GMAIL_TIMINGS.grace_ms == 1000

    def test_explicit_timings_are_used(self):
        assert strategy_for("gmail", FAST).timings is FAST


class TestNavigationSession:
    def test_guard_allows_one_wait_at_a_time(self):
        session = NavigationSession(timings=FAST)

        assert session.acquire() is True
        assert session.resolving
        assert session.acquire() is False
        assert session.waits_started == 1

        session.release()
        assert session.state is GuardState.SETTLED
        assert session.acquire() is True
        assert session.waits_started == 2

    def test_summary(self):
        session = NavigationSession(timings=FAST)
        session.events = 3

        assert session.summary() == {"phase": "idle", "events": 3, "waits_started": 0}


class TestWaitForNavigation:
    @pytest.mark.asyncio
    async def test_timeout_is_swallowed(self, page):
        assert await wait_for_navigation(page, timeout_ms=10) is False
        assert page.navigation_waits == [10]

    @pytest.mark.asyncio
    async def test_navigation_returns_true(self, page):
        page.navigation_idle_after = 0.001

        assert await wait_for_navigation(page, timeout_ms=1000) is True

    @pytest.mark.asyncio
    async def test_closed_page_is_swallowed(self, page):
        class ClosedWait:
            async def __aenter__(self):
                return self

            async def __aexit__(self, exc_type, exc, tb):
                raise PlaywrightError("Target page, context or browser has been closed")

        page.expect_navigation = lambda wait_until="load", timeout=None: ClosedWait()

        assert await wait_for_navigation(page, timeout_ms=1000) is False


class TestClickAndSettle:
    """End-to-end settlement against a fake page."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider", ["generic", "hotmail", "gmail"])
    async def test_no_navigation_still_completes(self, page, provider):
        element = page.element("button")

        session = await strategy_for(provider, FAST).click_and_settle(page, element)

        assert page.actions("click") == [("click", 1)]
        assert session.phase is SettlementPhase.DONE
        assert session.events == 0
        assert session.waits_started == 0
        assert page.listeners["framenavigated"] == []

    @pytest.mark.asyncio
    async def test_burst_of_events_starts_one_wait(self, page, frame_factory, caplog):
        caplog.set_level(logging.INFO, logger="mailbot.browser.navigation")
        login, inbox = frame_factory("https://login.live.com/"), frame_factory("https://outlook.live.com/")

        def burst():
            for _ in range(5):
                page.emit("framenavigated", login)
            page.emit("framenavigated", inbox)

        element = page.element("submit", on_click=burst)
        session = await HotmailNavigation(FAST).click_and_settle(page, element)

        assert session.events == 6
        assert session.waits_started == 1
        assert [r.getMessage() for r in frame_navigated_records(caplog)] == [
            "Frame navigated: https://login.live.com/",
            "Frame navigated: https://outlook.live.com/",
        ]
        # One direct wait plus one listener-driven wait.
        assert page.max_active_waits == 2
        assert page.listeners["framenavigated"] == []

    @pytest.mark.asyncio
    async def test_late_event_extends_quiet_window(self, page, frame_factory):
        timings = NavigationTimings(
            wait_timeout_ms=20, recheck_ms=5, settle_ms=80, handler_wait_timeout_ms=20
        )
        loop = asyncio.get_running_loop()
        frame = frame_factory("https://outlook.live.com/mail/")
        element = page.element(
            "send",
            on_click=lambda: loop.call_later(0.04, page.emit, "framenavigated", frame),
        )

        started = time.monotonic()
        session = await HotmailNavigation(timings).click_and_settle(page, element)
        elapsed = time.monotonic() - started

        assert session.events == 1
        assert session.waits_started == 1
        assert elapsed >= 0.115

    @pytest.mark.asyncio
    async def test_hotmail_checks_immediately(self, page):
        timings = NavigationTimings(wait_timeout_ms=10, recheck_ms=500, settle_ms=0)

        started = time.monotonic()
        await HotmailNavigation(timings).click_and_settle(page, page.element())

        assert time.monotonic() - started < 0.4

    @pytest.mark.asyncio
    async def test_gmail_checks_after_one_interval(self, page):
        timings = NavigationTimings(wait_timeout_ms=10, recheck_ms=60)

        started = time.monotonic()
        await GmailNavigation(timings).click_and_settle(page, page.element())

        assert time.monotonic() - started >= 0.065

    @pytest.mark.asyncio
    async def test_gmail_grace_delays_settlement(self, page, frame_factory):
        timings = NavigationTimings(
            wait_timeout_ms=10, recheck_ms=5, grace_ms=60, handler_wait_timeout_ms=10
        )
        frame = frame_factory("https://mail.google.com/mail/u/0/")
        element = page.element(
            "next", on_click=lambda: page.emit("framenavigated", frame)
        )

        started = time.monotonic()
        session = await GmailNavigation(timings).click_and_settle(page, element)

        assert time.monotonic() - started >= 0.065
        assert session.waits_started == 1
        assert session.state is GuardState.SETTLED

    @pytest.mark.asyncio
    async def test_settle_override_applies_to_one_click(self, page):
        strategy = HotmailNavigation(FAST)

        session = await strategy.click_and_settle(page, page.element(), settle_ms=5)

        assert session.timings.settle_ms == 5
        assert strategy.timings.settle_ms == FAST.settle_ms

    @pytest.mark.asyncio
    async def test_pending_wait_is_cancelled_on_completion(self, page, frame_factory):
        timings = NavigationTimings(wait_timeout_ms=10, handler_wait_timeout_ms=5000)
        frame = frame_factory("https://example.com/")
        element = page.element("go", on_click=lambda: page.emit("framenavigated", frame))

        session = await GenericNavigation(timings).click_and_settle(page, element)
        await asyncio.sleep(0.01)

        assert session.waits_started == 1
        assert session.state is GuardState.SETTLED
        assert page.active_waits == 0


class TestClickElement:
    @pytest.fixture
    def hotmail_bot(self, page, reporter):
        session = BrowserSession.from_page(page, provider="hotmail", navigation_timings=FAST)
        return BrowserBot(session, context_id="job-7", error_handler=reporter, wait_range_ms=(0, 0))

    @pytest.mark.asyncio
    async def test_returns_navigation_summary(self, hotmail_bot, page):
        page.add("#go", page.element("go"))

        result = await hotmail_bot.click_element_by_selector("#go")

        assert result == {
            "selector": "#go",
            "kind": "selector",
            "phase": "done",
            "events": 0,
            "waits_started": 0,
        }

    @pytest.mark.asyncio
    async def test_listener_stays_on_page_for_frame_elements(
        self, hotmail_bot, page, page_factory, frame_factory
    ):
        frame = page_factory()
        frame.add(
            "#inner",
            frame.element(
                "inner",
                on_click=lambda: page.emit("framenavigated", frame_factory("https://x/")),
            ),
        )

        result = await hotmail_bot.click_element("#inner", frame=frame)

        assert result["events"] == 1
        assert frame.actions("click") == [("click", 1)]

    @pytest.mark.asyncio
    async def test_missing_element_is_reported(self, hotmail_bot, page, reporter):
        assert await hotmail_bot.click_element_by_xpath("//button[@id='send']") is None

        assert page.listeners["framenavigated"] == []
        assert reporter.last_error["operation"] == "click_element"
        assert reporter.last_error["context_id"] == "job-7"
        assert reporter.last_error["details"]["kind"] == "xpath"


class PhaseRecordingNavigation(HotmailNavigation):
    def __init__(self, timings):
        super().__init__(timings)
        self.phases = []

    async def _settle(self, session):
        self.phases.append(session.phase)
        await super()._settle(session)
        self.phases.append(session.phase)


class TestReportedPhase:
    @pytest.mark.asyncio
    async def test_in_flight_wait_reports_navigating_then_settling(self, page, frame_factory):
        timings = NavigationTimings(
            wait_timeout_ms=10, recheck_ms=5, settle_ms=0, handler_wait_timeout_ms=50
        )
        frame = frame_factory("https://outlook.live.com/")
        element = page.element("go", on_click=lambda: page.emit("framenavigated", frame))
        strategy = PhaseRecordingNavigation(timings)

        session = await strategy.click_and_settle(page, element)

        assert strategy.phases == [SettlementPhase.NAVIGATING, SettlementPhase.SETTLING]
        assert session.phase is SettlementPhase.DONE

    @pytest.mark.asyncio
    async def test_wait_finished_before_direct_wait_returns_to_settling(self, page, frame_factory):
        timings = NavigationTimings(
            wait_timeout_ms=50, recheck_ms=5, settle_ms=0, handler_wait_timeout_ms=5
        )
        frame = frame_factory("https://outlook.live.com/")
        element = page.element("go", on_click=lambda: page.emit("framenavigated", frame))
        strategy = PhaseRecordingNavigation(timings)

        await strategy.click_and_settle(page, element)

        assert strategy.phases == [SettlementPhase.SETTLING, SettlementPhase.SETTLING]

    def test_resting_phase_tracks_direct_wait(self):
        session = NavigationSession(timings=FAST)
        assert session.resting_phase() is SettlementPhase.ARMED

        session.direct_wait_done = True
        assert session.resting_phase() is SettlementPhase.SETTLING
