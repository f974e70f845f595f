"""Click-triggered navigation settlement for webmail single-page apps.

Webmail clients fire a variable number of intermediate navigations (auth
redirects, frame reloads) after one click.  Instead of a single fixed wait,
a ``NavigationStrategy`` listens to ``framenavigated`` events before clicking
and returns once the page has been quiet for a provider-specific period.

The heuristic is best-effort: a navigation arriving after the quiet window
is not observed, and every bounded wait swallows its own timeout.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Set

from playwright.async_api import Error as PlaywrightError

logger = logging.getLogger(__name__)


class Provider(str, Enum):
    GENERIC = "generic"
    HOTMAIL = "hotmail"
    GMAIL = "gmail"

    @classmethod
    def parse(cls, value: "Provider | str | None") -> "Provider":
        if value is None:
            return cls.GENERIC
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            allowed = ", ".join(p.value for p in cls)
            raise ValueError(f"provider must be one of {{{allowed}}}.") from None


class GuardState(Enum):
    """Whether a navigation wait is currently in flight."""

    IDLE = "idle"
    WAITING = "waiting"
    SETTLED = "settled"


class SettlementPhase(Enum):
    IDLE = "idle"
    ARMED = "armed"
    NAVIGATING = "navigating"
    SETTLING = "settling"
    DONE = "done"


@dataclass(frozen=True)
class NavigationTimings:
    """Timing parameters of one provider, in milliseconds."""

    wait_timeout_ms: int
    recheck_ms: int = 1000
    settle_ms: int = 0
    grace_ms: int = 0
    handler_wait_timeout_ms: Optional[int] = None

    @property
    def handler_timeout_ms(self) -> int:
        if self.handler_wait_timeout_ms is None:
            return self.wait_timeout_ms
        return self.handler_wait_timeout_ms


GENERIC_TIMINGS = NavigationTimings(wait_timeout_ms=10000)
HOTMAIL_TIMINGS = NavigationTimings(wait_timeout_ms=10000, recheck_ms=1000, settle_ms=10000)
GMAIL_TIMINGS = NavigationTimings(
    wait_timeout_ms=5000,
    recheck_ms=1500,
    grace_ms=1000,
    handler_wait_timeout_ms=3000,
)


async def wait_for_navigation(
    page: Any,
    *,
    timeout_ms: int,
    wait_until: str = "networkidle",
) -> bool:
    """Wait for the next navigation to reach ``wait_until``.

    Returns ``False`` instead of raising on any Playwright error: a timeout,
    or the page or frame going away underneath the wait.
    """
    try:
        async with page.expect_navigation(wait_until=wait_until, timeout=timeout_ms):
            pass
    except PlaywrightError as exc:
        logger.debug("Navigation wait ended without navigation: %s", exc)
        return False
    return True


@dataclass
class NavigationSession:
    """Transient state for a single click, discarded once settled."""

    timings: NavigationTimings
    last_navigation_time: float = field(default_factory=time.monotonic)
    state: GuardState = GuardState.IDLE
    phase: SettlementPhase = SettlementPhase.IDLE
    last_logged_frame: Any = None
    events: int = 0
    waits_started: int = 0
    direct_wait_done: bool = False
    tasks: Set["asyncio.Task[None]"] = field(default_factory=set)

    @property
    def resolving(self) -> bool:
        return self.state is GuardState.WAITING

    def resting_phase(self) -> SettlementPhase:
        """Phase to report while no listener wait is in flight."""
        return SettlementPhase.SETTLING if self.direct_wait_done else SettlementPhase.ARMED

    def quiet_for_ms(self) -> float:
        return (time.monotonic() - self.last_navigation_time) * 1000

    def acquire(self) -> bool:
        """Move the guard to ``WAITING`` unless a wait is already in flight."""
        if self.state is GuardState.WAITING:
            return False
        self.state = GuardState.WAITING
        self.waits_started += 1
        return True

    def release(self) -> None:
        self.state = GuardState.SETTLED

    def summary(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "events": self.events,
            "waits_started": self.waits_started,
        }


class NavigationStrategy:
    """Arm a navigation listener, click, wait, then settle.

    Subclasses change the timing constants and the settle loop.
    """

    provider = Provider.GENERIC
    default_timings = GENERIC_TIMINGS

    def __init__(self, timings: Optional[NavigationTimings] = None) -> None:
        self.timings = timings or self.default_timings

    async def click_and_settle(
        self,
        page: Any,
        element: Any,
        *,
        settle_ms: Optional[int] = None,
    ) -> NavigationSession:
        timings = self.timings
        if settle_ms is not None:
            timings = replace(timings, settle_ms=settle_ms)
        session = NavigationSession(timings=timings)

        def on_frame_navigated(frame: Any) -> None:
            self._record_navigation(page, session, frame)

        page.on("framenavigated", on_frame_navigated)
        session.phase = SettlementPhase.ARMED
        try:
            await element.click()
            await wait_for_navigation(page, timeout_ms=timings.wait_timeout_ms)
            session.direct_wait_done = True
            if session.phase is not SettlementPhase.NAVIGATING:
                session.phase = SettlementPhase.SETTLING
            await self._settle(session)
        finally:
            page.remove_listener("framenavigated", on_frame_navigated)
            for task in list(session.tasks):
                task.cancel()
            session.phase = SettlementPhase.DONE
        logger.info("Navigation completed: %s", session.summary())
        return session

    def _record_navigation(self, page: Any, session: NavigationSession, frame: Any) -> None:
        session.last_navigation_time = time.monotonic()
        session.events += 1
        if frame is not session.last_logged_frame:
            logger.info("Frame navigated: %s", getattr(frame, "url", frame))
            session.last_logged_frame = frame
        if not session.acquire():
            return
        task = asyncio.ensure_future(self._resolve(page, session))
        session.tasks.add(task)
        task.add_done_callback(session.tasks.discard)

    async def _resolve(self, page: Any, session: NavigationSession) -> None:
        session.phase = SettlementPhase.NAVIGATING
        try:
            if session.timings.grace_ms:
                await asyncio.sleep(session.timings.grace_ms / 1000)
            await wait_for_navigation(page, timeout_ms=session.timings.handler_timeout_ms)
        finally:
            session.release()
            if session.phase is SettlementPhase.NAVIGATING:
                session.phase = session.resting_phase()

    async def _settle(self, session: NavigationSession) -> None:
        return None


class GenericNavigation(NavigationStrategy):
    pass


class HotmailNavigation(NavigationStrategy):
    """Settle once no wait is in flight and the quiet window has elapsed."""

    provider = Provider.HOTMAIL
    default_timings = HOTMAIL_TIMINGS

    async def _settle(self, session: NavigationSession) -> None:
        interval = session.timings.recheck_ms / 1000
        while session.resolving or session.quiet_for_ms() <= session.timings.settle_ms:
            await asyncio.sleep(interval)


class GmailNavigation(NavigationStrategy):
    """Settle on the first recheck that finds no wait in flight.

    Unlike Hotmail there is no quiet window here; the grace delay inside the
    navigation handler is the only stabilization period.
    """

    provider = Provider.GMAIL
    default_timings = GMAIL_TIMINGS

    async def _settle(self, session: NavigationSession) -> None:
        interval = session.timings.recheck_ms / 1000
        while True:
            await asyncio.sleep(interval)
            if not session.resolving:
                return


_STRATEGIES = {
    Provider.GENERIC: GenericNavigation,
    Provider.HOTMAIL: HotmailNavigation,
    Provider.GMAIL: GmailNavigation,
}


def strategy_for(
    provider: "Provider | str | None",
    timings: Optional[NavigationTimings] = None,
) -> NavigationStrategy:
    """Return the settlement strategy registered for ``provider``."""
    return _STRATEGIES[Provider.parse(provider)](timings)


__all__ = [
    "GENERIC_TIMINGS",
    "GMAIL_TIMINGS",
    "HOTMAIL_TIMINGS",
    "GenericNavigation",
    "GmailNavigation",
    "GuardState",
    "HotmailNavigation",
    "NavigationSession",
    "NavigationStrategy",
    "NavigationTimings",
    "Provider",
    "SettlementPhase",
    "strategy_for",
    "wait_for_navigation",
]
