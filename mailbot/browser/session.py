"""Explicit browser session shared by every BrowserBot operation.

A ``BrowserSession`` owns the Playwright objects (or wraps a page the caller
manages) and carries the navigation ``Provider`` used by clicks.  It takes
the place of a global "current page" reference.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)

from .auth import DomainConfig, config_for_url, default_domain_configs
from .navigation import NavigationStrategy, NavigationTimings, Provider, strategy_for

ALLOWED_WAIT_STATES = {"load", "domcontentloaded", "networkidle"}

logger = logging.getLogger(__name__)


class BrowserSession:
    """Playwright lifecycle plus the page every interaction runs against.

    The session keeps one browser context and page alive between calls so
    webmail cookies and navigation history survive across interactions.  When
    ``login_domain`` names a configured domain with a cached storage state,
    the context is created from it.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        launch_args: Optional[Sequence[str]] = None,
        default_timeout_ms: int = 5000,
        provider: Provider | str | None = None,
        login_domain: Optional[str] = None,
        domain_configs: Optional[Mapping[str, DomainConfig]] = None,
        navigation_timings: Optional[NavigationTimings] = None,
    ) -> None:
        self._headless = headless
        self._launch_args = tuple(launch_args or ())
        self._default_timeout_ms = default_timeout_ms
        self._domain_configs: Dict[str, DomainConfig] = dict(
            domain_configs if domain_configs is not None else default_domain_configs()
        )
        self._login_domain = login_domain
        # An explicit provider is kept when navigating to a configured domain.
        self._provider_pinned = provider is not None
        if provider is None and login_domain in self._domain_configs:
            provider = self._domain_configs[login_domain].provider
        self.provider = Provider.parse(provider)
        self.navigation_timings = navigation_timings
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._owns_browser = True

    @classmethod
    def from_page(
        cls,
        page: Any,
        *,
        provider: Provider | str | None = None,
        navigation_timings: Optional[NavigationTimings] = None,
        domain_configs: Optional[Mapping[str, DomainConfig]] = None,
    ) -> "BrowserSession":
        """Wrap a page whose browser the caller manages."""
        session = cls(
            provider=provider,
            domain_configs=domain_configs if domain_configs is not None else {},
            navigation_timings=navigation_timings,
        )
        session._page = page
        session._owns_browser = False
        return session

    # ------------------------------------------------------------------ #
    # Lifecycle helpers
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> "BrowserSession":
        await self.startup()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.shutdown()

    async def startup(self) -> None:
        """Ensure a Chromium instance is available."""
        if not self._owns_browser or self._playwright is not None:
            return
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self._headless,
            args=list(self._launch_args),
        )

    async def shutdown(self) -> None:
        """Close Chromium and release Playwright resources."""
        if not self._owns_browser:
            self._page = None
            return
        await self._close_context()
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError(
                "No page is open; call get_page() or navigate() first."
            )
        return self._page

    def navigation_strategy(self) -> NavigationStrategy:
        return strategy_for(self.provider, self.navigation_timings)

    async def get_page(self) -> Page:
        """Return the current page, opening one if needed."""
        if self._page is not None and not self._page.is_closed():
            return self._page
        if not self._owns_browser:
            raise RuntimeError("The wrapped page has been closed.")
        browser = await self._ensure_browser()
        storage_state = self._storage_state_path(self._login_domain)
        self._context = await browser.new_context(
            storage_state=str(storage_state) if storage_state else None
        )
        self._context.set_default_timeout(self._default_timeout_ms)
        self._page = await self._context.new_page()
        return self._page

    async def navigate(self, url: str, *, wait_until: str = "load") -> Dict[str, str]:
        """Navigate to ``url`` and return the final URL and page title."""
        wait_state = self._validate_wait_state(wait_until)
        target = (url or "").strip()
        if not target:
            raise ValueError("url must be a non-empty string.")
        config = config_for_url(self._domain_configs, target)
        if config is not None and self._login_domain != config.domain:
            # Switch to the cached login for the mailbox being opened.
            self._login_domain = config.domain
            self._adopt_provider(config)
            if self._owns_browser:
                await self._close_context()
        logger.info("navigate call: %s", {"url": target, "wait_until": wait_state})
        page = await self.get_page()
        await page.goto(target, wait_until=wait_state)
        result = {"final_url": page.url, "title": await page.title()}
        logger.info("navigate result: %s", result)
        return result

    async def ensure_login(self, domain: str, *, force: bool = False) -> Dict[str, Any]:
        """Ensure a cached Playwright storage state exists for ``domain``."""
        config = self._domain_configs.get(domain)
        if config is None:
            raise ValueError(f"No authentication configuration for {domain!r}.")

        storage_path = config.storage_state_path
        if not force and storage_path.exists():
            return {
                "domain": domain,
                "storage_state": str(storage_path),
                "created": False,
            }

        await self._run_manual_login(config)
        if storage_path.exists():
            self._login_domain = domain
            self._adopt_provider(config)
            if self._owns_browser:
                await self._close_context()
            return {
                "domain": domain,
                "storage_state": str(storage_path),
                "created": True,
            }

        raise RuntimeError(
            f"Manual login for {domain!r} did not populate {storage_path}."
        )

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    async def _ensure_browser(self) -> Browser:
        await self.startup()
        if self._browser is None:
            raise RuntimeError("Playwright failed to launch Chromium.")
        return self._browser

    def _adopt_provider(self, config: DomainConfig) -> None:
        if self._provider_pinned or config.provider is self.provider:
            return
        logger.info(
            "Switching navigation provider from %s to %s for %s",
            self.provider.value,
            config.provider.value,
            config.domain,
        )
        self.provider = config.provider

    def _validate_wait_state(self, wait_until: str) -> str:
        if wait_until not in ALLOWED_WAIT_STATES:
            allowed = ", ".join(sorted(ALLOWED_WAIT_STATES))
            raise ValueError(f"wait_until must be one of {{{allowed}}}.")
        return wait_until

    def _storage_state_path(self, domain: Optional[str]) -> Optional[Path]:
        config = self._domain_configs.get(domain) if domain else None
        if config is not None and config.storage_state_path.exists():
            return config.storage_state_path
        return None

    async def _run_manual_login(self, config: DomainConfig) -> None:
        logger.info("Starting manual login for domain %s", config.domain)
        print(config.instructions)
        config.storage_state_path.parent.mkdir(parents=True, exist_ok=True)
        launch_kwargs = dict(config.launch_options)
        headless = launch_kwargs.pop("headless", False)
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=headless, **launch_kwargs)
            try:
                context = await browser.new_context(**config.context_options)
                page = await context.new_page()
                await page.goto(config.login_url)
                await asyncio.to_thread(input, "Press Enter after the login completes...")
                await context.storage_state(path=str(config.storage_state_path))
            finally:
                await browser.close()
        logger.info(
            "Stored session for %s at %s", config.domain, config.storage_state_path
        )

    async def _close_context(self) -> None:
        if self._page is not None:
            try:
                if not self._page.is_closed():
                    await self._page.close()
            except Exception:
                logger.debug("Ignoring error while closing page", exc_info=True)
            finally:
                self._page = None
        if self._context is not None:
            try:
                await self._context.close()
            except Exception:
                logger.debug("Ignoring error while closing context", exc_info=True)
            finally:
                self._context = None


__all__ = ["ALLOWED_WAIT_STATES", "BrowserSession"]
