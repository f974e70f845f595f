"""Webmail login configuration for BrowserSession.

Each ``DomainConfig`` describes how to perform a manual login for a webmail
provider, where to cache the resulting Playwright storage state, and which
navigation-settlement ``Provider`` its UI needs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional
from urllib.parse import urlparse

from .navigation import Provider

# Args that minimise automation fingerprints when launching a headed browser.
DEFAULT_STEALTH_ARGS: tuple[str, ...] = (
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--disable-features=IsolateOrigins,site-per-process",
    "--disable-extensions",
    "--disable-gpu",
    "--disable-background-networking",
    "--disable-renderer-backgrounding",
)

_DEFAULT_LAUNCH_OPTIONS: Mapping[str, object] = {
    "headless": False,
    "args": DEFAULT_STEALTH_ARGS,
    "slow_mo": 150,
}

_DEFAULT_CONTEXT_OPTIONS: Mapping[str, object] = {
    "viewport": {"width": 1280, "height": 900},
}


@dataclass(frozen=True)
class DomainConfig:
    """Describe how to obtain and cache a login session for a domain."""

    domain: str
    login_url: str
    instructions: str
    storage_state_path: Path
    provider: Provider = Provider.GENERIC
    launch_options: Mapping[str, object] = field(default_factory=dict)
    context_options: Mapping[str, object] = field(default_factory=dict)


def default_domain_configs(base_dir: Path | None = None) -> Dict[str, DomainConfig]:
    """Return the Gmail and Hotmail login configurations."""

    root = base_dir or Path(__file__).resolve().parent
    storage_dir = root / "storage"

    gmail = DomainConfig(
        domain="mail.google.com",
        login_url="https://accounts.google.com/ServiceLogin?service=mail",
        instructions=(
            "A headed Chrome window will open. Sign in to Gmail manually (including "
            "any MFA). Once your inbox loads, return to the terminal and press Enter "
            "to cache the session."
        ),
        storage_state_path=storage_dir / "mail.google.com.json",
        provider=Provider.GMAIL,
        launch_options={**_DEFAULT_LAUNCH_OPTIONS, "channel": "chrome"},
        context_options={**_DEFAULT_CONTEXT_OPTIONS, "accept_downloads": True},
    )
    hotmail = DomainConfig(
        domain="outlook.live.com",
        login_url="https://login.live.com/login.srf",
        instructions=(
            "A headed browser window will open. Sign in to Outlook/Hotmail manually "
            "and dismiss any 'Stay signed in?' prompt. Once the mailbox loads, "
            "return to the terminal and press Enter to cache the session."
        ),
        storage_state_path=storage_dir / "outlook.live.com.json",
        provider=Provider.HOTMAIL,
        launch_options=dict(_DEFAULT_LAUNCH_OPTIONS),
        context_options=dict(_DEFAULT_CONTEXT_OPTIONS),
    )

    return {config.domain: config for config in (gmail, hotmail)}


def config_for_host(
    configs: Mapping[str, DomainConfig],
    host: str,
) -> Optional[DomainConfig]:
    """Find the config for ``host`` or its closest configured parent domain."""
    candidate = host.lower()
    while candidate:
        config = configs.get(candidate)
        if config is not None:
            return config
        if "." not in candidate:
            break
        candidate = candidate.split(".", 1)[1]
    return None


def config_for_url(
    configs: Mapping[str, DomainConfig],
    url: Optional[str],
) -> Optional[DomainConfig]:
    if not url:
        return None
    host = urlparse(url).hostname
    if not host:
        return None
    return config_for_host(configs, host)


__all__ = [
    "DEFAULT_STEALTH_ARGS",
    "DomainConfig",
    "config_for_host",
    "config_for_url",
    "default_domain_configs",
]
