"""CLI helper to prime cached webmail sessions for Mailbot."""

from __future__ import annotations

import argparse
import asyncio
import logging

from mailbot.browser.auth import default_domain_configs
from mailbot.browser.session import BrowserSession


async def _ensure(domain: str, force: bool) -> dict:
    async with BrowserSession(headless=False) as session:
        return await session.ensure_login(domain, force=force)


def main() -> None:
    domains = sorted(default_domain_configs())
    parser = argparse.ArgumentParser(
        description="Launch a headed browser and cache the login session for a webmail domain.",
    )
    parser.add_argument("domain", choices=domains, help="Domain to authenticate")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Force the login flow even if a storage state already exists.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log progress at INFO level.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    result = asyncio.run(_ensure(args.domain, args.force))
    print(
        "Cached storage state for {domain} at {path}".format(
            domain=result["domain"], path=result["storage_state"]
        )
    )


if __name__ == "__main__":
    main()
