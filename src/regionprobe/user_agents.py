# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Browser User-Agent rotation with header sets consistent with each UA.

Sites that fingerprint clients compare ``User-Agent`` with ``Sec-Ch-Ua*``
and ``Sec-Fetch-*``; Chrome UAs get the client-hint headers a real Chrome
sends, Firefox UAs do not.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass

CHROME_USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/130.0.0.0 Safari/537.36",
)

FIREFOX_USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:123.0) Gecko/20100101 Firefox/123.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:123.0) Gecko/20100101 Firefox/123.0",
    "Mozilla/5.0 (X11; Linux x86_64; rv:123.0) Gecko/20100101 Firefox/123.0",
)

ALL_USER_AGENTS: tuple[str, ...] = CHROME_USER_AGENTS + FIREFOX_USER_AGENTS

ACCEPT_LANGUAGES: tuple[str, ...] = ("en-US,en;q=0.9", "en-GB,en;q=0.9", "en,en-US;q=0.9")

_FIREFOX_RE = re.compile(r"Firefox/(\d+)")
_CHROME_RE = re.compile(r"Chrome/(\d+)")


@dataclass(frozen=True, slots=True)
class BrowserInfo:
    browser: str  # Chrome | Firefox
    version: str
    os: str  # Windows | macOS | Linux


def parse_browser_info(user_agent: str) -> BrowserInfo:
    browser, version = "Chrome", "131"
    if "Firefox" in user_agent:
        m = _FIREFOX_RE.search(user_agent)
        browser, version = "Firefox", m.group(1) if m else "123"
    elif "Chrome" in user_agent:
        m = _CHROME_RE.search(user_agent)
        version = m.group(1) if m else "131"

    if "Windows" in user_agent:
        os_name = "Windows"
    elif "Macintosh" in user_agent:
        os_name = "macOS"
    elif "Linux" in user_agent:
        os_name = "Linux"
    else:
        os_name = "Windows"
    return BrowserInfo(browser=browser, version=version, os=os_name)


class UserAgentRotator:
    """Owned rotation state. One instance per process, injected into the checker.

    Strategies: ``rotate`` (round-robin over all UAs), ``random``,
    ``fixed`` (always the first Chrome UA).
    """

    def __init__(self, strategy: str = "rotate", *, rng: random.Random | None = None) -> None:
        if strategy not in ("rotate", "random", "fixed"):
            raise ValueError(f"strategy must be rotate, random or fixed, got {strategy!r}")
        self.strategy = strategy
        self._rng = rng or random.Random()  # nosec B311
        self._index = 0

    def next_user_agent(self) -> str:
        if self.strategy == "rotate":
            ua = ALL_USER_AGENTS[self._index % len(ALL_USER_AGENTS)]
            self._index += 1
            return ua
        if self.strategy == "random":
            return self._rng.choice(ALL_USER_AGENTS)
        return CHROME_USER_AGENTS[0]

    def browser_headers(self, user_agent: str) -> dict[str, str]:
        info = parse_browser_info(user_agent)
        headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,"
            "image/apng,*/*;q=0.8",
            "Accept-Language": self._rng.choice(ACCEPT_LANGUAGES),
            # br omitted: httpx only decodes it when brotli is installed
            "Accept-Encoding": "gzip, deflate",
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
        }
        if info.browser == "Chrome":
            headers.update(
                {
                    "Sec-Ch-Ua": f'"Google Chrome";v="{info.version}", "Chromium";v="{info.version}", '
                    '"Not_A Brand";v="24"',
                    "Sec-Ch-Ua-Mobile": "?0",
                    "Sec-Ch-Ua-Platform": f'"{info.os}"',
                    "Sec-Fetch-Dest": "document",
                    "Sec-Fetch-Mode": "navigate",
                    "Sec-Fetch-Site": "none",
                    "Sec-Fetch-User": "?1",
                    "Upgrade-Insecure-Requests": "1",
                }
            )
        return headers

    def headers(self, custom: dict[str, str] | None = None) -> dict[str, str]:
        """Browser headers for the next UA, with *custom* overriding case-insensitively."""
        merged = self.browser_headers(self.next_user_agent())
        if custom:
            lowered = {k.lower() for k in custom}
            merged = {k: v for k, v in merged.items() if k.lower() not in lowered}
            merged.update(custom)
        return merged
