# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-monitor cookie persistence for session-based monitoring.

Each monitor owns a stdlib ``http.cookiejar.CookieJar`` handed to httpx as
``cookies=jar``; httpx shares (does not copy) a raw CookieJar, so
``Set-Cookie`` from every hop lands back in the monitor's jar.  Cookie
expiry (Max-Age/Expires), domain and path matching are the jar's job.

A jar idle for longer than its TTL is discarded: lazily on the next access,
and by a periodic reaper while the server runs.

- **Reaper**: ``done_callback`` crash-restart pattern (NOT TaskGroup).
- **Clock**: ``time.monotonic()``, injectable for tests.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from http.cookiejar import CookieJar
from types import TracebackType
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_COOKIE_TTL_SECONDS = 3600.0
DEFAULT_REAPER_INTERVAL_SECONDS = 300.0


@dataclass(slots=True)
class CookieJarEntry:
    """One monitor's jar plus idle-expiry bookkeeping."""

    jar: CookieJar
    last_used: float  # clock() at last access
    ttl: float

    def is_expired(self, now: float) -> bool:
        return (now - self.last_used) > self.ttl


@dataclass(frozen=True, slots=True)
class CookieStoreStats:
    """Immutable snapshot of cookie store state for monitoring."""

    total_stores: int
    stores: list[dict[str, Any]] = field(default_factory=list)


class CookieStore:
    """Monitor id -> cookie jar with idle TTL.

    Usage::

        async with CookieStore() as store:
            jar = await store.get_jar("monitor-1", ttl=1800)
    """

    def __init__(
        self,
        *,
        reaper_interval: float = DEFAULT_REAPER_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if reaper_interval <= 0:
            raise ValueError(f"reaper_interval must be > 0, got {reaper_interval}")
        self._entries: dict[str, CookieJarEntry] = {}
        self._lock = asyncio.Lock()
        self._reaper_interval = reaper_interval
        self._reaper_task: asyncio.Task | None = None
        self._clock = clock

    # -- Async context manager --

    async def __aenter__(self) -> CookieStore:
        self._start_reaper()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.shutdown()

    # -- Public API --

    async def get_jar(self, monitor_id: str, ttl: float = DEFAULT_COOKIE_TTL_SECONDS) -> CookieJar:
        """Return the monitor's jar, creating a fresh one if absent or idle past its TTL."""
        if ttl <= 0:
            raise ValueError(f"ttl must be > 0, got {ttl}")
        now = self._clock()
        async with self._lock:
            entry = self._entries.get(monitor_id)
            if entry is not None and entry.is_expired(now):
                logger.debug("Cookie jar for %s idle past TTL, discarding", monitor_id)
                entry = None
            if entry is None:
                entry = CookieJarEntry(jar=CookieJar(), last_used=now, ttl=ttl)
                self._entries[monitor_id] = entry
            else:
                entry.last_used = now
                entry.ttl = ttl
            return entry.jar

    async def clear(self, monitor_id: str) -> bool:
        """Forget all cookies for *monitor_id*. Returns True if a jar existed."""
        async with self._lock:
            return self._entries.pop(monitor_id, None) is not None

    async def sweep(self) -> int:
        """Drop every jar idle past its TTL. Returns the number removed."""
        now = self._clock()
        async with self._lock:
            expired = [mid for mid, entry in self._entries.items() if entry.is_expired(now)]
            for mid in expired:
                del self._entries[mid]
        if expired:
            logger.info("Cleaned up %d expired cookie store(s)", len(expired))
        return len(expired)

    def stats(self) -> CookieStoreStats:
        now = self._clock()
        return CookieStoreStats(
            total_stores=len(self._entries),
            stores=[
                {
                    "monitorId": mid,
                    "cookieCount": len(entry.jar),
                    "idleSeconds": round(now - entry.last_used, 1),
                    "ttlSeconds": entry.ttl,
                }
                for mid, entry in self._entries.items()
            ],
        )

    def __len__(self) -> int:
        return len(self._entries)

    async def shutdown(self) -> None:
        """Cancel the reaper and drop all jars."""
        if self._reaper_task is not None and not self._reaper_task.done():
            self._reaper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reaper_task
            self._reaper_task = None
        self._entries.clear()

    # -- Internal: reaper --

    def _start_reaper(self) -> None:
        """Launch (or re-launch) the idle-jar reaper loop."""
        if self._reaper_task is not None and not self._reaper_task.done():
            return
        self._reaper_task = asyncio.get_running_loop().create_task(self._reaper_loop())
        self._reaper_task.add_done_callback(self._reaper_done)

    def _reaper_done(self, task: asyncio.Task) -> None:
        """Restart reaper if it crashed (not cancelled)."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Cookie store reaper crashed, restarting: %s", exc)
            with contextlib.suppress(RuntimeError):
                self._start_reaper()

    async def _reaper_loop(self) -> None:
        """Periodically evict idle jars."""
        while True:
            await asyncio.sleep(self._reaper_interval)
            await self.sweep()
