# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for regionprobe.cookie_store — per-monitor jars with idle TTL."""

from __future__ import annotations

import asyncio
from http.cookiejar import Cookie

import pytest

from regionprobe.cookie_store import CookieStore


class _Clock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _cookie(name: str, value: str) -> Cookie:
    return Cookie(
        version=0,
        name=name,
        value=value,
        port=None,
        port_specified=False,
        domain="example.com",
        domain_specified=False,
        domain_initial_dot=False,
        path="/",
        path_specified=True,
        secure=False,
        expires=None,
        discard=True,
        comment=None,
        comment_url=None,
        rest={},
    )


class TestGetJar:
    async def test_same_jar_for_same_monitor(self):
        store = CookieStore()
        a = await store.get_jar("mon-1")
        b = await store.get_jar("mon-1")
        assert a is b
        assert len(store) == 1

    async def test_monitors_are_isolated(self):
        store = CookieStore()
        jar = await store.get_jar("mon-1")
        jar.set_cookie(_cookie("session", "abc"))
        other = await store.get_jar("mon-2")
        assert len(other) == 0

    async def test_idle_jar_replaced(self):
        clock = _Clock()
        store = CookieStore(clock=clock)
        old = await store.get_jar("mon-1", ttl=10)
        old.set_cookie(_cookie("session", "abc"))
        clock.now = 11
        fresh = await store.get_jar("mon-1", ttl=10)
        assert fresh is not old
        assert len(fresh) == 0

    async def test_access_refreshes_idle_timer(self):
        clock = _Clock()
        store = CookieStore(clock=clock)
        jar = await store.get_jar("mon-1", ttl=10)
        clock.now = 8
        await store.get_jar("mon-1", ttl=10)
        clock.now = 16
        assert await store.get_jar("mon-1", ttl=10) is jar

    async def test_invalid_ttl(self):
        with pytest.raises(ValueError, match="ttl"):
            await CookieStore().get_jar("mon-1", ttl=0)


class TestMaintenance:
    async def test_clear(self):
        store = CookieStore()
        await store.get_jar("mon-1")
        assert await store.clear("mon-1") is True
        assert await store.clear("mon-1") is False

    async def test_sweep_removes_only_expired(self):
        clock = _Clock()
        store = CookieStore(clock=clock)
        await store.get_jar("short", ttl=5)
        await store.get_jar("long", ttl=100)
        clock.now = 6
        assert await store.sweep() == 1
        assert [s["monitorId"] for s in store.stats().stores] == ["long"]

    async def test_stats(self):
        clock = _Clock()
        store = CookieStore(clock=clock)
        jar = await store.get_jar("mon-1", ttl=60)
        jar.set_cookie(_cookie("a", "1"))
        clock.now = 2.5
        stats = store.stats()
        assert stats.total_stores == 1
        assert stats.stores[0] == {"monitorId": "mon-1", "cookieCount": 1, "idleSeconds": 2.5, "ttlSeconds": 60}

    def test_invalid_reaper_interval(self):
        with pytest.raises(ValueError, match="reaper_interval"):
            CookieStore(reaper_interval=0)


class TestReaper:
    async def test_reaper_sweeps_in_background(self):
        clock = _Clock()
        async with CookieStore(reaper_interval=0.01, clock=clock) as store:
            await store.get_jar("mon-1", ttl=1)
            clock.now = 5
            for _ in range(50):
                await asyncio.sleep(0.01)
                if len(store) == 0:
                    break
            assert len(store) == 0

    async def test_exit_cancels_reaper_and_drops_jars(self):
        store = CookieStore(reaper_interval=60)
        async with store:
            await store.get_jar("mon-1")
            task = store._reaper_task
            assert task is not None and not task.done()
        assert task.cancelled()
        assert len(store) == 0
