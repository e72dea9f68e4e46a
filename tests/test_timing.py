# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for regionprobe.timing — network phase breakdown and stage tracking."""

from __future__ import annotations

import time

from regionprobe.timing import StageTimer, TimingBreakdown, TimingCollector


class TestTimingBreakdown:
    def test_to_dict_keys(self):
        d = TimingBreakdown(dns_ms=1.0, tcp_ms=2.0, tls_ms=3.0, ttfb_ms=4.0, download_ms=5.0, total_ms=15.0).to_dict()
        assert d == {"dnsMs": 1.0, "tcpMs": 2.0, "tlsMs": 3.0, "ttfbMs": 4.0, "downloadMs": 5.0, "totalMs": 15.0}


class TestTimingCollector:
    async def test_trace_events_fill_connect_and_tls(self):
        collector = TimingCollector(dns_ms=2.5)
        collector.begin_hop()
        await collector.trace("connection.connect_tcp.started", {})
        await collector.trace("connection.connect_tcp.complete", {})
        await collector.trace("connection.start_tls.started", {})
        await collector.trace("connection.start_tls.complete", {})
        await collector.trace("http11.send_request_headers.started", {})
        await collector.trace("http11.receive_response_headers.complete", {})
        collector.body_complete()
        collector.finish()

        b = collector.breakdown()
        assert b.dns_ms == 2.5
        assert b.tcp_ms >= 0
        assert b.tls_ms >= 0
        assert b.ttfb_ms >= 0
        assert b.download_ms >= 0
        assert b.total_ms >= 2.5

    async def test_only_first_connection_counts(self):
        collector = TimingCollector()
        await collector.trace("connection.connect_tcp.started", {})
        await collector.trace("connection.connect_tcp.complete", {})
        first = collector.breakdown().tcp_ms
        time.sleep(0.01)
        await collector.trace("connection.connect_tcp.started", {})
        await collector.trace("connection.connect_tcp.complete", {})
        assert collector.breakdown().tcp_ms == first

    def test_missing_phases_are_zero(self):
        b = TimingCollector().breakdown()
        assert b.tcp_ms == 0.0
        assert b.tls_ms == 0.0
        assert b.ttfb_ms == 0.0
        assert b.download_ms == 0.0

    def test_record_dns_updates_total(self):
        collector = TimingCollector()
        collector.record_dns(40.0)
        collector.finish()
        assert collector.breakdown().total_ms >= 40.0

    def test_headers_received_keeps_first_mark(self):
        collector = TimingCollector()
        collector.begin_hop()
        collector.headers_received()
        first = collector.breakdown().ttfb_ms
        time.sleep(0.01)
        collector.headers_received()
        assert collector.breakdown().ttfb_ms == first


class TestStageTimer:
    def test_history_and_current(self):
        timer = StageTimer()
        timer.stage("pending")
        timer.stage("dns_resolving")
        assert timer.current_stage == "dns_resolving"
        assert timer.history == ["pending", "dns_resolving"]

    def test_finalize_closes_current(self):
        timer = StageTimer()
        timer.stage("requesting")
        timer.finalize()
        assert timer.current_stage is None
        assert timer.history == ["requesting"]
        timer.finalize()  # idempotent
        assert timer.history == ["requesting"]

    def test_elapsed_per_stage(self):
        timer = StageTimer()
        timer.stage("a")
        time.sleep(0.01)
        timer.stage("b")
        per_stage = timer.elapsed_per_stage()
        assert set(per_stage) == {"a", "b"}
        assert per_stage["a"] >= 10.0
        assert timer.elapsed_ms() >= per_stage["a"]

    def test_timeout_report(self):
        timer = StageTimer()
        timer.stage("dns_resolving")
        timer.stage("requesting")
        report = timer.timeout_report()
        assert report["error"] == "timeout"
        assert [s["stage"] for s in report["completed_stages"]] == ["dns_resolving"]
        assert report["timed_out_at"] == "requesting"
        assert report["total_ms"] >= report["timed_out_stage_ms"]

    def test_timeout_report_without_stage(self):
        report = StageTimer().timeout_report()
        assert report["timed_out_at"] == "unknown"
        assert report["timed_out_stage_ms"] == 0.0
