# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Check timing: per-phase network breakdown and orchestrator stage tracking.

``TimingCollector`` hooks httpx's ``trace`` request extension (httpcore
connection events) and records DNS, TCP connect, TLS handshake, TTFB and
download durations.  Connect/TLS come from the first connection the chain
opens; TTFB/download come from the final hop.  A hop served from a pooled
connection contributes no connect/TLS time.

``StageTimer`` is created outside ``asyncio.wait_for`` so it survives
cancellation and can report which stage an overall timeout interrupted.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any


def _ms(start_ns: int, end_ns: int) -> float:
    return round(max(end_ns - start_ns, 0) / 1e6, 1)


# ---------------------------------------------------------------------------
# Network timing breakdown
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TimingBreakdown:
    """Per-phase durations in milliseconds. Missing phases are 0."""

    dns_ms: float = 0.0
    tcp_ms: float = 0.0
    tls_ms: float = 0.0
    ttfb_ms: float = 0.0
    download_ms: float = 0.0
    total_ms: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "dnsMs": self.dns_ms,
            "tcpMs": self.tcp_ms,
            "tlsMs": self.tls_ms,
            "ttfbMs": self.ttfb_ms,
            "downloadMs": self.download_ms,
            "totalMs": self.total_ms,
        }


_TCP_STARTED = "connection.connect_tcp.started"
_TCP_COMPLETE = "connection.connect_tcp.complete"
_TLS_STARTED = "connection.start_tls.started"
_TLS_COMPLETE = "connection.start_tls.complete"
_HEADERS_COMPLETE_SUFFIX = ".receive_response_headers.complete"
_SEND_HEADERS_STARTED_SUFFIX = ".send_request_headers.started"


class TimingCollector:
    """Collect phase timestamps for one redirect chain."""

    __slots__ = (
        "_dns_ms",
        "_start_ns",
        "_end_ns",
        "_tcp_start_ns",
        "_tcp_ms",
        "_tls_start_ns",
        "_tls_ms",
        "_hop_start_ns",
        "_headers_ns",
        "_body_done_ns",
    )

    def __init__(self, dns_ms: float = 0.0) -> None:
        self._dns_ms = dns_ms
        self._start_ns = time.monotonic_ns()
        self._end_ns = 0
        self._tcp_start_ns = 0
        self._tcp_ms: float | None = None
        self._tls_start_ns = 0
        self._tls_ms: float | None = None
        self._hop_start_ns = 0
        self._headers_ns = 0
        self._body_done_ns = 0

    def record_dns(self, dns_ms: float) -> None:
        self._dns_ms = dns_ms

    def begin_hop(self) -> None:
        """Reset per-hop marks; called before each request in the chain."""
        self._hop_start_ns = time.monotonic_ns()
        self._headers_ns = 0
        self._body_done_ns = 0

    def headers_received(self) -> None:
        if not self._headers_ns:
            self._headers_ns = time.monotonic_ns()

    def body_complete(self) -> None:
        self._body_done_ns = time.monotonic_ns()

    def finish(self) -> None:
        self._end_ns = time.monotonic_ns()

    async def trace(self, event_name: str, info: dict[str, Any]) -> None:
        """httpcore trace hook, passed as ``extensions={"trace": collector.trace}``."""
        now = time.monotonic_ns()
        if event_name == _TCP_STARTED:
            if self._tcp_ms is None:
                self._tcp_start_ns = now
        elif event_name == _TCP_COMPLETE:
            if self._tcp_ms is None and self._tcp_start_ns:
                self._tcp_ms = _ms(self._tcp_start_ns, now)
        elif event_name == _TLS_STARTED:
            if self._tls_ms is None:
                self._tls_start_ns = now
        elif event_name == _TLS_COMPLETE:
            if self._tls_ms is None and self._tls_start_ns:
                self._tls_ms = _ms(self._tls_start_ns, now)
        elif event_name.endswith(_SEND_HEADERS_STARTED_SUFFIX):
            # TTFB excludes connection setup
            self._hop_start_ns = now
        elif event_name.endswith(_HEADERS_COMPLETE_SUFFIX):
            self._headers_ns = now

    def breakdown(self) -> TimingBreakdown:
        end_ns = self._end_ns or time.monotonic_ns()
        ttfb = _ms(self._hop_start_ns, self._headers_ns) if self._hop_start_ns and self._headers_ns else 0.0
        download = _ms(self._headers_ns, self._body_done_ns) if self._headers_ns and self._body_done_ns else 0.0
        return TimingBreakdown(
            dns_ms=self._dns_ms,
            tcp_ms=self._tcp_ms or 0.0,
            tls_ms=self._tls_ms or 0.0,
            ttfb_ms=ttfb,
            download_ms=download,
            total_ms=round(self._dns_ms + _ms(self._start_ns, end_ns), 1),
        )


# ---------------------------------------------------------------------------
# Orchestrator stage timer
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class StageRecord:
    name: str
    start_ns: int
    end_ns: int = 0


class StageTimer:
    """Track check state transitions for latency reporting."""

    __slots__ = ("_stages", "_current", "_start_ns")

    def __init__(self) -> None:
        self._stages: list[StageRecord] = []
        self._current: StageRecord | None = None
        self._start_ns: int = time.monotonic_ns()

    def stage(self, name: str) -> None:
        """End previous stage + start new stage."""
        now = time.monotonic_ns()
        if self._current is not None:
            self._current.end_ns = now
            self._stages.append(self._current)
        self._current = StageRecord(name=name, start_ns=now)

    def finalize(self) -> None:
        """End current stage. Call on success or error."""
        if self._current is not None:
            self._current.end_ns = time.monotonic_ns()
            self._stages.append(self._current)
            self._current = None

    @property
    def current_stage(self) -> str | None:
        return self._current.name if self._current else None

    @property
    def history(self) -> list[str]:
        names = [s.name for s in self._stages]
        if self._current is not None:
            names.append(self._current.name)
        return names

    def elapsed_ms(self) -> float:
        return _ms(self._start_ns, time.monotonic_ns())

    def elapsed_per_stage(self) -> dict[str, float]:
        """Return {stage_name: elapsed_ms} for all stages (including current)."""
        now = time.monotonic_ns()
        result: dict[str, float] = {}
        for s in self._stages:
            result[s.name] = _ms(s.start_ns, s.end_ns)
        if self._current is not None:
            result[self._current.name] = _ms(self._current.start_ns, now)
        return result

    def timeout_report(self) -> dict[str, Any]:
        """Structured diagnostic for an overall check timeout."""
        now = time.monotonic_ns()
        completed = [{"stage": s.name, "ms": _ms(s.start_ns, s.end_ns)} for s in self._stages]
        current = self.current_stage or "unknown"
        current_ms = _ms(self._current.start_ns, now) if self._current else 0.0
        return {
            "error": "timeout",
            "completed_stages": completed,
            "timed_out_at": current,
            "timed_out_stage_ms": current_ms,
            "total_ms": _ms(self._start_ns, now),
        }
