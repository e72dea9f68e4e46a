# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Rate-limit classifier, header parsing and advisory backoff.

Detection:

- HTTP 429 always detects, body or not (``429_too_many_requests``).
- Rate-limit phrasing in the body, whatever the status
  (``503_rate_limit`` for 503, ``body_pattern`` otherwise).
- An exhausted quota header (``*-remaining: 0``) or any ``Retry-After``
  header (``rate_limit_headers``).

Backoff is advice for the scheduler that called the probe; nothing here
retries.
"""

from __future__ import annotations

import math
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

from .verdicts import RateLimitKind, RateLimitVerdict, ResponseFacts

RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "rate limit",
    "rate-limit",
    "too many requests",
    "quota exceeded",
    "rate exceeded",
    "request limit",
    "throttled",
    "slow down",
)

BACKOFF_LEVELS_SECONDS: tuple[int, ...] = (60, 120, 300, 600, 1200)
MAX_BACKOFF_SECONDS = 3600
MAX_RECOMMENDED_INTERVAL_SECONDS = 600
INCREASE_INTERVAL_AFTER = 2

_HEADER_PREFIXES = ("x-ratelimit-", "x-rate-limit-", "ratelimit-")
_DIGITS_RE = re.compile(r"^\s*(\d+)\s*$")
_LEADING_INT_RE = re.compile(r"^\s*(\d+)")

# Values below this are relative seconds (IETF RateLimit-Reset), above are epoch seconds
_EPOCH_THRESHOLD = 1_000_000_000


# ---------------------------------------------------------------------------
# Header parsing
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RateLimitHeaders:
    retry_after: int | None = None  # seconds to wait
    limit: int | None = None
    remaining: int | None = None
    reset: int | None = None  # epoch seconds
    reset_date: str | None = None  # ISO 8601, UTC


def _iso_utc(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, UTC).isoformat().replace("+00:00", "Z")


def _first_int(headers: dict[str, str], suffix: str) -> int | None:
    for prefix in _HEADER_PREFIXES:
        raw = headers.get(prefix + suffix)
        if raw:
            # IETF draft allows "100, 100;w=60"; take the leading number
            m = _LEADING_INT_RE.match(raw)
            if m:
                return int(m.group(1))
    return None


def parse_retry_after(value: str, *, now: float | None = None) -> int | None:
    """``Retry-After`` as delta seconds or an HTTP date. None when unparseable."""
    m = _DIGITS_RE.match(value)
    if m:
        return int(m.group(1))
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    current = time.time() if now is None else now
    return max(0, math.ceil(when.timestamp() - current))


def parse_rate_limit_headers(
    headers: dict[str, str],
    *,
    clock: Callable[[], float] = time.time,
) -> RateLimitHeaders:
    """Parse ``Retry-After`` and the ``X-RateLimit-*`` / ``X-Rate-Limit-*`` / ``RateLimit-*`` families."""
    lowered = {k.lower(): v for k, v in headers.items()}
    now = clock()

    retry_after: int | None = None
    raw_retry = lowered.get("retry-after")
    if raw_retry:
        retry_after = parse_retry_after(raw_retry, now=now)

    limit = _first_int(lowered, "limit")
    remaining = _first_int(lowered, "remaining")
    reset = _first_int(lowered, "reset")

    reset_date: str | None = None
    if reset is not None:
        if reset < _EPOCH_THRESHOLD:
            reset = int(now) + reset
        try:
            reset_date = _iso_utc(reset)
        except (OverflowError, OSError, ValueError):
            reset_date = None
        if retry_after is None:
            retry_after = max(0, reset - int(now))

    return RateLimitHeaders(
        retry_after=retry_after,
        limit=limit,
        remaining=remaining,
        reset=reset,
        reset_date=reset_date,
    )


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


def _verdict(
    facts: ResponseFacts,
    kind: RateLimitKind,
    reason: str,
    parsed: RateLimitHeaders,
    pattern: str | None = None,
) -> RateLimitVerdict:
    return RateLimitVerdict(
        reason=reason,
        kind=kind,
        status_code=facts.status_code,
        pattern=pattern,
        retry_after=parsed.retry_after,
        limit=parsed.limit,
        remaining=parsed.remaining,
        reset=parsed.reset,
        reset_date=parsed.reset_date,
    )


def detect_rate_limit(
    facts: ResponseFacts,
    *,
    clock: Callable[[], float] = time.time,
) -> RateLimitVerdict | None:
    status = facts.status_code
    parsed = parse_rate_limit_headers(facts.headers, clock=clock)
    pattern = next((p for p in RATE_LIMIT_PATTERNS if p in facts.body), None)

    if status == 429:
        return _verdict(facts, RateLimitKind.TOO_MANY_REQUESTS, "Rate limit exceeded (HTTP 429)", parsed, pattern)

    if pattern is not None:
        kind = RateLimitKind.SERVICE_UNAVAILABLE if status == 503 else RateLimitKind.BODY_PATTERN
        return _verdict(facts, kind, f"Rate limit detected: {pattern}", parsed, pattern)

    if parsed.remaining == 0 or "retry-after" in facts.headers:
        return _verdict(facts, RateLimitKind.HEADERS, "Rate limit headers detected", parsed)

    return None


# ---------------------------------------------------------------------------
# Advisory backoff
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BackoffAdvice:
    backoff_seconds: int
    next_check_at: str  # ISO 8601, UTC
    should_increase_interval: bool
    recommended_interval: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "backoffSeconds": self.backoff_seconds,
            "nextCheckAt": self.next_check_at,
            "shouldIncreaseInterval": self.should_increase_interval,
            "recommendedInterval": self.recommended_interval,
        }


def calculate_backoff(
    retry_after: int | None,
    current_interval: float,
    consecutive_rate_limits: int = 0,
    *,
    clock: Callable[[], float] = time.time,
) -> BackoffAdvice:
    """Recommend when to check again after a rate limit.

    ``Retry-After`` wins when present; otherwise an exponential ladder
    indexed by the consecutive count.  Capped at one hour, never below the
    current interval.
    """
    if retry_after:
        backoff = retry_after
    else:
        level = min(max(consecutive_rate_limits, 0), len(BACKOFF_LEVELS_SECONDS) - 1)
        backoff = BACKOFF_LEVELS_SECONDS[level]

    backoff = min(backoff, MAX_BACKOFF_SECONDS)
    backoff = int(max(backoff, current_interval))

    should_increase = consecutive_rate_limits >= INCREASE_INTERVAL_AFTER
    recommended = (
        int(min(current_interval * 2, MAX_RECOMMENDED_INTERVAL_SECONDS)) if should_increase else int(current_interval)
    )
    return BackoffAdvice(
        backoff_seconds=backoff,
        next_check_at=_iso_utc(clock() + backoff),
        should_increase_interval=should_increase,
        recommended_interval=recommended,
    )
