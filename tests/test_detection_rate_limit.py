# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for regionprobe.detection.rate_limit — classifier, header parsing, backoff."""

from __future__ import annotations

import pytest

from regionprobe.detection import (
    RateLimitKind,
    ResponseFacts,
    calculate_backoff,
    detect_rate_limit,
    parse_rate_limit_headers,
    parse_retry_after,
)

NOW = 1_700_000_000.0  # 2023-11-14T22:13:20Z


def _clock() -> float:
    return NOW


def _facts(status, headers=None, body=""):
    return ResponseFacts.from_raw(status, headers, body)


class TestParseRetryAfter:
    def test_delta_seconds(self):
        assert parse_retry_after("120") == 120

    def test_http_date(self):
        assert parse_retry_after("Tue, 14 Nov 2023 22:15:20 GMT", now=NOW) == 120

    def test_date_in_past_clamps_to_zero(self):
        assert parse_retry_after("Tue, 14 Nov 2023 22:00:00 GMT", now=NOW) == 0

    def test_garbage(self):
        assert parse_retry_after("soon") is None


class TestParseRateLimitHeaders:
    def test_x_ratelimit_family_with_epoch_reset(self):
        parsed = parse_rate_limit_headers(
            {"X-RateLimit-Limit": "100", "X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1700000060"},
            clock=_clock,
        )
        assert parsed.limit == 100
        assert parsed.remaining == 0
        assert parsed.reset == 1_700_000_060
        assert parsed.reset_date == "2023-11-14T22:14:20Z"
        assert parsed.retry_after == 60

    def test_relative_reset(self):
        parsed = parse_rate_limit_headers({"RateLimit-Reset": "30"}, clock=_clock)
        assert parsed.reset == 1_700_000_030
        assert parsed.retry_after == 30

    def test_retry_after_wins_over_reset(self):
        parsed = parse_rate_limit_headers({"Retry-After": "5", "X-Rate-Limit-Reset": "1700000060"}, clock=_clock)
        assert parsed.retry_after == 5

    def test_ietf_list_value(self):
        assert parse_rate_limit_headers({"RateLimit-Limit": "100, 100;w=60"}, clock=_clock).limit == 100

    def test_nothing_present(self):
        parsed = parse_rate_limit_headers({"Content-Type": "text/html"}, clock=_clock)
        assert (parsed.retry_after, parsed.limit, parsed.remaining, parsed.reset) == (None, None, None, None)


class TestDetectRateLimit:
    def test_429_without_body(self):
        verdict = detect_rate_limit(_facts(429), clock=_clock)
        assert verdict.kind is RateLimitKind.TOO_MANY_REQUESTS
        assert verdict.reason == "Rate limit exceeded (HTTP 429)"
        assert verdict.pattern is None

    def test_429_carries_retry_after(self):
        verdict = detect_rate_limit(_facts(429, {"Retry-After": "120"}), clock=_clock)
        assert verdict.retry_after == 120

    def test_503_with_phrase(self):
        verdict = detect_rate_limit(_facts(503, body="Rate limit exceeded, try later"), clock=_clock)
        assert verdict.kind is RateLimitKind.SERVICE_UNAVAILABLE
        assert verdict.pattern == "rate limit"
        assert verdict.reason == "Rate limit detected: rate limit"

    def test_other_error_with_phrase(self):
        verdict = detect_rate_limit(_facts(403, body="Too Many Requests"), clock=_clock)
        assert verdict.kind is RateLimitKind.BODY_PATTERN

    def test_phrase_on_success_detected(self):
        verdict = detect_rate_limit(_facts(200, body="Too many requests, slow down"), clock=_clock)
        assert verdict.kind is RateLimitKind.BODY_PATTERN
        assert verdict.pattern == "too many requests"

    def test_exhausted_quota_on_success(self):
        verdict = detect_rate_limit(_facts(200, {"X-RateLimit-Remaining": "0"}), clock=_clock)
        assert verdict.kind is RateLimitKind.HEADERS
        assert verdict.remaining == 0

    def test_retry_after_on_error(self):
        verdict = detect_rate_limit(_facts(500, {"Retry-After": "30"}), clock=_clock)
        assert verdict.kind is RateLimitKind.HEADERS
        assert verdict.reason == "Rate limit headers detected"

    def test_retry_after_on_success_detected(self):
        verdict = detect_rate_limit(_facts(200, {"Retry-After": "120"}), clock=_clock)
        assert verdict.kind is RateLimitKind.HEADERS
        assert verdict.retry_after == 120

    def test_plain_success_not_detected(self):
        assert detect_rate_limit(_facts(200, body="<html>welcome</html>"), clock=_clock) is None

    def test_to_dict_drops_absent_metadata(self):
        d = detect_rate_limit(_facts(429), clock=_clock).to_dict()
        assert d["type"] == "rate_limit"
        assert d["metadata"] == {"statusCode": 429, "rateLimitType": "429_too_many_requests"}


class TestCalculateBackoff:
    def test_retry_after_used(self):
        advice = calculate_backoff(120, 60, clock=_clock)
        assert advice.backoff_seconds == 120
        assert advice.next_check_at == "2023-11-14T22:15:20Z"
        assert advice.should_increase_interval is False
        assert advice.recommended_interval == 60

    @pytest.mark.parametrize(("count", "expected"), [(0, 60), (1, 120), (2, 300), (3, 600), (4, 1200), (9, 1200)])
    def test_ladder(self, count, expected):
        assert calculate_backoff(None, 30, count, clock=_clock).backoff_seconds == expected

    def test_capped_at_one_hour(self):
        assert calculate_backoff(7200, 60, clock=_clock).backoff_seconds == 3600

    def test_never_below_current_interval(self):
        assert calculate_backoff(10, 300, clock=_clock).backoff_seconds == 300

    def test_interval_increase_after_repeated_limits(self):
        advice = calculate_backoff(None, 400, 2, clock=_clock)
        assert advice.should_increase_interval is True
        assert advice.recommended_interval == 600

    def test_to_dict(self):
        d = calculate_backoff(None, 60, clock=_clock).to_dict()
        assert set(d) == {"backoffSeconds", "nextCheckAt", "shouldIncreaseInterval", "recommendedInterval"}
