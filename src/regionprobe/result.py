# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""The check result record.

Built once per check and returned whole.  ``to_dict()`` renders the flat
camelCase record the orchestrating server stores; absent values are
``null`` so every response carries the same keys.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from .detection.rate_limit import BackoffAdvice
from .detection.verdicts import DetectionMetadata, RateLimitVerdict
from .dns_resolver import DnsResult
from .redirects import Hop
from .timing import TimingBreakdown


class CheckStatus(StrEnum):
    UP = "up"
    DOWN = "down"
    DEGRADED = "degraded"
    DNS_FAILURE = "dns_failure"


class ErrorKind(StrEnum):
    DNS_FAILURE = "dns_failure"
    DNS_HIJACK = "dns_hijack"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    REDIRECT_LOOP = "redirect_loop"
    MAX_REDIRECTS = "max_redirects"
    STATUS_MISMATCH = "status_mismatch"
    INTERNAL_ERROR = "internal_error"


def utc_timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def rate_limit_info(verdict: RateLimitVerdict, backoff: BackoffAdvice | None = None) -> dict[str, Any]:
    """Flat rate-limit summary with optional advisory backoff."""
    info: dict[str, Any] = {
        "detected": True,
        "type": verdict.kind.value,
        "reason": verdict.reason,
        "retryAfter": verdict.retry_after,
        "limit": verdict.limit,
        "remaining": verdict.remaining,
        "reset": verdict.reset,
        "resetDate": verdict.reset_date,
    }
    if backoff is not None:
        info["backoff"] = backoff.to_dict()
    return info


@dataclass(frozen=True, slots=True)
class CheckResult:
    monitor_id: str
    region: str
    status: CheckStatus
    response_time_ms: float
    checked_at: str
    status_code: int | None = None
    error_message: str | None = None
    error_type: ErrorKind | None = None
    geo_blocking_indicators: tuple[str, ...] = ()
    detection_metadata: DetectionMetadata | None = None
    challenge_info: dict[str, Any] | None = None
    # content validation
    content_validated: bool | None = None
    content_hash: str | None = None
    validation_errors: tuple[str, ...] | None = None
    validation_warnings: tuple[str, ...] | None = None
    response_size: int | None = None
    # redirects
    redirect_count: int = 0
    final_url: str | None = None
    redirect_chain: tuple[Hop, ...] = ()
    is_redirect_loop: bool = False
    max_redirects_exceeded: bool = False
    # diagnostics
    timing_breakdown: TimingBreakdown | None = None
    rate_limit_info: dict[str, Any] | None = None
    dns: DnsResult | None = None
    timeout_report: dict[str, Any] | None = None

    @property
    def is_geo_blocked(self) -> bool:
        return bool(self.geo_blocking_indicators)

    def to_dict(self) -> dict[str, Any]:
        return {
            "monitorId": self.monitor_id,
            "region": self.region,
            "status": self.status.value,
            "statusCode": self.status_code,
            "responseTimeMs": self.response_time_ms,
            "errorMessage": self.error_message,
            "errorType": self.error_type.value if self.error_type else None,
            "isGeoBlocked": self.is_geo_blocked,
            "geoBlockingIndicators": list(self.geo_blocking_indicators),
            "detectionMetadata": self.detection_metadata.to_dict() if self.detection_metadata else None,
            "challengeInfo": self.challenge_info,
            "contentValidated": self.content_validated,
            "contentHash": self.content_hash,
            "validationErrors": list(self.validation_errors) if self.validation_errors is not None else None,
            "validationWarnings": list(self.validation_warnings) if self.validation_warnings is not None else None,
            "responseSize": self.response_size,
            "redirectCount": self.redirect_count,
            "finalUrl": self.final_url,
            "redirectChain": [hop.to_dict() for hop in self.redirect_chain],
            "isRedirectLoop": self.is_redirect_loop,
            "maxRedirectsExceeded": self.max_redirects_exceeded,
            "timingBreakdown": self.timing_breakdown.to_dict() if self.timing_breakdown else None,
            "rateLimitInfo": self.rate_limit_info,
            "dns": self.dns.to_dict() if self.dns else None,
            "timeoutReport": self.timeout_report,
            "checkedAt": self.checked_at,
        }
