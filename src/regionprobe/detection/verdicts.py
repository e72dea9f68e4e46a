# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Detection verdicts: a tagged union of frozen dataclasses.

Every verdict carries the discriminant ``type`` (class-level), a
human-readable ``reason`` and a fixed typed payload.  ``to_dict()`` renders
the wire shape shared by all kinds::

    {"detected": true, "type": "...", "reason": "...", "metadata": {...}}

Classifiers return a verdict or ``None``; a verdict is never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar


class VerdictType(StrEnum):
    CLOUDFLARE = "cloudflare"
    WAF = "waf"
    RATE_LIMIT = "rate_limit"
    GEO_BLOCKING = "geo_blocking"
    CHALLENGE = "challenge"
    GEO_REDIRECT = "geo_redirect"


class ChallengeKind(StrEnum):
    CAPTCHA = "captcha"
    JS_CHALLENGE = "js_challenge"
    MANAGED_CHALLENGE = "managed_challenge"
    UNKNOWN_CHALLENGE = "unknown_challenge"
    FIREWALL_BLOCK = "firewall_block"
    # no-Location redirect terminals
    CLOUDFLARE_CHALLENGE = "cloudflare_challenge"
    JS_REDIRECT = "js_redirect"


class RateLimitKind(StrEnum):
    TOO_MANY_REQUESTS = "429_too_many_requests"
    SERVICE_UNAVAILABLE = "503_rate_limit"
    BODY_PATTERN = "body_pattern"
    HEADERS = "rate_limit_headers"


# ---------------------------------------------------------------------------
# Input facts
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ResponseFacts:
    """Classifier input: status plus lowercased headers and body."""

    status_code: int | None
    headers: dict[str, str]
    body: str
    elapsed_ms: float = 0.0

    @classmethod
    def from_raw(
        cls,
        status_code: int | None,
        headers: dict[str, str] | None,
        body: str | None,
        elapsed_ms: float = 0.0,
    ) -> ResponseFacts:
        return cls(
            status_code=status_code,
            headers={k.lower(): str(v).lower() for k, v in (headers or {}).items()},
            body=(body or "").lower(),
            elapsed_ms=elapsed_ms,
        )


# ---------------------------------------------------------------------------
# Verdict variants
# ---------------------------------------------------------------------------


class _VerdictBase:
    __slots__ = ()

    type: ClassVar[VerdictType]
    detected: ClassVar[bool] = True
    reason: str

    def metadata(self) -> dict[str, Any]:
        raise NotImplementedError

    def to_dict(self) -> dict[str, Any]:
        return {
            "detected": True,
            "type": self.type.value,
            "reason": self.reason,
            "metadata": {k: v for k, v in self.metadata().items() if v is not None},
        }


@dataclass(frozen=True, slots=True)
class CdnVerdict(_VerdictBase):
    """CDN in front of the origin served a challenge or a firewall block."""

    type: ClassVar[VerdictType] = VerdictType.CLOUDFLARE

    reason: str
    kind: ChallengeKind
    status_code: int | None = None
    vendor: str = "Cloudflare"
    ray_id: str | None = None

    def metadata(self) -> dict[str, Any]:
        return {
            "statusCode": self.status_code,
            "wafProvider": self.vendor,
            "challengeType": self.kind.value,
            "cfRay": self.ray_id,
        }


@dataclass(frozen=True, slots=True)
class WafVerdict(_VerdictBase):
    type: ClassVar[VerdictType] = VerdictType.WAF

    reason: str
    vendor: str
    signature: str
    status_code: int | None = None

    def metadata(self) -> dict[str, Any]:
        return {"statusCode": self.status_code, "wafProvider": self.vendor, "signature": self.signature}


@dataclass(frozen=True, slots=True)
class RateLimitVerdict(_VerdictBase):
    type: ClassVar[VerdictType] = VerdictType.RATE_LIMIT

    reason: str
    kind: RateLimitKind
    status_code: int | None = None
    pattern: str | None = None
    retry_after: int | None = None
    limit: int | None = None
    remaining: int | None = None
    reset: int | None = None
    reset_date: str | None = None

    def metadata(self) -> dict[str, Any]:
        return {
            "statusCode": self.status_code,
            "rateLimitType": self.kind.value,
            "pattern": self.pattern,
            "retryAfter": self.retry_after,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset": self.reset,
            "resetDate": self.reset_date,
        }


@dataclass(frozen=True, slots=True)
class GeoBlockVerdict(_VerdictBase):
    type: ClassVar[VerdictType] = VerdictType.GEO_BLOCKING

    reason: str
    status_code: int | None = None
    keyword: str | None = None
    header: str | None = None
    response_time_ms: float | None = None

    def metadata(self) -> dict[str, Any]:
        return {
            "statusCode": self.status_code,
            "keyword": self.keyword,
            "header": self.header,
            "responseTime": self.response_time_ms,
        }


@dataclass(frozen=True, slots=True)
class ChallengeVerdict(_VerdictBase):
    """Origin reachable but gated behind an interstitial (redirect without Location)."""

    type: ClassVar[VerdictType] = VerdictType.CHALLENGE

    reason: str
    kind: ChallengeKind
    status_code: int | None = None
    marker: str | None = None

    def metadata(self) -> dict[str, Any]:
        return {"statusCode": self.status_code, "challengeType": self.kind.value, "marker": self.marker}

    def to_challenge_info(self) -> dict[str, Any]:
        info: dict[str, Any] = {"type": self.kind.value, "statusCode": self.status_code, "reason": self.reason}
        if self.marker:
            info["marker"] = self.marker
        return info


@dataclass(frozen=True, slots=True)
class GeoRedirectVerdict(_VerdictBase):
    type: ClassVar[VerdictType] = VerdictType.GEO_REDIRECT

    reason: str
    pattern: str
    redirect_url: str
    hop_index: int

    def metadata(self) -> dict[str, Any]:
        return {"pattern": self.pattern, "redirectUrl": self.redirect_url, "hopIndex": self.hop_index}


Verdict = CdnVerdict | WafVerdict | RateLimitVerdict | GeoBlockVerdict | ChallengeVerdict | GeoRedirectVerdict

# Verdict kinds that count as evidence of regional refusal; CDN firewall and
# WAF blocks are reported but not claimed as geo-blocking
GEO_RESTRICTIVE_TYPES = frozenset({VerdictType.GEO_BLOCKING})


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DetectionMetadata:
    """Merged classifier output: one primary verdict plus independent side verdicts."""

    primary: Verdict | None = None
    rate_limit: RateLimitVerdict | None = None
    geo_redirect: GeoRedirectVerdict | None = None
    challenge: ChallengeVerdict | None = None

    @property
    def any_detected(self) -> bool:
        return any(v is not None for v in (self.primary, self.rate_limit, self.geo_redirect, self.challenge))

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        if self.primary is not None:
            d["primary"] = self.primary.to_dict()
        if self.rate_limit is not None:
            d["rateLimit"] = self.rate_limit.to_dict()
        if self.geo_redirect is not None:
            d["geoRedirect"] = self.geo_redirect.to_dict()
        if self.challenge is not None:
            d["challenge"] = self.challenge.to_dict()
        return d
