# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Pattern classifiers: side-effect-free detectors over one HTTP response.

Usage:
    from regionprobe.detection import ResponseFacts, classify

    facts = ResponseFacts.from_raw(403, headers, body, elapsed_ms=84.0)
    metadata = classify(facts, hops)   # DetectionMetadata | None
"""

from __future__ import annotations

from .cdn import challenge_kind, detect_cdn, is_cloudflare
from .content import (
    ContentValidationResult,
    generate_content_hash,
    normalize_content,
    validate_content,
)
from .geo_blocking import detect_geo_blocking, match_geo_keywords
from .geo_redirect import detect_geo_redirect
from .pipeline import (
    PRIMARY_CLASSIFIERS,
    blocking_message,
    classify,
    detect_redirect_challenge,
    geo_blocking_indicators,
    primary_verdict,
)
from .rate_limit import (
    BackoffAdvice,
    RateLimitHeaders,
    calculate_backoff,
    detect_rate_limit,
    parse_rate_limit_headers,
    parse_retry_after,
)
from .verdicts import (
    CdnVerdict,
    ChallengeKind,
    ChallengeVerdict,
    DetectionMetadata,
    GeoBlockVerdict,
    GeoRedirectVerdict,
    RateLimitKind,
    RateLimitVerdict,
    ResponseFacts,
    Verdict,
    VerdictType,
    WafVerdict,
)
from .waf import detect_waf

__all__ = [
    "PRIMARY_CLASSIFIERS",
    "BackoffAdvice",
    "CdnVerdict",
    "ChallengeKind",
    "ChallengeVerdict",
    "ContentValidationResult",
    "DetectionMetadata",
    "GeoBlockVerdict",
    "GeoRedirectVerdict",
    "RateLimitHeaders",
    "RateLimitKind",
    "RateLimitVerdict",
    "ResponseFacts",
    "Verdict",
    "VerdictType",
    "WafVerdict",
    "blocking_message",
    "calculate_backoff",
    "challenge_kind",
    "classify",
    "detect_cdn",
    "detect_geo_blocking",
    "detect_geo_redirect",
    "detect_rate_limit",
    "detect_redirect_challenge",
    "detect_waf",
    "generate_content_hash",
    "geo_blocking_indicators",
    "is_cloudflare",
    "match_geo_keywords",
    "normalize_content",
    "parse_rate_limit_headers",
    "parse_retry_after",
    "primary_verdict",
    "validate_content",
]
