# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Classifier pipeline: merges individual verdicts into one ``DetectionMetadata``.

Primary slot (first detection wins)::

    cdn -> waf -> rate_limit -> geo_blocking

Rate-limit and geo-redirect are side verdicts, computed on every response
and never suppressed by an earlier primary match.  A redirect terminal
without ``Location`` may add a challenge side verdict.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from ..redirects import Hop
from .cdn import detect_cdn
from .geo_blocking import detect_geo_blocking, match_geo_keywords
from .geo_redirect import detect_geo_redirect
from .rate_limit import detect_rate_limit
from .verdicts import (
    GEO_RESTRICTIVE_TYPES,
    CdnVerdict,
    ChallengeKind,
    ChallengeVerdict,
    DetectionMetadata,
    GeoBlockVerdict,
    RateLimitVerdict,
    ResponseFacts,
    Verdict,
    VerdictType,
    WafVerdict,
)
from .waf import detect_waf

PrimaryClassifier = Callable[[ResponseFacts], CdnVerdict | WafVerdict | RateLimitVerdict | GeoBlockVerdict | None]

PRIMARY_CLASSIFIERS: tuple[PrimaryClassifier, ...] = (
    detect_cdn,
    detect_waf,
    detect_rate_limit,
    detect_geo_blocking,
)

# Interstitial markers seen on 3xx responses that carry no Location
REDIRECT_CHALLENGE_MARKERS: tuple[str, ...] = (
    "cf-browser-verification",
    "cf_chl_opt",
    "challenge-platform",
    "__cf_chl",
    "just a moment",
    "checking your browser",
    "cloudflare",
    "please wait",
    "ddos protection",
)

_CHALLENGE_STATUS_CODES = frozenset({302, 303})


def detect_redirect_challenge(facts: ResponseFacts) -> ChallengeVerdict | None:
    """Classify a redirect terminal that carried no ``Location`` header.

    The origin answered, so a challenge marker in the body (or a bare
    302/303, the usual JS-redirect shape) means reachable-but-gated.
    """
    status = facts.status_code
    if status is None or not 300 <= status < 400:
        return None

    marker = next((m for m in REDIRECT_CHALLENGE_MARKERS if m in facts.body), None)
    if marker is not None:
        kind = ChallengeKind.CLOUDFLARE_CHALLENGE
    elif status in _CHALLENGE_STATUS_CODES:
        kind = ChallengeKind.JS_REDIRECT
    else:
        return None
    return ChallengeVerdict(
        reason="Site reachable but showing challenge page",
        kind=kind,
        status_code=status,
        marker=marker,
    )


def primary_verdict(facts: ResponseFacts) -> Verdict | None:
    for classifier in PRIMARY_CLASSIFIERS:
        verdict = classifier(facts)
        if verdict is not None:
            return verdict
    return None


def classify(
    facts: ResponseFacts,
    hops: Sequence[Hop] = (),
    *,
    challenge: ChallengeVerdict | None = None,
) -> DetectionMetadata | None:
    """Run every classifier over the final response; None when nothing fired."""
    primary = primary_verdict(facts)
    rate_limit = primary if isinstance(primary, RateLimitVerdict) else detect_rate_limit(facts)
    metadata = DetectionMetadata(
        primary=primary,
        rate_limit=rate_limit,
        geo_redirect=detect_geo_redirect(hops),
        challenge=challenge,
    )
    return metadata if metadata.any_detected else None


def blocking_message(verdict: Verdict | None) -> str:
    """Human-readable one-liner for a verdict, prefixed by its kind."""
    if verdict is None:
        return ""
    match verdict.type:
        case VerdictType.CLOUDFLARE:
            ray = getattr(verdict, "ray_id", None)
            suffix = f" (Ray ID: {ray})" if ray else ""
            return f"Cloudflare Protection: {verdict.reason}{suffix}"
        case VerdictType.WAF:
            return f"WAF Block: {verdict.reason}"
        case VerdictType.RATE_LIMIT:
            return f"Rate Limited: {verdict.reason}"
        case VerdictType.GEO_BLOCKING:
            return f"Geo-Blocked: {verdict.reason}"
        case VerdictType.CHALLENGE:
            return f"Challenge Required: {verdict.reason}"
        case _:
            return verdict.reason


def geo_blocking_indicators(metadata: DetectionMetadata | None, error_message: str | None) -> list[str]:
    """Evidence that access is refused in this region.

    Only a geo-restrictive primary verdict or explicit geo phrasing in the
    error text counts; a status code alone never does.
    """
    indicators: list[str] = []
    if metadata is not None and metadata.primary is not None and metadata.primary.type in GEO_RESTRICTIVE_TYPES:
        indicators.append(blocking_message(metadata.primary))
    if error_message:
        indicators.extend(f'Error message contains "{kw}"' for kw in match_geo_keywords(error_message))
    return indicators
