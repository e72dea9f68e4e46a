# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Generic geo-blocking classifier.

Evaluated only for blocking status codes and only on explicit evidence:
geo/region/country/legal phrasing in the body, or a custom geo-block
response header.  Latency is carried in the verdict for context but never
used as evidence: a fast 403 alone is indistinguishable from bot
detection, auth failures and generic WAF rejections.
"""

from __future__ import annotations

from .verdicts import GeoBlockVerdict, ResponseFacts
from .waf import BLOCKING_STATUS_CODES

GEO_BLOCKING_KEYWORDS: tuple[str, ...] = (
    # explicit geo phrasing
    "geo-block",
    "geoblocked",
    "geo block",
    "geo-restricted",
    "not available in your country",
    "not available in your region",
    "not available in your location",
    "content is not available in your",
    "access restricted",
    "region restricted",
    "country restricted",
    "location restricted",
    "territory restricted",
    "geographical restriction",
    "geographic restriction",
    "banned the country or region",
    # legal / compliance
    "legal reasons",
    "regulatory reasons",
    "compliance reasons",
    "gdpr",
)

GEO_BLOCKING_HEADERS: tuple[str, ...] = ("x-geo-block", "x-country-block")


def match_geo_keywords(text: str) -> list[str]:
    """Every geo keyword found in *text* (case-insensitive), in table order."""
    lowered = text.lower()
    return [kw for kw in GEO_BLOCKING_KEYWORDS if kw in lowered]


def detect_geo_blocking(facts: ResponseFacts) -> GeoBlockVerdict | None:
    if facts.status_code not in BLOCKING_STATUS_CODES:
        return None

    for keyword in GEO_BLOCKING_KEYWORDS:
        if keyword in facts.body:
            return GeoBlockVerdict(
                reason=f'Geo-blocking detected: "{keyword}" found in response',
                status_code=facts.status_code,
                keyword=keyword,
                response_time_ms=facts.elapsed_ms,
            )

    for header in GEO_BLOCKING_HEADERS:
        if facts.headers.get(header):
            return GeoBlockVerdict(
                reason="Geo-blocking header detected",
                status_code=facts.status_code,
                header=header,
                response_time_ms=facts.elapsed_ms,
            )
    return None
