# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Geo-redirect classifier: locale or country hints in a redirect chain's ``Location`` values."""

from __future__ import annotations

import re
from collections.abc import Sequence

from ..redirects import Hop
from .verdicts import GeoRedirectVerdict

GEO_REDIRECT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"/[a-z]{2}(-[a-z]{2})?/", re.IGNORECASE),  # /en-us/, /uk/, /de/
    re.compile(r"/(en|de|fr|es|it|pt|ja|zh|ko|ru|ar)/", re.IGNORECASE),
    re.compile(r"country=", re.IGNORECASE),
    re.compile(r"region=", re.IGNORECASE),
    re.compile(r"locale=", re.IGNORECASE),
    re.compile(r"lang=", re.IGNORECASE),
)


def detect_geo_redirect(hops: Sequence[Hop]) -> GeoRedirectVerdict | None:
    """Report the first hop whose ``Location`` matches a locale pattern."""
    for index, hop in enumerate(hops):
        if not hop.location:
            continue
        for pattern in GEO_REDIRECT_PATTERNS:
            if pattern.search(hop.location):
                return GeoRedirectVerdict(
                    reason="Geo-based redirect detected",
                    pattern=pattern.pattern,
                    redirect_url=hop.location,
                    hop_index=index,
                )
    return None
