# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Region Probe: single-shot HTTP/TCP reachability checks from a regional vantage point.

One check resolves DNS, follows redirects by hand and classifies the final
response (CDN challenge, WAF, rate limit, geo-blocking, geo-redirect, content
drift) into a single flat result record.
"""

from __future__ import annotations

__version__ = "1.0.0"

PROBE_NAME = "regionprobe"
