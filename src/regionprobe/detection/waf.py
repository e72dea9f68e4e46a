# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""WAF vendor classifier.

Evaluated only for blocking status codes.  The signature table is scanned
in declaration order over the body and every header value; the first vendor
with a matching signature wins.  A few vendors are also recognised by a
characteristic response header name.
"""

from __future__ import annotations

from .verdicts import ResponseFacts, WafVerdict

BLOCKING_STATUS_CODES: frozenset[int] = frozenset({403, 451, 406, 402, 410, 418, 429, 503})

# vendor -> lowercase substrings; order is priority
WAF_SIGNATURES: dict[str, tuple[str, ...]] = {
    "cloudflare": ("cloudflare", "cf-ray"),
    "imperva": ("imperva", "incapsula", "_incap_"),
    "akamai": ("akamai", "reference #"),
    "aws_waf": ("aws waf", "awswaf"),
    # bare "f5" collides with hex ids (ray ids, etags)
    "f5": ("bigip", "big-ip", "f5 networks", "the requested url was rejected"),
    "barracuda": ("barracuda",),
    "sucuri": ("sucuri", "access denied - sucuri"),
    "wordfence": ("wordfence", "access from your location has been blocked"),
}

WAF_HEADER_NAMES: dict[str, tuple[str, ...]] = {
    "imperva": ("x-iinfo",),
    "sucuri": ("x-sucuri-id", "x-sucuri-cache"),
    "aws_waf": ("x-amzn-waf-action",),
}


def detect_waf(facts: ResponseFacts) -> WafVerdict | None:
    if facts.status_code not in BLOCKING_STATUS_CODES:
        return None

    header_values = tuple(facts.headers.values())
    for vendor, signatures in WAF_SIGNATURES.items():
        for signature in signatures:
            if signature in facts.body or any(signature in value for value in header_values):
                return WafVerdict(
                    reason=f"WAF block detected ({vendor})",
                    vendor=vendor,
                    signature=signature,
                    status_code=facts.status_code,
                )
        for name in WAF_HEADER_NAMES.get(vendor, ()):
            if name in facts.headers:
                return WafVerdict(
                    reason=f"WAF block detected ({vendor})",
                    vendor=vendor,
                    signature=name,
                    status_code=facts.status_code,
                )
    return None
