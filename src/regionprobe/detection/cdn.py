# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""CDN challenge / firewall classifier (Cloudflare).

Only fires when the CDN is demonstrably in front of the origin: a vendor
response header (``cf-ray``, ``server: cloudflare``) or a challenge-platform
token in the body.  A CDN 403 with no challenge markers is a firewall-rule
block, never claimed as geo-blocking.
"""

from __future__ import annotations

from .verdicts import CdnVerdict, ChallengeKind, ResponseFacts

# Body tokens only a Cloudflare challenge page carries
CLOUDFLARE_BODY_TOKENS: tuple[str, ...] = (
    "cf_chl_opt",
    "__cf_chl",
    "/cdn-cgi/challenge-platform",
    "cf-browser-verification",
)

_CAPTCHA_MARKERS: tuple[str, ...] = ("cf-captcha", "cf-turnstile", "turnstile", "captcha")
_JS_MARKERS: tuple[str, ...] = (
    "cf-challenge",
    "checking your browser",
    "cf-browser-verification",
    "cf_chl_opt",
    "__cf_chl",
)
_MANAGED_MARKERS: tuple[str, ...] = ("just a moment", "please wait", "attention required")

CHALLENGE_MARKERS: tuple[str, ...] = (
    *_CAPTCHA_MARKERS,
    *_JS_MARKERS,
    "challenge-platform",
    *_MANAGED_MARKERS,
)

_KIND_LABELS: dict[ChallengeKind, str] = {
    ChallengeKind.CAPTCHA: "CAPTCHA",
    ChallengeKind.JS_CHALLENGE: "JavaScript Challenge",
    ChallengeKind.MANAGED_CHALLENGE: "Managed Challenge",
    ChallengeKind.UNKNOWN_CHALLENGE: "challenge",
}


def is_cloudflare(facts: ResponseFacts) -> bool:
    if "cf-ray" in facts.headers or "cloudflare" in facts.headers.get("server", ""):
        return True
    return any(token in facts.body for token in CLOUDFLARE_BODY_TOKENS)


def challenge_kind(body: str) -> ChallengeKind | None:
    """Sub-classify a challenge page by body substring; None when no marker is present."""
    if not any(marker in body for marker in CHALLENGE_MARKERS):
        return None
    if any(marker in body for marker in _CAPTCHA_MARKERS):
        return ChallengeKind.CAPTCHA
    if any(marker in body for marker in _JS_MARKERS):
        return ChallengeKind.JS_CHALLENGE
    if any(marker in body for marker in _MANAGED_MARKERS):
        return ChallengeKind.MANAGED_CHALLENGE
    return ChallengeKind.UNKNOWN_CHALLENGE


def detect_cdn(facts: ResponseFacts) -> CdnVerdict | None:
    if not is_cloudflare(facts):
        return None

    ray_id = facts.headers.get("cf-ray")
    kind = challenge_kind(facts.body)
    if kind is not None:
        return CdnVerdict(
            reason=f"Cloudflare {_KIND_LABELS[kind]} detected",
            kind=kind,
            status_code=facts.status_code,
            ray_id=ray_id,
        )

    if facts.status_code == 403:
        return CdnVerdict(
            reason="Cloudflare firewall block (possible geo-restriction)",
            kind=ChallengeKind.FIREWALL_BLOCK,
            status_code=facts.status_code,
            ray_id=ray_id,
        )
    return None
