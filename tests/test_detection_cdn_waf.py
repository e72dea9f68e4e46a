# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for regionprobe.detection.cdn and .waf — vendor challenge and block pages."""

from __future__ import annotations

import pytest

from regionprobe.detection import ChallengeKind, ResponseFacts, challenge_kind, detect_cdn, detect_waf, is_cloudflare


def _facts(status, headers=None, body="", elapsed_ms=50.0):
    return ResponseFacts.from_raw(status, headers, body, elapsed_ms=elapsed_ms)


# ── CDN ─────────────────────────────────────────────


class TestIsCloudflare:
    def test_ray_header(self):
        assert is_cloudflare(_facts(200, {"CF-Ray": "8a1b2c3d4e5f-FRA"}))

    def test_server_header(self):
        assert is_cloudflare(_facts(200, {"Server": "cloudflare"}))

    def test_body_token(self):
        assert is_cloudflare(_facts(403, body="<script>window._cf_chl_opt={}</script>"))

    def test_plain_origin(self):
        assert not is_cloudflare(_facts(403, {"Server": "nginx"}, "Forbidden"))


class TestChallengeKind:
    @pytest.mark.parametrize(
        ("body", "kind"),
        [
            ('<div class="cf-turnstile"></div>', ChallengeKind.CAPTCHA),
            ("checking your browser before accessing", ChallengeKind.JS_CHALLENGE),
            ("<title>just a moment...</title>", ChallengeKind.MANAGED_CHALLENGE),
            ("/cdn-cgi/challenge-platform/h/b", ChallengeKind.UNKNOWN_CHALLENGE),
        ],
    )
    def test_classification(self, body, kind):
        assert challenge_kind(body) is kind

    def test_no_marker(self):
        assert challenge_kind("<html>welcome</html>") is None


class TestDetectCdn:
    def test_managed_challenge_with_ray_id(self):
        verdict = detect_cdn(_facts(403, {"cf-ray": "8a1b2c3d4e5f-fra"}, "<title>Just a moment...</title>"))
        assert verdict.kind is ChallengeKind.MANAGED_CHALLENGE
        assert verdict.reason == "Cloudflare Managed Challenge detected"
        assert verdict.ray_id == "8a1b2c3d4e5f-fra"
        assert verdict.status_code == 403

    def test_firewall_block(self):
        verdict = detect_cdn(_facts(403, {"server": "cloudflare"}, "Sorry, you have been blocked"))
        assert verdict.kind is ChallengeKind.FIREWALL_BLOCK
        assert verdict.reason == "Cloudflare firewall block (possible geo-restriction)"

    def test_healthy_cloudflare_site(self):
        assert detect_cdn(_facts(200, {"cf-ray": "abc"}, "<html>shop</html>")) is None

    def test_challenge_text_without_cloudflare(self):
        assert detect_cdn(_facts(403, {"server": "nginx"}, "please solve the captcha")) is None

    def test_to_dict_shape(self):
        d = detect_cdn(_facts(403, {"cf-ray": "abc"}, "turnstile")).to_dict()
        assert d["detected"] is True
        assert d["type"] == "cloudflare"
        assert d["metadata"] == {
            "statusCode": 403,
            "wafProvider": "Cloudflare",
            "challengeType": "captcha",
            "cfRay": "abc",
        }


# ── WAF ─────────────────────────────────────────────


class TestDetectWaf:
    def test_non_blocking_status_ignored(self):
        assert detect_waf(_facts(200, {"server": "cloudflare"}, "sucuri")) is None

    def test_sucuri_block(self):
        verdict = detect_waf(
            _facts(403, {"Server": "Sucuri/Cloudproxy"}, "<h1>Access Denied - Sucuri Website Firewall</h1>")
        )
        assert verdict.vendor == "sucuri"
        assert verdict.signature == "sucuri"
        assert verdict.reason == "WAF block detected (sucuri)"

    def test_imperva_by_header_name(self):
        verdict = detect_waf(_facts(403, {"X-Iinfo": "10-12345-0"}, ""))
        assert verdict.vendor == "imperva"
        assert verdict.signature == "x-iinfo"

    def test_akamai_reference(self):
        verdict = detect_waf(_facts(403, {}, "Access Denied. Reference #18.2f3c1602.1700000000.5a1b"))
        assert verdict.vendor == "akamai"

    def test_first_vendor_in_table_wins(self):
        verdict = detect_waf(_facts(403, {"server": "cloudflare"}, "incapsula incident id"))
        assert verdict.vendor == "cloudflare"

    def test_hex_ids_do_not_look_like_f5(self):
        assert detect_waf(_facts(403, {"ETag": '"f5a3c0de"'}, "Forbidden")) is None

    def test_f5_rejection_page(self):
        verdict = detect_waf(_facts(403, {}, "The requested URL was rejected. Please consult with your administrator."))
        assert verdict.vendor == "f5"
