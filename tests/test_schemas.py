# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for regionprobe.schemas — inbound check request validation."""

from __future__ import annotations

import pytest

from regionprobe.errors import MalformedInputError
from regionprobe.schemas import CheckRequest, ContentValidationConfig, parse_check_request


class TestCheckRequestDefaults:
    def test_minimal_http(self):
        request = parse_check_request({"url": "https://example.com/"})
        assert request.monitor_type == "http"
        assert request.http_method == "GET"
        assert request.expected_status == 200
        assert request.timeout_seconds is None
        assert request.enable_cookies is False
        assert request.content_validation is None
        assert request.is_bodyless is False

    def test_camel_case_wire_names(self):
        request = parse_check_request(
            {
                "monitorId": "mon-9",
                "url": "https://example.com/",
                "expectedStatus": 204,
                "timeoutSeconds": 5,
                "ignoreSslErrors": True,
                "degradedThresholdMs": 1500,
                "treatRedirectsAsUp": True,
            }
        )
        assert request.monitor_id == "mon-9"
        assert request.expected_status == 204
        assert request.timeout_seconds == 5.0
        assert request.ignore_ssl_errors is True
        assert request.degraded_threshold_ms == 1500.0
        assert request.treat_redirects_as_up is True

    def test_snake_case_accepted(self):
        assert CheckRequest(url="https://example.com/", monitor_id="m").monitor_id == "m"

    def test_unknown_fields_ignored(self):
        assert parse_check_request({"url": "https://example.com/", "somethingElse": 1}).url == "https://example.com/"

    def test_frozen(self):
        request = parse_check_request({"url": "https://example.com/"})
        with pytest.raises(ValueError):
            request.url = "https://other.example/"  # type: ignore[misc]


class TestMethods:
    def test_method_uppercased(self):
        assert parse_check_request({"url": "https://example.com/", "method": "post"}).http_method == "POST"

    def test_head_monitor_forces_head(self):
        request = parse_check_request({"url": "https://example.com/", "monitorType": "http_head", "method": "GET"})
        assert request.http_method == "HEAD"
        assert request.is_bodyless

    def test_explicit_head_is_bodyless(self):
        assert parse_check_request({"url": "https://example.com/", "method": "HEAD"}).is_bodyless


class TestTcpTarget:
    def test_host_and_port(self):
        request = parse_check_request({"monitorType": "tcp_ping", "host": "db.example", "port": 5432})
        assert request.tcp_target() == ("db.example", 5432)

    def test_ping_port_alias(self):
        request = parse_check_request({"monitorType": "tcp_ping", "host": "db.example", "pingPort": 6379})
        assert request.tcp_target() == ("db.example", 6379)

    def test_host_with_port(self):
        request = parse_check_request({"monitorType": "tcp_ping", "host": "db.example:5432"})
        assert request.tcp_target() == ("db.example", 5432)

    def test_host_as_url(self):
        request = parse_check_request({"monitorType": "tcp_ping", "host": "https://db.example:8443/path"})
        assert request.tcp_target() == ("db.example", 8443)

    def test_url_fallback_and_default_port(self):
        request = parse_check_request({"monitorType": "tcp_ping", "url": "http://db.example/"})
        assert request.tcp_target() == ("db.example", 80)

    def test_explicit_port_wins(self):
        request = parse_check_request({"monitorType": "tcp_ping", "host": "db.example:5432", "port": 6432})
        assert request.tcp_target() == ("db.example", 6432)

    def test_ipv6_literal_host(self):
        request = parse_check_request({"monitorType": "tcp_ping", "host": "::1", "port": 22})
        assert request.tcp_target() == ("::1", 22)


class TestRejections:
    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"monitorType": "http"},
            {"url": "ftp://example.com/"},
            {"url": "https://"},
            {"monitorType": "tcp_ping"},
            {"url": "https://example.com/", "expectedStatus": 700},
            {"url": "https://example.com/", "timeoutSeconds": 0},
            {"monitorType": "tcp_ping", "host": "db.example", "port": 70000},
            {"url": "https://example.com/", "monitorType": "smtp"},
        ],
    )
    def test_invalid_payloads(self, payload):
        with pytest.raises(MalformedInputError):
            parse_check_request(payload)

    def test_non_object_body(self):
        with pytest.raises(MalformedInputError, match="JSON object"):
            parse_check_request(["https://example.com/"])

    def test_field_error_names_the_field(self):
        with pytest.raises(MalformedInputError) as exc_info:
            parse_check_request({"url": "https://example.com/", "expectedStatus": 700})
        assert exc_info.value.field_name == "expectedStatus"
        assert str(exc_info.value).startswith("expectedStatus: ")

    def test_model_level_error_has_message(self):
        with pytest.raises(MalformedInputError, match="requires url"):
            parse_check_request({"monitorType": "http"})


class TestContentValidationConfig:
    def test_defaults(self):
        config = ContentValidationConfig(type="regex", pattern="ok")
        assert config.enabled is True
        assert config.should_match is True
        assert config.case_sensitive is False
        assert config.algorithm == "sha256"

    def test_nested_in_request(self):
        request = parse_check_request(
            {
                "url": "https://example.com/",
                "contentValidation": {"type": "json", "requiredFields": ["data.id"], "jsonSchema": {"ok": "boolean"}},
            }
        )
        assert request.content_validation.required_fields == ["data.id"]
        assert request.content_validation.json_schema == {"ok": "boolean"}

    def test_unknown_type_rejected(self):
        with pytest.raises(MalformedInputError):
            parse_check_request({"url": "https://example.com/", "contentValidation": {"type": "xml"}})
