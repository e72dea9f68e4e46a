# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Pydantic models for the inbound check request.

Wire format is camelCase (``monitorId``, ``timeoutSeconds``); Python code
uses the snake_case attribute names.  Models are frozen: a request is
immutable once dispatched.
"""

from __future__ import annotations

from typing import Any, Literal
from urllib.parse import urlsplit

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from .errors import MalformedInputError

MonitorType = Literal["http", "http_head", "tcp_ping"]
ValidationType = Literal["keyword", "regex", "hash", "json", "size"]
HashAlgorithm = Literal["sha256", "md5", "sha1"]

_BODYLESS_TYPES = frozenset({"tcp_ping", "http_head"})


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class ContentValidationConfig(_CamelModel):
    """One content check per monitor: keyword, regex, hash, json or size."""

    enabled: bool = Field(True, description="Disabled configs always pass")
    type: ValidationType = Field(..., description="Validation mode")

    # keyword
    must_contain: list[str] = Field(default_factory=list, description="Keywords that must be present")
    must_not_contain: list[str] = Field(default_factory=list, description="Keywords that must be absent")
    case_sensitive: bool = Field(False, description="Keyword matching is case-insensitive by default")

    # regex
    pattern: str | None = Field(None, description="Regular expression searched in the body")
    should_match: bool = Field(True, description="False inverts the regex check")

    # hash
    expected_hash: str | None = Field(None, description="Hex digest of the expected body")
    algorithm: HashAlgorithm = Field("sha256", description="Digest algorithm")
    detect_changes: bool = Field(False, description="Hash mismatch warns instead of failing")

    # json
    json_schema: dict[str, Any] | None = Field(None, description="Shallow type map, nested dicts recurse")
    required_fields: list[str] = Field(default_factory=list, description="Dotted paths that must exist")

    # size
    min_bytes: int | None = Field(None, ge=0, description="Minimum UTF-8 body size")
    max_bytes: int | None = Field(None, ge=0, description="Maximum UTF-8 body size")


class CheckRequest(_CamelModel):
    """A single reachability check dispatched by the orchestrating server."""

    monitor_id: str = Field("", description="Opaque monitor identity, echoed in the result")
    monitor_type: MonitorType = Field("http", description="http, http_head or tcp_ping")
    url: str | None = Field(None, description="Target URL for HTTP checks")
    host: str | None = Field(None, description="Target host for TCP checks (falls back to the URL host)")
    port: int | None = Field(
        None,
        ge=1,
        le=65535,
        validation_alias=AliasChoices("port", "pingPort", "ping_port"),
        description="Target port for TCP checks",
    )
    method: str = Field("GET", description="HTTP method")
    expected_status: int = Field(200, ge=100, le=599, description="Expected final HTTP status")
    timeout_seconds: float | None = Field(None, gt=0, le=300, description="Per-request timeout")
    headers: dict[str, str] = Field(default_factory=dict, description="Custom request headers")
    ignore_ssl_errors: bool = Field(False, description="Skip TLS certificate verification")
    degraded_threshold_ms: float | None = Field(None, gt=0, description="Latency above which an up check degrades")
    treat_redirects_as_up: bool = Field(False, description="A final 3xx counts as up")
    enable_cookies: bool = Field(False, description="Persist cookies per monitor between checks")
    cookie_ttl_seconds: float = Field(3600.0, gt=0, description="Idle lifetime of the monitor's cookie jar")
    content_validation: ContentValidationConfig | None = Field(None, description="Optional body validation")
    check_interval_seconds: float | None = Field(None, gt=0, description="Current schedule, for backoff advice")
    consecutive_rate_limits: int = Field(0, ge=0, description="Rate-limited checks in a row, for backoff advice")

    @model_validator(mode="after")
    def _check_target(self) -> CheckRequest:
        if self.monitor_type == "tcp_ping":
            if not self.host and not self.url:
                raise ValueError("tcp_ping requires host or url")
            if self.url and not self.host and not urlsplit(self.url).hostname:
                raise ValueError(f"cannot derive host from url {self.url!r}")
            return self
        if not self.url:
            raise ValueError(f"{self.monitor_type} requires url")
        parts = urlsplit(self.url)
        if parts.scheme not in ("http", "https"):
            raise ValueError(f"url must use http or https, got {parts.scheme or 'no scheme'!r}")
        if not parts.hostname:
            raise ValueError(f"url has no host: {self.url!r}")
        return self

    @property
    def http_method(self) -> str:
        if self.monitor_type == "http_head":
            return "HEAD"
        return self.method.upper()

    @property
    def is_bodyless(self) -> bool:
        return self.monitor_type in _BODYLESS_TYPES or self.http_method == "HEAD"

    def tcp_target(self) -> tuple[str, int]:
        """Resolve (host, port) for a TCP check. Port defaults to 80.

        ``host`` may be given as a bare name, ``name:port`` or a full URL.
        """
        host = self.host
        port = self.port
        if host and ("://" in host or host.count(":") == 1):
            parts = urlsplit(host if "://" in host else f"//{host}")
            host = parts.hostname
            if port is None:
                port = parts.port
        if not host and self.url:
            parts = urlsplit(self.url)
            host = parts.hostname
            if port is None:
                port = parts.port
        return host or "", port or 80


def parse_check_request(payload: Any) -> CheckRequest:
    """Validate an inbound payload. Raises ``MalformedInputError`` with the first problem."""
    if not isinstance(payload, dict):
        raise MalformedInputError("Request body must be a JSON object")
    try:
        return CheckRequest.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(part) for part in first.get("loc", ()))
        msg = first.get("msg", "invalid value")
        raise MalformedInputError(f"{loc}: {msg}" if loc else msg, field_name=loc) from e
