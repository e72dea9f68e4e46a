# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Process-wide probe settings: CLI flags with ``PROBE_*`` environment overrides.

Read once at startup and frozen for the lifetime of the process.
"""

from __future__ import annotations

import argparse
import os
from contextlib import suppress
from dataclasses import dataclass

DEFAULT_PORT = 3002
DEFAULT_REGION = "unknown"
DEFAULT_DNS_TIMEOUT_MS = 5000
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_CHECK_TIMEOUT = 120.0
DEFAULT_MAX_REDIRECTS = 10
DEFAULT_MAX_BODY_BYTES = 100 * 1024
DEFAULT_COOKIE_REAPER_INTERVAL = 300.0

UA_STRATEGIES = ("rotate", "random", "fixed")

_TRUTHY = ("1", "true", "yes")


@dataclass(frozen=True, slots=True)
class ProbeSettings:
    """Immutable probe configuration."""

    region: str = DEFAULT_REGION
    secret: str = ""
    host: str = "0.0.0.0"  # nosec B104
    port: int = DEFAULT_PORT
    dns_timeout_ms: int = DEFAULT_DNS_TIMEOUT_MS
    default_timeout: float = DEFAULT_REQUEST_TIMEOUT  # per-request seconds when the check omits one
    check_timeout: float = DEFAULT_CHECK_TIMEOUT  # hard ceiling for a whole check
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    ua_strategy: str = "rotate"
    cookie_reaper_interval: float = DEFAULT_COOKIE_REAPER_INTERVAL
    log_json: bool = False
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be in 1..65535, got {self.port}")
        if self.dns_timeout_ms <= 0:
            raise ValueError(f"dns_timeout_ms must be > 0, got {self.dns_timeout_ms}")
        if self.default_timeout <= 0:
            raise ValueError(f"default_timeout must be > 0, got {self.default_timeout}")
        if self.check_timeout <= 0:
            raise ValueError(f"check_timeout must be > 0, got {self.check_timeout}")
        if self.max_redirects <= 0:
            raise ValueError(f"max_redirects must be > 0, got {self.max_redirects}")
        if self.max_body_bytes <= 0:
            raise ValueError(f"max_body_bytes must be > 0, got {self.max_body_bytes}")
        if self.ua_strategy not in UA_STRATEGIES:
            raise ValueError(f"ua_strategy must be one of {UA_STRATEGIES}, got {self.ua_strategy!r}")
        if self.cookie_reaper_interval <= 0:
            raise ValueError(f"cookie_reaper_interval must be > 0, got {self.cookie_reaper_interval}")

    @property
    def auth_enabled(self) -> bool:
        return bool(self.secret)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Region probe server")
    parser.add_argument("--region", default=DEFAULT_REGION, help="Region tag reported with every result")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")  # nosec B104
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Bind port (default: {DEFAULT_PORT})")
    parser.add_argument(
        "--dns-timeout-ms",
        type=int,
        default=DEFAULT_DNS_TIMEOUT_MS,
        help=f"DNS resolution timeout in ms (default: {DEFAULT_DNS_TIMEOUT_MS})",
    )
    parser.add_argument(
        "--default-timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT,
        help="Per-request timeout seconds when a check omits one (default: 30)",
    )
    parser.add_argument(
        "--check-timeout",
        type=float,
        default=DEFAULT_CHECK_TIMEOUT,
        help="Hard ceiling for a whole check in seconds (default: 120)",
    )
    parser.add_argument(
        "--max-redirects",
        type=int,
        default=DEFAULT_MAX_REDIRECTS,
        help=f"Maximum redirect hops (default: {DEFAULT_MAX_REDIRECTS})",
    )
    parser.add_argument(
        "--max-body-bytes",
        type=int,
        default=DEFAULT_MAX_BODY_BYTES,
        help="Bytes of the final response body kept for classification (default: 102400)",
    )
    parser.add_argument(
        "--ua-strategy",
        choices=UA_STRATEGIES,
        default="rotate",
        help="User-Agent selection strategy (default: rotate)",
    )
    parser.add_argument("--log-json", action="store_true", default=False, help="Emit JSON log lines")
    parser.add_argument("--log-level", default="INFO", help="Root log level (default: INFO)")
    return parser


def parse_settings(argv: list[str] | None = None, environ: dict[str, str] | None = None) -> ProbeSettings:
    """Parse CLI args and env vars into ProbeSettings.

    Environment variables override flags. ``PROBE_SECRET`` is env-only.
    """
    env = os.environ if environ is None else environ
    args, _ = _build_parser().parse_known_args(argv)

    env_region = env.get("PROBE_REGION", "").strip()
    if env_region:
        args.region = env_region

    env_host = env.get("PROBE_HOST", "").strip()
    if env_host:
        args.host = env_host

    env_port = env.get("PROBE_PORT", "").strip()
    if env_port:
        with suppress(ValueError):
            args.port = int(env_port)

    env_dns = env.get("PROBE_DNS_TIMEOUT_MS", "").strip()
    if env_dns:
        with suppress(ValueError):
            args.dns_timeout_ms = int(env_dns)

    env_default_timeout = env.get("PROBE_DEFAULT_TIMEOUT", "").strip()
    if env_default_timeout:
        with suppress(ValueError):
            args.default_timeout = float(env_default_timeout)

    env_check_timeout = env.get("PROBE_CHECK_TIMEOUT", "").strip()
    if env_check_timeout:
        with suppress(ValueError):
            args.check_timeout = float(env_check_timeout)

    env_redirects = env.get("PROBE_MAX_REDIRECTS", "").strip()
    if env_redirects:
        with suppress(ValueError):
            args.max_redirects = int(env_redirects)

    env_body = env.get("PROBE_MAX_BODY_BYTES", "").strip()
    if env_body:
        with suppress(ValueError):
            args.max_body_bytes = int(env_body)

    env_ua = env.get("PROBE_UA_STRATEGY", "").strip().lower()
    if env_ua in UA_STRATEGIES:
        args.ua_strategy = env_ua

    env_json = env.get("PROBE_LOG_JSON", "").strip().lower()
    args.log_json = args.log_json or env_json in _TRUTHY

    env_level = env.get("PROBE_LOG_LEVEL", "").strip()
    if env_level:
        args.log_level = env_level

    return ProbeSettings(
        region=args.region,
        secret=env.get("PROBE_SECRET", ""),
        host=args.host,
        port=args.port,
        dns_timeout_ms=args.dns_timeout_ms,
        default_timeout=args.default_timeout,
        check_timeout=args.check_timeout,
        max_redirects=args.max_redirects,
        max_body_bytes=args.max_body_bytes,
        ua_strategy=args.ua_strategy,
        log_json=args.log_json,
        log_level=args.log_level.upper(),
    )
