# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import regionprobe  # noqa: F401
except ImportError:
    raise ImportError("regionprobe is not installed. Run: pip install -e '.[dev]'") from None

import pytest

from regionprobe.config import ProbeSettings
from regionprobe.dns_resolver import DnsCache, DnsResolver
from tests._probe_helpers import PUBLIC_IP, FakeLookup


@pytest.fixture
def settings() -> ProbeSettings:
    return ProbeSettings(region="test-region", dns_timeout_ms=1000, default_timeout=5.0, check_timeout=10.0)


@pytest.fixture
def fake_lookup() -> FakeLookup:
    return FakeLookup(
        {
            "example.com": [PUBLIC_IP],
            "www.example.com": [PUBLIC_IP],
            "example.de": [PUBLIC_IP],
        }
    )


@pytest.fixture
def resolver(fake_lookup: FakeLookup) -> DnsResolver:
    return DnsResolver(DnsCache(), lookup=fake_lookup)
