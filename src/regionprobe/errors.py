# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Probe exception hierarchy.

All probe-specific errors inherit from ProbeError, allowing callers
to catch the base class for any probe failure or specific subclasses
for targeted handling.  The check pipeline itself converts failures into
result records; these exceptions cross module seams, not the wire.
"""

from __future__ import annotations

from typing import Any


class ProbeError(Exception):
    """Base exception for all probe errors."""


class MalformedInputError(ProbeError):
    """Check request rejected before any network work."""

    def __init__(self, message: str, *, field_name: str = "") -> None:
        super().__init__(message)
        self.field_name = field_name


class DnsResolutionError(ProbeError):
    """Hostname could not be resolved, or resolved to an untrusted address."""

    def __init__(self, message: str, *, hostname: str = "", hijacked: bool = False, result: Any = None) -> None:
        super().__init__(message)
        self.hostname = hostname
        self.hijacked = hijacked
        self.result = result  # DnsResult, when the resolver produced one


class CheckTimeoutError(ProbeError):
    """Overall check deadline expired."""

    def __init__(self, message: str, *, stage: str = "", elapsed_ms: float = 0.0) -> None:
        super().__init__(message)
        self.stage = stage
        self.elapsed_ms = elapsed_ms


class AuthError(ProbeError):
    """Shared-secret authentication failure."""

    def __init__(self, message: str, *, reason: str = "invalid") -> None:
        super().__init__(message)
        self.reason = reason
