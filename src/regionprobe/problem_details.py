# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""RFC 9457 problem details for the probe's HTTP surface and CLI.

Only control-plane failures become problems: a bad check request, a
rejected bearer token, a check that could not finish, or a crash.  A
target that is down is a normal ``CheckResult`` and never a problem.

Probe error text routinely embeds target URLs, request headers and
environment-derived values, so every caller-visible ``detail`` passes
through ``sanitize_detail`` first.

Type URIs live under ``https://www.retio.ai/regionprobe/errors/{slug}``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, NamedTuple

from starlette.responses import JSONResponse

from .errors import AuthError, CheckTimeoutError, MalformedInputError

_ERROR_BASE = "https://www.retio.ai/regionprobe/errors"

MAX_DETAIL_LENGTH = 200

_INTERNAL_DETAIL = "An internal error occurred."


# ── Taxonomy ─────────────────────────────────────────────────────────


class ProblemType(StrEnum):
    AUTH_REQUIRED = "auth-required"
    AUTH_INVALID = "auth-invalid"
    VALIDATION_ERROR = "validation-error"
    CHECK_TIMEOUT = "check-timeout"
    INTERNAL_ERROR = "internal-error"

    @property
    def uri(self) -> str:
        return f"{_ERROR_BASE}/{self.value}"


class _TypeMeta(NamedTuple):
    status: int
    title: str
    hint: str


_TYPE_METADATA: dict[ProblemType, _TypeMeta] = {
    ProblemType.AUTH_REQUIRED: _TypeMeta(401, "Authentication Required", "Send Authorization: Bearer <PROBE_SECRET>."),
    ProblemType.AUTH_INVALID: _TypeMeta(403, "Authentication Failed", "Check the shared secret."),
    ProblemType.VALIDATION_ERROR: _TypeMeta(400, "Invalid Check Request", "Check the URL, monitor type and port."),
    ProblemType.CHECK_TIMEOUT: _TypeMeta(504, "Check Timed Out", "Raise --check-timeout or the request timeout."),
    ProblemType.INTERNAL_ERROR: _TypeMeta(500, "Internal Error", ""),
}

_TYPE_BY_URI: dict[str, ProblemType] = {ptype.uri: ptype for ptype in ProblemType}


# ── Redaction ────────────────────────────────────────────────────────

# Applied in order; later patterns see earlier replacements.
_REDACTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    # Authorization header values echoed from a check request
    (re.compile(r"\b(Bearer|Basic|Token)\s+[^\s,;\"']+", re.IGNORECASE), r"\1 <redacted>"),
    # PROBE_SECRET=..., api_key: ..., password=...
    (
        re.compile(
            r"\b[\w-]*(?:secret|token|password|passwd|api[_-]?key|credential)s?\b\s*[=:]\s*[^\s&,;]+",
            re.IGNORECASE,
        ),
        "<redacted>",
    ),
    # userinfo in target URLs
    (re.compile(r"://[^@\s/]+@"), "://<redacted>@"),
    # bare JWTs
    (re.compile(r"\beyJ[\w-]{10,}\.[\w-]{10,}\.[\w-]{10,}"), "<redacted>"),
    # host filesystem paths; the lookbehind keeps URL paths intact
    (
        re.compile(
            r"(?<![\w.:/-])(?:/(?:home|root|srv|opt|var|tmp|etc|usr|app|Users|private|mnt|nix)/[\w./-]+"
            r"|[A-Z]:\\[\w.\\-]+)"
        ),
        "<path>",
    ),
)


def sanitize_detail(text: str) -> str:
    """Redact credentials and host paths from *text*, then cap its length."""
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    if len(text) <= MAX_DETAIL_LENGTH:
        return text
    return f"{text[:MAX_DETAIL_LENGTH]}..."


# ── ProblemDetail ────────────────────────────────────────────────────

_RESPONSE_HEADERS = {"Cache-Control": "no-store", "Content-Language": "en"}


@dataclass(frozen=True, slots=True)
class ProblemDetail:
    """One RFC 9457 problem.

    ``extensions`` are merged into the top level of the JSON body but can
    never override ``type``, ``title``, ``status``, ``detail`` or ``instance``.
    """

    type: str = "about:blank"
    title: str = ""
    status: int = 500
    detail: str = ""
    instance: str = ""
    extensions: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = dict(self.extensions)
        optional = {"title": self.title, "detail": self.detail, "instance": self.instance}
        for key in ("type", "status", *optional):
            body.pop(key, None)
        body.update({"type": self.type, "status": self.status})
        body.update({key: value for key, value in optional.items() if value})
        return body

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            self.to_dict(),
            status_code=self.status,
            media_type="application/problem+json",
            headers=_RESPONSE_HEADERS,
        )

    def to_cli_text(self) -> str:
        """``Error: <detail>`` plus a ``Hint:`` line when the type has one."""
        text = f"Error: {self.detail or self.title}"
        ptype = _TYPE_BY_URI.get(self.type)
        hint = _TYPE_METADATA[ptype].hint if ptype is not None else ""
        return f"{text}\nHint: {hint}" if hint else text


def _problem(ptype: ProblemType, detail: str, instance: str = "", **extensions: Any) -> ProblemDetail:
    meta = _TYPE_METADATA[ptype]
    return ProblemDetail(
        type=ptype.uri,
        title=meta.title,
        status=meta.status,
        detail=detail,
        instance=instance,
        extensions={key: value for key, value in extensions.items() if value},
    )


# ── Factories ────────────────────────────────────────────────────────


def from_exception(exc: Exception, *, instance: str = "") -> ProblemDetail:
    """Map an exception to a problem.

    Request, auth and timeout errors keep their (sanitized) message.
    Everything else, other ``ProbeError`` subclasses included, is reported
    as an opaque 500.
    """
    if isinstance(exc, MalformedInputError):
        return from_validation(str(exc), field_name=exc.field_name, instance=instance)
    if isinstance(exc, AuthError):
        if exc.reason == "missing":
            return from_auth_missing(instance=instance)
        return from_auth_invalid(reason=exc.reason, instance=instance)
    if isinstance(exc, CheckTimeoutError):
        return _problem(ProblemType.CHECK_TIMEOUT, sanitize_detail(str(exc)), instance, stage=exc.stage)
    return _problem(ProblemType.INTERNAL_ERROR, _INTERNAL_DETAIL, instance)


def from_auth_missing(*, instance: str = "") -> ProblemDetail:
    return _problem(ProblemType.AUTH_REQUIRED, "Bearer token required.", instance)


def from_auth_invalid(*, reason: str = "invalid", instance: str = "") -> ProblemDetail:
    return _problem(ProblemType.AUTH_INVALID, f"Bearer token {reason}.", instance, reason=reason)


def from_validation(detail: str, *, field_name: str = "", instance: str = "") -> ProblemDetail:
    """400 for a check request that failed validation; ``field`` names the camelCase input."""
    return _problem(ProblemType.VALIDATION_ERROR, sanitize_detail(detail), instance, field=field_name)
