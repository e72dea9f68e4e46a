# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""ASGI authentication middleware: shared-secret Bearer auth.

Pure ASGI middleware (no ``BaseHTTPMiddleware``).

Auth flow:
1. Extract ``Authorization: Bearer <token>`` header.
2. Compare the token to ``PROBE_SECRET`` in constant time.
3. On success: call inner app.
4. On failure: send RFC 9457 problem+json (401 missing, 403 wrong) and log.

An empty secret disables authentication; ``create_app`` warns at startup.
"""

from __future__ import annotations

import hmac
import logging

from .errors import AuthError
from .problem_details import from_exception

logger = logging.getLogger(__name__)

# Liveness/identity endpoints that bypass authentication
_BYPASS_PATHS: frozenset[str] = frozenset({"/", "/health"})

_BEARER_PREFIX = "Bearer "


class AuthMiddleware:
    """Pure ASGI middleware for shared-secret authentication.

    Constructor:
        ``AuthMiddleware(app, secret)``

    Bypasses: ``/`` and ``/health``.
    Non-HTTP scopes (e.g. lifespan) pass through unconditionally.
    """

    def __init__(self, app, secret: str) -> None:
        self.app = app
        self._secret = secret.encode("utf-8")

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] != "http" or not self._secret:
            await self.app(scope, receive, send)
            return

        if scope.get("path", "") in _BYPASS_PATHS:
            await self.app(scope, receive, send)
            return

        try:
            self._authenticate(scope)
        except AuthError as failure:
            await self._reject(failure, scope, receive, send)
            return

        await self.app(scope, receive, send)

    def _authenticate(self, scope) -> None:
        """Validate the Authorization header. Raises ``AuthError`` on failure."""
        raw_headers: list[tuple[bytes, bytes]] = scope.get("headers", [])

        auth_value: str | None = None
        for name, value in raw_headers:
            if name.lower() == b"authorization":
                auth_value = value.decode("latin-1")
                break

        if auth_value is None or not auth_value.startswith(_BEARER_PREFIX):
            raise AuthError("Bearer token required", reason="missing")

        token = auth_value[len(_BEARER_PREFIX) :].strip().encode("utf-8")
        if not hmac.compare_digest(token, self._secret):
            raise AuthError("Bearer token invalid", reason="invalid")

    async def _reject(self, failure: AuthError, scope, receive, send) -> None:
        problem = from_exception(failure, instance=scope.get("path", ""))
        response = problem.to_response()
        await response(scope, receive, send)

        client = scope.get("client") or ("", 0)
        logger.warning("Auth rejected: %s %s reason=%s", client[0], scope.get("path", ""), failure.reason)
