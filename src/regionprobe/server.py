# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""HTTP surface: Starlette app served by uvicorn.

Routes:

- ``POST /check``: run one check, return the flat result record.
- ``GET /health``: unauthenticated liveness.
- ``GET /``: unauthenticated identity.

Request flow: Auth → App.  The cookie store's reaper runs for the lifetime
of the app (Starlette lifespan).
"""

from __future__ import annotations

import contextlib
import functools
import logging
import sys
import time

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from . import PROBE_NAME, __version__
from .auth_middleware import AuthMiddleware
from .checker import ProbeChecker
from .config import ProbeSettings, parse_settings
from .cookie_store import CookieStore
from .dns_resolver import DnsCache, DnsResolver
from .errors import MalformedInputError
from .problem_details import from_exception, from_validation
from .result import utc_timestamp
from .schemas import parse_check_request
from .user_agents import UserAgentRotator

# Logging configured in main() via logging_config.configure()
logger = logging.getLogger("regionprobe.server")


def build_checker(settings: ProbeSettings) -> ProbeChecker:
    """Wire the process-owned components into one checker."""
    return ProbeChecker(
        settings,
        resolver=DnsResolver(DnsCache()),
        cookie_store=CookieStore(reaper_interval=settings.cookie_reaper_interval),
        ua_rotator=UserAgentRotator(settings.ua_strategy),
    )


def create_app(settings: ProbeSettings, checker: ProbeChecker | None = None):
    """Build the ASGI application (auth middleware wrapping the Starlette app)."""
    checker = checker or build_checker(settings)
    started = time.monotonic()

    # ── Handlers ─────────────────────────────────────────────────────

    async def _identity(request: Request) -> JSONResponse:
        return JSONResponse({"name": PROBE_NAME, "version": __version__, "region": settings.region})

    async def _health(request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "region": settings.region,
                "version": __version__,
                "uptime": round(time.monotonic() - started, 1),
                "timestamp": utc_timestamp(),
            }
        )

    async def _check(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            logger.warning("Rejected check request: body is not valid JSON")
            return from_validation("Request body is not valid JSON", instance=request.url.path).to_response()

        try:
            check_request = parse_check_request(payload)
        except MalformedInputError as e:
            logger.warning("Rejected check request: %s", e)
            return from_exception(e, instance=request.url.path).to_response()

        try:
            result = await checker.check(check_request)
        except Exception as e:  # noqa: BLE001
            logger.exception("Check endpoint failed")
            return from_exception(e, instance=request.url.path).to_response()
        return JSONResponse(result.to_dict())

    # ── Lifespan ─────────────────────────────────────────────────────

    @contextlib.asynccontextmanager
    async def _lifespan(app: Starlette):
        if checker.cookie_store is None:
            yield
            return
        async with checker.cookie_store:
            logger.info("Cookie store reaper started")
            yield
        logger.info("Cookie store reaper stopped")

    app = Starlette(
        routes=[
            Route("/", _identity, methods=["GET"]),
            Route("/health", _health, methods=["GET"]),
            Route("/check", _check, methods=["POST"]),
        ],
        lifespan=_lifespan,
    )
    app.state.checker = checker
    app.state.settings = settings

    if not settings.auth_enabled:
        logger.warning("PROBE_SECRET not set, authentication disabled")
    return AuthMiddleware(app, settings.secret)


async def _run_http_server(settings: ProbeSettings) -> None:
    """Serve the app until uvicorn receives a shutdown signal."""
    import uvicorn

    app = create_app(settings)
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,  # keep the structlog bridge from logging_config
    )
    server = uvicorn.Server(config)
    await server.serve()
    logger.info("HTTP server: shutdown complete")


def main(argv: list[str] | None = None):
    """Entry point for the probe server."""
    settings = parse_settings(argv if argv is not None else sys.argv[1:])

    # Configure structlog BEFORE any log output
    from .logging_config import configure as configure_logging

    configure_logging(json_output=settings.log_json, level=settings.log_level, region=settings.region)

    logger.info(
        "Starting %s %s (region=%s, host=%s, port=%d)",
        PROBE_NAME,
        __version__,
        settings.region,
        settings.host,
        settings.port,
    )
    import anyio

    anyio.run(functools.partial(_run_http_server, settings))


if __name__ == "__main__":
    main()
