# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Manual redirect following with a recorded hop chain.

httpx's own redirect handling is disabled; every hop is one request whose
``Location`` is resolved and re-requested by hand, so the chain, loops and
missing ``Location`` headers are all visible to the caller.

- Responses are streamed.  Redirect bodies are never read; the final body
  (or the body of a redirect with no ``Location``) is read up to a byte cap.
- Each hop is bounded by the request timeout twice over: httpx's transport
  timeout and an ``asyncio.wait_for`` around send + read.
- Transport failures end the chain with a hop whose status is ``None``;
  ``follow_redirects`` never raises for network conditions.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import time
from dataclasses import dataclass, field
from http.cookiejar import CookieJar
from typing import Any
from urllib.parse import parse_qsl, urljoin, urlparse, urlunparse

import httpx

from .timing import TimingBreakdown, TimingCollector

logger = logging.getLogger(__name__)

REDIRECT_STATUS_CODES: frozenset[int] = frozenset({301, 302, 303, 307, 308})
MAX_REDIRECTS = 10
DEFAULT_MAX_BODY_BYTES = 100 * 1024


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RequestOptions:
    """Per-chain request parameters."""

    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float = 30.0  # seconds, per hop
    verify: bool = True
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    read_body: bool = True  # False for HEAD-style checks
    cookies: CookieJar | None = None  # shared monitor jar; None = chain-local cookies

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")
        if self.max_body_bytes <= 0:
            raise ValueError(f"max_body_bytes must be > 0, got {self.max_body_bytes}")


@dataclass(frozen=True, slots=True)
class Hop:
    """One request in the chain."""

    url: str
    status_code: int | None  # None on transport failure
    location: str | None = None
    headers: dict[str, str] = field(default_factory=dict)  # lowercased names
    response_time_ms: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "url": self.url,
            "statusCode": self.status_code,
            "responseTimeMs": self.response_time_ms,
        }
        if self.location is not None:
            d["location"] = self.location
        if self.error is not None:
            d["error"] = self.error
        return d


@dataclass(frozen=True, slots=True)
class RedirectChainResult:
    """Everything observed while following one URL to its end."""

    hops: tuple[Hop, ...]
    final_url: str
    redirect_count: int = 0
    final_status: int | None = None
    is_loop: bool = False
    loop_detected_at: str | None = None
    max_redirects_exceeded: bool = False
    no_location_header: bool = False
    total_redirect_time_ms: float = 0.0
    body: str | None = None  # final hop only
    headers: dict[str, str] = field(default_factory=dict)  # final hop only
    error: str | None = None
    timing: TimingBreakdown | None = None

    @property
    def last_hop(self) -> Hop | None:
        return self.hops[-1] if self.hops else None

    @property
    def transport_failed(self) -> bool:
        last = self.last_hop
        return last is not None and last.status_code is None


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


def normalize_url(url: str) -> str:
    """Normalize URL for loop detection: lowercase scheme/netloc, strip fragment, sort query.

    Preserves path case and trailing slash; an empty path becomes ``/``.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return url

    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()
    path = parsed.path or "/"
    params = parse_qsl(parsed.query, keep_blank_values=True)
    sorted_query = "&".join(f"{k}={v}" for k, v in sorted(params))
    return urlunparse((scheme, netloc, path, parsed.params, sorted_query, ""))


def resolve_redirect_url(current_url: str, location: str) -> str:
    """Resolve an absolute, protocol-relative or relative ``Location`` against *current_url*."""
    location = location.strip()
    try:
        return urljoin(current_url, location)
    except ValueError:
        return location


def describe_transport_error(exc: BaseException) -> str:
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return "Request timeout"
    message = str(exc)
    if isinstance(exc, httpx.ConnectError) and "refused" in message.lower():
        return f"Connection refused ({message})"
    return message or type(exc).__name__


# ---------------------------------------------------------------------------
# Single exchange
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _Exchange:
    status_code: int
    headers: dict[str, str]
    location: str | None
    body: str | None


def _body_encoding(response: httpx.Response) -> str:
    """Declared charset when Python knows it, else utf-8."""
    declared = response.charset_encoding
    if declared:
        try:
            return codecs.lookup(declared).name
        except LookupError:
            logger.debug("Unknown charset %r from %s, decoding as utf-8", declared, response.request.url)
    return "utf-8"


async def _read_capped(response: httpx.Response, limit: int) -> str:
    chunks: list[bytes] = []
    size = 0
    async for chunk in response.aiter_bytes():
        chunks.append(chunk)
        size += len(chunk)
        if size >= limit:
            break
    raw = b"".join(chunks)[:limit]
    return raw.decode(_body_encoding(response), errors="replace")


async def _exchange(
    client: httpx.AsyncClient,
    url: str,
    options: RequestOptions,
    timing: TimingCollector | None,
) -> _Exchange:
    extensions = {"trace": timing.trace} if timing is not None else None
    request = client.build_request(options.method, url, headers=options.headers, extensions=extensions)
    response = await client.send(request, stream=True)
    try:
        if timing is not None:
            timing.headers_received()
        headers = {k.lower(): v for k, v in response.headers.items()}
        location = response.headers.get("location")
        status = response.status_code

        body: str | None = None
        is_redirect = status in REDIRECT_STATUS_CODES
        if options.read_body and not (is_redirect and location):
            body = await _read_capped(response, options.max_body_bytes)
            if timing is not None:
                timing.body_complete()
        return _Exchange(status_code=status, headers=headers, location=location, body=body)
    finally:
        await response.aclose()


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------


async def follow_redirects(
    url: str,
    options: RequestOptions | None = None,
    max_hops: int = MAX_REDIRECTS,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    timing: TimingCollector | None = None,
) -> RedirectChainResult:
    """Request *url*, following redirects by hand for at most *max_hops* requests."""
    if max_hops <= 0:
        raise ValueError(f"max_hops must be > 0, got {max_hops}")
    options = options or RequestOptions()

    hops: list[Hop] = []
    visited: set[str] = set()
    current = url
    total_ms = 0.0

    def _result(**kwargs: Any) -> RedirectChainResult:
        if timing is not None:
            timing.finish()
        return RedirectChainResult(
            hops=tuple(hops),
            final_url=current,
            redirect_count=sum(1 for h in hops if h.status_code in REDIRECT_STATUS_CODES and h.location),
            total_redirect_time_ms=round(total_ms, 1),
            timing=timing.breakdown() if timing is not None else None,
            **kwargs,
        )

    client_kwargs: dict[str, Any] = {
        "follow_redirects": False,
        "verify": options.verify,
        "timeout": httpx.Timeout(options.timeout),
    }
    if options.cookies is not None:
        client_kwargs["cookies"] = options.cookies
    if transport is not None:
        client_kwargs["transport"] = transport

    async with httpx.AsyncClient(**client_kwargs) as client:
        for _ in range(max_hops):
            key = normalize_url(current)
            if key in visited:
                logger.debug("Redirect loop at %s after %d hop(s)", current, len(hops))
                last = hops[-1] if hops else None
                return _result(
                    final_status=last.status_code if last else None,
                    is_loop=True,
                    loop_detected_at=current,
                    headers=dict(last.headers) if last else {},
                    error=f"Redirect loop detected at {current}",
                )
            visited.add(key)

            if timing is not None:
                timing.begin_hop()
            start = time.monotonic()
            try:
                exchange = await asyncio.wait_for(_exchange(client, current, options, timing), timeout=options.timeout)
            except (httpx.HTTPError, httpx.InvalidURL, TimeoutError, OSError) as e:
                elapsed = round((time.monotonic() - start) * 1000, 1)
                message = describe_transport_error(e)
                hops.append(Hop(url=current, status_code=None, response_time_ms=elapsed, error=message))
                total_ms += elapsed
                logger.debug("Hop to %s failed: %s", current, message)
                return _result(final_status=None, error=message)

            elapsed = round((time.monotonic() - start) * 1000, 1)
            total_ms += elapsed
            hops.append(
                Hop(
                    url=current,
                    status_code=exchange.status_code,
                    location=exchange.location,
                    headers=exchange.headers,
                    response_time_ms=elapsed,
                )
            )

            if exchange.status_code not in REDIRECT_STATUS_CODES:
                return _result(final_status=exchange.status_code, body=exchange.body, headers=exchange.headers)

            if not exchange.location:
                return _result(
                    final_status=exchange.status_code,
                    no_location_header=True,
                    body=exchange.body,
                    headers=exchange.headers,
                    error=f"Redirect status {exchange.status_code} but no Location header",
                )

            current = resolve_redirect_url(current, exchange.location)

    last = hops[-1]
    # the next Location was never requested
    current = last.url
    return _result(
        final_status=last.status_code,
        max_redirects_exceeded=True,
        headers=dict(last.headers),
        error=f"Maximum redirects ({max_hops}) exceeded",
    )
