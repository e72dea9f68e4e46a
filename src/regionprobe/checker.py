# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Check orchestrator: one request in, one ``CheckResult`` out.

HTTP flow::

    pending -> dns_resolving -> requesting -> redirect_following -> classifying -> done
                     |
                     +-> dns failure / hijack -> result (no HTTP attempt)

TCP flow is a single timed connect.  The whole check runs under an overall
deadline; every failure inside, expected or not, becomes a result record
and never an exception.
"""

from __future__ import annotations

import asyncio
import contextlib
import errno
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any
from urllib.parse import urlsplit

import httpx

from .config import ProbeSettings
from .cookie_store import CookieStore
from .detection import (
    ResponseFacts,
    calculate_backoff,
    classify,
    detect_redirect_challenge,
    geo_blocking_indicators,
    validate_content,
)
from .dns_resolver import DnsCache, DnsResolver, DnsResult
from .errors import CheckTimeoutError, DnsResolutionError
from .logging_config import check_context
from .redirects import RedirectChainResult, RequestOptions, follow_redirects
from .result import CheckResult, CheckStatus, ErrorKind, rate_limit_info, utc_timestamp
from .schemas import CheckRequest
from .timing import StageTimer, TimingCollector
from .user_agents import UserAgentRotator

logger = logging.getLogger(__name__)

# Interval assumed for backoff advice when the caller does not send one
DEFAULT_CHECK_INTERVAL_SECONDS = 60.0


def status_matches(expected: int, actual: int | None) -> bool:
    """Exact match, or expected 200 accepting any 2xx."""
    if actual is None:
        return False
    if actual == expected:
        return True
    return expected == 200 and 200 <= actual < 300


def _is_redirect_status(status: int | None) -> bool:
    return status is not None and 300 <= status < 400


class ProbeChecker:
    """Runs checks against injected, process-owned components.

    The DNS cache, cookie store and user-agent rotator are shared by every
    check; ``transport`` replaces httpx's network transport in tests.
    """

    def __init__(
        self,
        settings: ProbeSettings | None = None,
        *,
        resolver: DnsResolver | None = None,
        cookie_store: CookieStore | None = None,
        ua_rotator: UserAgentRotator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or ProbeSettings()
        self.resolver = resolver or DnsResolver(DnsCache())
        self.cookie_store = cookie_store
        self.ua_rotator = ua_rotator or UserAgentRotator(self.settings.ua_strategy)
        self._transport = transport
        self._clock = clock

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def check(self, request: CheckRequest) -> CheckResult:
        with check_context(request.monitor_id, request.monitor_type):
            return await self._check(request)

    async def _check(self, request: CheckRequest) -> CheckResult:
        timer = StageTimer()
        timer.stage("pending")
        start = time.monotonic()
        try:
            if request.monitor_type == "tcp_ping":
                result = await self._run_with_deadline(self._tcp_check(request, timer, start), timer)
            else:
                result = await self._run_with_deadline(self._http_check(request, timer, start), timer)
        except CheckTimeoutError as e:
            result = self._failure(
                request,
                start,
                status=CheckStatus.DOWN,
                kind=ErrorKind.TIMEOUT,
                message=str(e),
                timeout_report=timer.timeout_report(),
            )
        except DnsResolutionError as e:
            result = self._failure(
                request,
                start,
                status=CheckStatus.DNS_FAILURE,
                kind=ErrorKind.DNS_HIJACK if e.hijacked else ErrorKind.DNS_FAILURE,
                message=str(e),
                dns=e.result,
            )
        except Exception as e:  # noqa: BLE001
            logger.exception("Check failed unexpectedly for %s", url_for_log(request))
            result = self._failure(
                request,
                start,
                status=CheckStatus.DOWN,
                kind=ErrorKind.INTERNAL_ERROR,
                message=str(e) or type(e).__name__,
            )
        finally:
            timer.stage("done")
            timer.finalize()

        self._log(request, result)
        return result

    async def _run_with_deadline(self, coro: Coroutine[Any, Any, CheckResult], timer: StageTimer) -> CheckResult:
        timeout = self.settings.check_timeout
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except TimeoutError:
            stage = timer.current_stage or "unknown"
            raise CheckTimeoutError(
                f"Check timed out after {timeout:g}s during {stage}",
                stage=stage,
                elapsed_ms=timer.elapsed_ms(),
            ) from None

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _resolve(self, hostname: str) -> DnsResult:
        dns = await self.resolver.resolve(hostname, self.settings.dns_timeout_ms)
        if not dns.success:
            raise DnsResolutionError(dns.error or "DNS resolution failed", hostname=hostname, result=dns)
        if dns.hijacked:
            raise DnsResolutionError(
                f"DNS hijacking suspected: {dns.hijack_reason}",
                hostname=hostname,
                hijacked=True,
                result=dns,
            )
        return dns

    async def _request_options(self, request: CheckRequest) -> RequestOptions:
        jar = None
        if request.enable_cookies and request.monitor_id and self.cookie_store is not None:
            jar = await self.cookie_store.get_jar(request.monitor_id, request.cookie_ttl_seconds)
        return RequestOptions(
            method=request.http_method,
            headers=self.ua_rotator.headers(request.headers),
            timeout=request.timeout_seconds or self.settings.default_timeout,
            verify=not request.ignore_ssl_errors,
            max_body_bytes=self.settings.max_body_bytes,
            read_body=not request.is_bodyless,
            cookies=jar,
        )

    async def _http_check(self, request: CheckRequest, timer: StageTimer, start: float) -> CheckResult:
        url = request.url or ""
        hostname = urlsplit(url).hostname or ""

        timer.stage("dns_resolving")
        dns = await self._resolve(hostname)

        timer.stage("requesting")
        options = await self._request_options(request)
        timing = TimingCollector(dns_ms=dns.response_time_ms)

        timer.stage("redirect_following")
        chain = await follow_redirects(
            url,
            options,
            max_hops=self.settings.max_redirects,
            transport=self._transport,
            timing=timing,
        )

        timer.stage("classifying")
        return self._assemble(request, chain, dns, start)

    def _assemble(
        self,
        request: CheckRequest,
        chain: RedirectChainResult,
        dns: DnsResult,
        start: float,
    ) -> CheckResult:
        status_code = chain.final_status
        body = chain.body
        # with no response, the classifiers see the transport error text instead
        facts_body = chain.error if chain.transport_failed else body
        facts = ResponseFacts.from_raw(status_code, chain.headers, facts_body, chain.total_redirect_time_ms)
        challenge = detect_redirect_challenge(facts) if chain.no_location_header else None

        status = CheckStatus.UP
        kind: ErrorKind | None = None
        message: str | None = None

        if chain.transport_failed:
            status = CheckStatus.DOWN
            message = chain.error
            kind = ErrorKind.TIMEOUT if message == "Request timeout" else ErrorKind.NETWORK_ERROR
        else:
            redirect_is_up = request.treat_redirects_as_up and _is_redirect_status(status_code)
            if challenge is None and not redirect_is_up and not status_matches(request.expected_status, status_code):
                status = CheckStatus.DOWN
                if chain.is_loop:
                    kind, message = ErrorKind.REDIRECT_LOOP, chain.error
                elif chain.max_redirects_exceeded:
                    kind, message = ErrorKind.MAX_REDIRECTS, chain.error
                else:
                    kind = ErrorKind.STATUS_MISMATCH
                    message = f"Expected status {request.expected_status}, got {status_code}"

        elapsed_ms = self._elapsed_ms(start)
        threshold = request.degraded_threshold_ms
        if status is CheckStatus.UP and threshold and elapsed_ms > threshold:
            status = CheckStatus.DEGRADED
            message = f"Response time {elapsed_ms:.0f}ms exceeded threshold {threshold:.0f}ms"

        metadata = classify(facts, chain.hops, challenge=challenge)

        rl_info = None
        if metadata is not None and metadata.rate_limit is not None:
            advice = calculate_backoff(
                metadata.rate_limit.retry_after,
                request.check_interval_seconds or DEFAULT_CHECK_INTERVAL_SECONDS,
                request.consecutive_rate_limits,
                clock=self._clock,
            )
            rl_info = rate_limit_info(metadata.rate_limit, advice)

        content: dict[str, Any] = {}
        if body is not None:
            content["response_size"] = len(body.encode("utf-8"))
        if body and request.content_validation is not None and not request.is_bodyless:
            outcome = validate_content(body, request.content_validation)
            content = {
                "content_validated": outcome.passed,
                "content_hash": outcome.content_hash,
                "validation_errors": tuple(outcome.errors),
                "validation_warnings": tuple(outcome.warnings),
                "response_size": outcome.response_size,
            }
            if not outcome.passed:
                logger.info("Content validation failed for %s: %s", url_for_log(request), "; ".join(outcome.errors))

        return CheckResult(
            monitor_id=request.monitor_id,
            region=self.settings.region,
            status=status,
            status_code=status_code,
            response_time_ms=elapsed_ms,
            checked_at=utc_timestamp(),
            error_message=message,
            error_type=kind,
            geo_blocking_indicators=tuple(geo_blocking_indicators(metadata, message)),
            detection_metadata=metadata,
            challenge_info=challenge.to_challenge_info() if challenge is not None else None,
            redirect_count=chain.redirect_count,
            final_url=chain.final_url,
            redirect_chain=chain.hops,
            is_redirect_loop=chain.is_loop,
            max_redirects_exceeded=chain.max_redirects_exceeded,
            timing_breakdown=chain.timing,
            rate_limit_info=rl_info,
            dns=dns,
            **content,
        )

    # ------------------------------------------------------------------
    # TCP
    # ------------------------------------------------------------------

    async def _tcp_check(self, request: CheckRequest, timer: StageTimer, start: float) -> CheckResult:
        host, port = request.tcp_target()
        timeout = request.timeout_seconds or self.settings.default_timeout

        timer.stage("requesting")
        status = CheckStatus.UP
        kind: ErrorKind | None = None
        message: str | None = None
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
        except TimeoutError:
            status, kind, message = CheckStatus.DOWN, ErrorKind.TIMEOUT, "Connection timeout"
        except OSError as e:
            status, kind = CheckStatus.DOWN, ErrorKind.NETWORK_ERROR
            if isinstance(e, ConnectionRefusedError) or e.errno == errno.ECONNREFUSED:
                message = f"Connection refused ({host}:{port})"
            else:
                message = str(e) or type(e).__name__
        else:
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()

        elapsed_ms = self._elapsed_ms(start)
        threshold = request.degraded_threshold_ms
        if status is CheckStatus.UP and threshold and elapsed_ms > threshold:
            status = CheckStatus.DEGRADED
            message = f"Response time {elapsed_ms:.0f}ms exceeded threshold {threshold:.0f}ms"

        return CheckResult(
            monitor_id=request.monitor_id,
            region=self.settings.region,
            status=status,
            response_time_ms=elapsed_ms,
            checked_at=utc_timestamp(),
            error_message=message,
            error_type=kind,
            final_url=f"{host}:{port}",
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _failure(
        self,
        request: CheckRequest,
        start: float,
        *,
        status: CheckStatus,
        kind: ErrorKind,
        message: str,
        dns: DnsResult | None = None,
        timeout_report: dict[str, Any] | None = None,
    ) -> CheckResult:
        return CheckResult(
            monitor_id=request.monitor_id,
            region=self.settings.region,
            status=status,
            response_time_ms=self._elapsed_ms(start),
            checked_at=utc_timestamp(),
            error_message=message,
            error_type=kind,
            geo_blocking_indicators=tuple(geo_blocking_indicators(None, message)),
            dns=dns,
            timeout_report=timeout_report,
        )

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return round((time.monotonic() - start) * 1000, 1)

    def _log(self, request: CheckRequest, result: CheckResult) -> None:
        flags = ""
        if result.is_geo_blocked:
            flags += " [GEO-BLOCKED]"
        if result.challenge_info is not None:
            flags += " [CHALLENGE]"
        if result.is_redirect_loop:
            flags += " [LOOP]"
        logger.info(
            "%s: %s - %.0fms (redirects=%d final=%s)%s",
            url_for_log(request),
            result.status.value,
            result.response_time_ms,
            result.redirect_count,
            result.final_url,
            flags,
        )


def url_for_log(request: CheckRequest) -> str:
    if request.monitor_type == "tcp_ping":
        host, port = request.tcp_target()
        return f"tcp://{host}:{port}"
    return request.url or ""
