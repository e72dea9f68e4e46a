# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""DNS resolution with caching and hijack detection.

Separates DNS failures from HTTP/TCP failures: a check whose hostname does
not resolve (or resolves to an untrustworthy address) ends as
``dns_failure`` without touching the network further.

- IPv4 first, IPv6 on failure; the IPv4 error is reported if both fail.
- One hard deadline covers both lookups (``asyncio.wait_for``), independent
  of the system resolver's own timeouts.
- 60 s in-memory cache, lazy eviction on lookup.  Hijacked answers are
  never cached; cache hits are re-checked.
- ``DnsResolver.resolve`` never raises.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

DNS_CACHE_TTL_SECONDS = 60.0
DEFAULT_DNS_TIMEOUT_MS = 5000

# Null routes and ISP NXDOMAIN-redirect landing pages
KNOWN_SINKHOLE_IPS: frozenset[str] = frozenset(
    {
        "0.0.0.0",  # nosec B104
        "::",
        "198.105.244.11",
        "198.105.254.11",
    }
)

# Domains that never legitimately resolve to private space
WELL_KNOWN_PUBLIC_DOMAINS: tuple[str, ...] = (
    "google.com",
    "cloudflare.com",
    "amazon.com",
    "microsoft.com",
    "apple.com",
)

_PRIVATE_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
)

LookupFunc = Callable[[str, int], Awaitable[list[str]]]


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DnsResult:
    """Outcome of one resolution, fresh or cached."""

    success: bool
    ips: tuple[str, ...] = ()
    response_time_ms: float = 0.0
    cached: bool = False
    hijacked: bool = False
    hijack_reason: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "success": self.success,
            "ips": list(self.ips),
            "responseTimeMs": self.response_time_ms,
            "cached": self.cached,
            "hijacked": self.hijacked,
        }
        if self.hijack_reason:
            d["hijackReason"] = self.hijack_reason
        if self.error:
            d["error"] = self.error
        return d


@dataclass(frozen=True, slots=True)
class HijackCheck:
    hijacked: bool
    reason: str | None = None


_CLEAN = HijackCheck(hijacked=False)


# ---------------------------------------------------------------------------
# Hijack detection
# ---------------------------------------------------------------------------


def _is_loopback_name(hostname: str) -> bool:
    host = hostname.lower().rstrip(".")
    if host == "localhost" or host.endswith(".localhost"):
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def _is_public_domain(hostname: str) -> bool:
    host = hostname.lower().rstrip(".")
    return any(host == d or host.endswith("." + d) for d in WELL_KNOWN_PUBLIC_DOMAINS)


def detect_dns_hijacking(hostname: str, ips: list[str] | tuple[str, ...]) -> HijackCheck:
    """Flag resolutions that point somewhere a public hostname should never point.

    Checked in order: known sinkhole literals, loopback for a non-loopback
    name, private ranges for a curated list of public domains.
    """
    for ip in ips:
        if ip in KNOWN_SINKHOLE_IPS:
            return HijackCheck(True, f"DNS returned known sinkhole IP: {ip}")

    parsed: list[tuple[str, ipaddress.IPv4Address | ipaddress.IPv6Address]] = []
    for ip in ips:
        try:
            parsed.append((ip, ipaddress.ip_address(ip)))
        except ValueError:
            continue

    if not _is_loopback_name(hostname):
        for ip, addr in parsed:
            if addr.is_loopback:
                return HijackCheck(True, f"DNS returned localhost IP for external domain: {ip}")

    if _is_public_domain(hostname):
        for ip, addr in parsed:
            if any(addr in net for net in _PRIVATE_NETWORKS):
                return HijackCheck(True, f"DNS returned private IP for public domain: {ip}")

    return _CLEAN


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _DnsCacheEntry:
    ips: tuple[str, ...]
    stored_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return (now - self.stored_at) > self.ttl


@dataclass
class DnsCacheStats:
    """Counters for cache behaviour, used for logging and diagnostics."""

    size: int = 0
    hits: int = 0
    misses: int = 0
    entries: list[dict[str, Any]] = field(default_factory=list)


class DnsCache:
    """hostname -> IPs with a fixed TTL. Expired entries are dropped on lookup."""

    def __init__(self, ttl: float = DNS_CACHE_TTL_SECONDS, *, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl <= 0:
            raise ValueError(f"ttl must be > 0, got {ttl}")
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, _DnsCacheEntry] = {}
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    async def get(self, hostname: str) -> tuple[str, ...] | None:
        key = hostname.lower()
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.ips

    async def put(self, hostname: str, ips: tuple[str, ...]) -> None:
        async with self._lock:
            self._entries[hostname.lower()] = _DnsCacheEntry(ips=ips, stored_at=self._clock(), ttl=self._ttl)

    async def clear(self, hostname: str | None = None) -> int:
        """Drop one hostname (or everything). Returns the number of entries removed."""
        async with self._lock:
            if hostname is None:
                count = len(self._entries)
                self._entries.clear()
                return count
            return 1 if self._entries.pop(hostname.lower(), None) is not None else 0

    def stats(self) -> DnsCacheStats:
        now = self._clock()
        return DnsCacheStats(
            size=len(self._entries),
            hits=self._hits,
            misses=self._misses,
            entries=[
                {
                    "hostname": host,
                    "ips": list(entry.ips),
                    "ageSeconds": round(now - entry.stored_at, 1),
                    "ttlSeconds": entry.ttl,
                }
                for host, entry in self._entries.items()
            ],
        )

    def __len__(self) -> int:
        return len(self._entries)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


async def getaddrinfo_lookup(hostname: str, family: int) -> list[str]:
    """Resolve *hostname* for one address family via the system resolver.

    Uses asyncio.to_thread to avoid blocking the event loop.
    """

    def _sync_resolve() -> list[str]:
        results = socket.getaddrinfo(hostname, None, family, socket.SOCK_STREAM)
        # getaddrinfo may return duplicates for different socket types
        seen: set[str] = set()
        ips: list[str] = []
        for _family, _type, _proto, _canonname, sockaddr in results:
            ip = sockaddr[0]
            if ip not in seen:
                seen.add(ip)
                ips.append(ip)
        return ips

    ips = await asyncio.to_thread(_sync_resolve)
    if not ips:
        raise OSError(f"no addresses for '{hostname}'")
    return ips


def _is_ip_literal(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        return False
    return True


def _describe(exc: BaseException) -> str:
    if isinstance(exc, socket.gaierror):
        return f"DNS resolution failed: {exc.strerror or exc}"
    return str(exc) or type(exc).__name__


class DnsResolver:
    """Owned, injectable resolver holding the process DNS cache."""

    def __init__(
        self,
        cache: DnsCache | None = None,
        *,
        lookup: LookupFunc = getaddrinfo_lookup,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cache = cache if cache is not None else DnsCache()
        self._lookup = lookup
        self._clock = clock

    async def resolve(
        self,
        hostname: str,
        timeout_ms: int = DEFAULT_DNS_TIMEOUT_MS,
        *,
        use_cache: bool = True,
    ) -> DnsResult:
        """Resolve *hostname*; failures come back as ``success=False``."""
        if _is_ip_literal(hostname):
            return DnsResult(success=True, ips=(hostname.strip("[]"),))

        if use_cache:
            cached_ips = await self.cache.get(hostname)
            if cached_ips is not None:
                check = detect_dns_hijacking(hostname, cached_ips)
                logger.debug("DNS cache hit: %s -> %s", hostname, ",".join(cached_ips))
                return DnsResult(
                    success=True,
                    ips=cached_ips,
                    response_time_ms=0.0,
                    cached=True,
                    hijacked=check.hijacked,
                    hijack_reason=check.reason,
                )

        start = self._clock()
        try:
            ips = await asyncio.wait_for(self._lookup_any_family(hostname), timeout=timeout_ms / 1000)
        except TimeoutError:
            return DnsResult(
                success=False,
                response_time_ms=self._elapsed_ms(start),
                error=f"DNS timeout after {timeout_ms}ms",
            )
        except Exception as e:  # noqa: BLE001
            return DnsResult(success=False, response_time_ms=self._elapsed_ms(start), error=_describe(e))

        elapsed = self._elapsed_ms(start)
        resolved = tuple(ips)
        check = detect_dns_hijacking(hostname, resolved)
        if check.hijacked:
            logger.warning("DNS hijack suspected for %s: %s", hostname, check.reason)
        elif use_cache:
            await self.cache.put(hostname, resolved)

        return DnsResult(
            success=True,
            ips=resolved,
            response_time_ms=elapsed,
            cached=False,
            hijacked=check.hijacked,
            hijack_reason=check.reason,
        )

    async def _lookup_any_family(self, hostname: str) -> list[str]:
        try:
            return await self._lookup(hostname, socket.AF_INET)
        except Exception as v4_error:  # noqa: BLE001
            try:
                return await self._lookup(hostname, socket.AF_INET6)
            except Exception:  # noqa: BLE001
                raise v4_error from None

    def _elapsed_ms(self, start: float) -> float:
        return round((self._clock() - start) * 1000, 1)
