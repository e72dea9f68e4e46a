# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Region Probe CLI: one-shot checks and the server.

Usage:
    regionprobe check <url> [--method M] [--expected-status N] [--timeout S] [-H 'Name: value'] ...
    regionprobe tcp <host> <port> [--timeout S]
    regionprobe serve [server options]

Probe settings flags (``--region``, ``--dns-timeout-ms``, ...) and ``PROBE_*``
environment variables apply to every command.  ``check`` and ``tcp`` print
the JSON result and exit 0 when the target is up or degraded, 2 otherwise.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from .checker import ProbeChecker
from .config import ProbeSettings, parse_settings
from .cookie_store import CookieStore
from .errors import MalformedInputError
from .result import CheckResult, CheckStatus
from .schemas import parse_check_request

EXIT_TARGET_DOWN = 2


def _parse_headers(values: list[str] | None) -> dict[str, str]:
    headers: dict[str, str] = {}
    for raw in values or []:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            raise MalformedInputError(f"Header must look like 'Name: value', got {raw!r}", field_name="headers")
        headers[name.strip()] = value.strip()
    return headers


async def _run_check(settings: ProbeSettings, payload: dict) -> CheckResult:
    request = parse_check_request(payload)
    checker = ProbeChecker(settings, cookie_store=CookieStore(reaper_interval=settings.cookie_reaper_interval))
    return await checker.check(request)


def _emit(result: CheckResult) -> None:
    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    if result.status not in (CheckStatus.UP, CheckStatus.DEGRADED):
        sys.exit(EXIT_TARGET_DOWN)


def cmd_check(args: argparse.Namespace) -> None:
    """Run one HTTP check and print the result."""
    payload: dict = {
        "monitorId": args.monitor_id,
        "monitorType": "http_head" if args.head else "http",
        "url": args.url,
        "method": args.method,
        "expectedStatus": args.expected_status,
        "headers": _parse_headers(args.header),
        "ignoreSslErrors": args.insecure,
        "treatRedirectsAsUp": args.treat_redirects_as_up,
    }
    if args.timeout is not None:
        payload["timeoutSeconds"] = args.timeout
    if args.degraded_ms is not None:
        payload["degradedThresholdMs"] = args.degraded_ms
    _emit(asyncio.run(_run_check(args.settings, payload)))


def cmd_tcp(args: argparse.Namespace) -> None:
    """Run one TCP connect check and print the result."""
    payload: dict = {
        "monitorId": args.monitor_id,
        "monitorType": "tcp_ping",
        "host": args.host,
        "port": args.port,
    }
    if args.timeout is not None:
        payload["timeoutSeconds"] = args.timeout
    if args.degraded_ms is not None:
        payload["degradedThresholdMs"] = args.degraded_ms
    _emit(asyncio.run(_run_check(args.settings, payload)))


def cmd_serve(args: argparse.Namespace) -> None:
    """Start the probe server, forwarding settings flags."""
    from .server import main

    main(argv=getattr(args, "_server_argv", []))


def _add_common_check_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--monitor-id", default="cli", help="Monitor identity echoed in the result")
    p.add_argument("--timeout", type=float, default=None, metavar="SECONDS", help="Per-request timeout")
    p.add_argument("--degraded-ms", type=float, default=None, metavar="MS", help="Degraded latency threshold")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Region Probe CLI", prog="regionprobe")
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_check = subparsers.add_parser(
        "check",
        help="Run one HTTP check",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
examples:
  %(prog)s https://example.com
  %(prog)s https://example.com/api --expected-status 204 -H 'Accept: application/json'
  %(prog)s https://example.com --head --region eu-west""",
    )
    p_check.add_argument("url", help="Target URL (http or https)")
    p_check.add_argument("--method", default="GET", help="HTTP method (default: GET)")
    p_check.add_argument("--head", action="store_true", help="Send HEAD and skip the body")
    p_check.add_argument("--expected-status", type=int, default=200, help="Expected final status (default: 200)")
    p_check.add_argument("-H", "--header", action="append", metavar="'NAME: VALUE'", help="Extra request header")
    p_check.add_argument("-k", "--insecure", action="store_true", help="Ignore TLS certificate errors")
    p_check.add_argument("--treat-redirects-as-up", action="store_true", help="A final 3xx counts as up")
    _add_common_check_args(p_check)

    p_tcp = subparsers.add_parser("tcp", help="Run one TCP connect check")
    p_tcp.add_argument("host", help="Target host")
    p_tcp.add_argument("port", type=int, help="Target port")
    _add_common_check_args(p_tcp)

    subparsers.add_parser("serve", help="Start the probe server (settings flags forwarded)")

    commands = {"check": cmd_check, "tcp": cmd_tcp, "serve": cmd_serve}

    args, remaining = parser.parse_known_args(argv)

    if args.command == "serve":
        args._server_argv = remaining
    else:
        args.settings = parse_settings(remaining)

        from .logging_config import configure as configure_logging

        level = "DEBUG" if args.verbose else args.settings.log_level
        configure_logging(json_output=args.settings.log_json, level=level, region=args.settings.region)

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except SystemExit:
        raise
    except Exception as e:
        from .problem_details import from_exception

        problem = from_exception(e)
        print(problem.to_cli_text(), file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc(file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
