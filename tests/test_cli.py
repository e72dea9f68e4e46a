# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the regionprobe CLI.

Covers:
- check/tcp print the JSON result, exit 2 when the target is down
- header parsing and request validation errors (exit 1, no traceback)
- main() top-level error handler (130 / SystemExit / 1)
- serve forwards settings flags to the server entry point
"""

from __future__ import annotations

import json
import logging
import socket
from unittest.mock import patch

import httpx
import pytest

from regionprobe import cli
from regionprobe.checker import ProbeChecker
from regionprobe.cli import EXIT_TARGET_DOWN, _parse_headers, main
from regionprobe.errors import MalformedInputError
from tests._probe_helpers import redirect, route_transport


@pytest.fixture(autouse=True)
def _restore_logging(monkeypatch):
    """main() reconfigures root logging; undo it and keep PROBE_* out of the way."""
    for name in ("PROBE_REGION", "PROBE_LOG_JSON", "PROBE_LOG_LEVEL", "PROBE_SECRET"):
        monkeypatch.delenv(name, raising=False)
    root = logging.getLogger()
    old_handlers = root.handlers[:]
    old_level = root.level
    yield
    root.handlers = old_handlers
    root.setLevel(old_level)


@pytest.fixture
def offline_checker(resolver):
    """Patch the CLI's ProbeChecker so HTTP checks hit a mock transport."""
    transport = route_transport(
        {
            "https://example.com/": redirect("/home"),
            "https://example.com/home": httpx.Response(200, text="welcome"),
            "https://example.de/": httpx.Response(503),
        }
    )

    def factory(settings, **kwargs):
        return ProbeChecker(settings, resolver=resolver, transport=transport, **kwargs)

    with patch.object(cli, "ProbeChecker", side_effect=factory):
        yield


# ── Header parsing ─────────────────────────────────────────────


class TestParseHeaders:
    def test_pairs(self):
        assert _parse_headers(["Accept: application/json", "X-Token:abc"]) == {
            "Accept": "application/json",
            "X-Token": "abc",
        }

    def test_value_may_contain_colon(self):
        assert _parse_headers(["Referer: https://example.com/"]) == {"Referer": "https://example.com/"}

    def test_none(self):
        assert _parse_headers(None) == {}

    @pytest.mark.parametrize("raw", ["no-colon", ": value"])
    def test_malformed(self, raw):
        with pytest.raises(MalformedInputError):
            _parse_headers([raw])


# ── check ─────────────────────────────────────────────


class TestCheckCommand:
    def test_up_prints_result(self, offline_checker, capsys):
        main(["check", "https://example.com/", "--monitor-id", "cli-1", "--region", "eu-west"])
        result = json.loads(capsys.readouterr().out)
        assert result["status"] == "up"
        assert result["monitorId"] == "cli-1"
        assert result["region"] == "eu-west"
        assert result["redirectCount"] == 1

    def test_down_exits_2(self, offline_checker, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["check", "https://example.de/"])
        assert exc_info.value.code == EXIT_TARGET_DOWN
        result = json.loads(capsys.readouterr().out)
        assert result["errorMessage"] == "Expected status 200, got 503"

    def test_expected_status_flag(self, offline_checker, capsys):
        main(["check", "https://example.de/", "--expected-status", "503"])
        assert json.loads(capsys.readouterr().out)["status"] == "up"

    def test_bad_header_exit_1(self, offline_checker, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["check", "https://example.com/", "-H", "broken"])
        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert err.startswith("Error: Header must look like 'Name: value'")
        assert "Traceback" not in err

    def test_invalid_url_exit_1(self, offline_checker, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["check", "ftp://example.com/"])
        assert exc_info.value.code == 1
        assert "Hint: Check the URL, monitor type and port." in capsys.readouterr().err


# ── tcp ─────────────────────────────────────────────


class TestTcpCommand:
    def test_closed_port(self, capsys):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
        sock.close()

        with pytest.raises(SystemExit) as exc_info:
            main(["tcp", "127.0.0.1", str(port), "--timeout", "2"])
        assert exc_info.value.code == EXIT_TARGET_DOWN
        result = json.loads(capsys.readouterr().out)
        assert result["status"] == "down"
        assert result["errorMessage"] == f"Connection refused (127.0.0.1:{port})"
        assert result["finalUrl"] == f"127.0.0.1:{port}"


# ── serve ─────────────────────────────────────────────


class TestServeCommand:
    def test_forwards_settings_flags(self):
        with patch("regionprobe.server.main") as server_main:
            main(["serve", "--region", "ap-south", "--port", "4000"])
        server_main.assert_called_once_with(argv=["--region", "ap-south", "--port", "4000"])


# ── main() error handler ─────────────────────────────────────────────


class TestMainErrorHandler:
    def test_keyboard_interrupt_exit_130(self, capsys):
        with (
            patch.object(cli, "cmd_check", side_effect=KeyboardInterrupt()),
            pytest.raises(SystemExit) as exc_info,
        ):
            main(["check", "https://example.com/"])
        assert exc_info.value.code == 130
        assert "Interrupted." in capsys.readouterr().err

    def test_generic_exception_exit_1(self, capsys):
        with (
            patch.object(cli, "_run_check", side_effect=RuntimeError("unexpected crash at /srv/app/x.py")),
            pytest.raises(SystemExit) as exc_info,
        ):
            main(["check", "https://example.com/"])
        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert err.strip() == "Error: An internal error occurred."

    def test_verbose_shows_traceback(self, capsys):
        with (
            patch.object(cli, "_run_check", side_effect=RuntimeError("unexpected crash")),
            pytest.raises(SystemExit),
        ):
            main(["-v", "check", "https://example.com/"])
        assert "Traceback" in capsys.readouterr().err

    def test_missing_command(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2
