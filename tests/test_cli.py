"""Tests for the command line front end."""

import asyncio
import os
import signal
import socket
import sys

import pytest
from typer.testing import CliRunner

from conftest import free_port, run
from proxyforward import __version__
from proxyforward.cli.main import _print_banner, _run_engine, app
from proxyforward.config import build_config
from proxyforward.models.enums import LogLevel
from proxyforward.utils.logger import level_from_verbosity

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_malformed_tunnel_exits_nonzero():
    result = runner.invoke(app, ["not-a-tunnel", "--proxy", "proxy:8080"])
    assert result.exit_code == 1


def test_duplicate_listen_port_exits_nonzero():
    result = runner.invoke(
        app, ["2222:a:22", "2222:b:22", "--proxy", "proxy:8080"]
    )
    assert result.exit_code == 1


def test_missing_proxy_is_usage_error():
    result = runner.invoke(app, ["2222:a:22"], env={"PROXYFORWARD_PROXY": None})
    assert result.exit_code != 0


def test_bind_failure_exits_nonzero():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
        blocker.bind(("127.0.0.1", 0))
        blocker.listen()
        port = blocker.getsockname()[1]
        result = runner.invoke(
            app, [f"{port}:target:22", "--proxy", "127.0.0.1:1", "--local-only"]
        )
    assert result.exit_code == 1


def test_level_from_verbosity():
    assert level_from_verbosity(0) == LogLevel.WARNING
    assert level_from_verbosity(1) == LogLevel.INFO
    assert level_from_verbosity(2) == LogLevel.DEBUG
    assert level_from_verbosity(5) == LogLevel.FULL


def test_banner_warns_when_listening_on_all_interfaces(capsys):
    _print_banner(build_config(["2222:target:22"], "proxy:8080"))
    captured = capsys.readouterr()
    assert "Forwarding" in captured.out
    assert "target:22" in captured.out
    assert "--local-only" in captured.err


def test_banner_quiet_for_local_only(capsys):
    _print_banner(build_config(["2222:target:22"], "proxy:8080", local_only=True))
    captured = capsys.readouterr()
    assert "Forwarding" in captured.out
    assert captured.err == ""


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
def test_sigterm_stops_running_engine():
    config = build_config(
        [f"{free_port()}:127.0.0.1:9"], "127.0.0.1:1", local_only=True
    )

    async def scenario():
        task = asyncio.create_task(_run_engine(config))
        await asyncio.sleep(0.2)
        os.kill(os.getpid(), signal.SIGTERM)
        await asyncio.wait_for(task, timeout=2.0)

    run(scenario())
