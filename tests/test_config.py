"""Tests for option parsing and configuration building."""

import pytest

from proxyforward.config import (
    build_config,
    parse_credentials,
    parse_proxy,
    parse_tunnel,
)
from proxyforward.errors import ConfigurationError
from proxyforward.models.tunnel import DEFAULT_USER_AGENT


def test_parse_tunnel():
    assert parse_tunnel("2222:ssh.example.com:443") == (2222, "ssh.example.com", 443)
    assert parse_tunnel("8022:[::1]:22") == (8022, "::1", 22)


@pytest.mark.parametrize(
    "text",
    ["", "2222", "2222:host", "2222::22", "abc:host:22", "0:host:22", "2222:host:70000", "2222:a:b:22"],
)
def test_parse_tunnel_rejects_malformed(text):
    with pytest.raises(ConfigurationError):
        parse_tunnel(text)


def test_parse_proxy_default_port():
    assert parse_proxy("proxy.example.com") == ("proxy.example.com", 8080)
    assert parse_proxy("proxy.example.com:3128") == ("proxy.example.com", 3128)
    assert parse_proxy("[::1]") == ("::1", 8080)
    assert parse_proxy("[::1]:3128") == ("::1", 3128)


@pytest.mark.parametrize("text", ["", ":3128", "proxy:", "proxy:abc", "[::1", "::1"])
def test_parse_proxy_rejects_malformed(text):
    with pytest.raises(ConfigurationError):
        parse_proxy(text)


def test_parse_credentials():
    assert parse_credentials(None) == (None, None)
    assert parse_credentials("alice:s3cret") == ("alice", "s3cret")
    assert parse_credentials("alice:a:b") == ("alice", "a:b")
    assert parse_credentials("alice:") == ("alice", "")
    with pytest.raises(ConfigurationError):
        parse_credentials("alice")
    with pytest.raises(ConfigurationError):
        parse_credentials(":pw")


def test_build_config():
    config = build_config(
        ["2222:ssh.example.com:443", "8000:web.internal:80"],
        "proxy.example.com",
        proxy_auth="alice:pw",
    )
    assert len(config.tunnels) == 2
    first = config.tunnels[0]
    assert first.listen_port == 2222
    assert first.listen_host == "0.0.0.0"
    assert first.proxy_port == 8080
    assert first.proxy_user == "alice"
    assert first.proxy_pass == "pw"
    assert first.user_agent == DEFAULT_USER_AGENT
    assert not config.local_only


def test_build_config_local_only():
    config = build_config(["2222:host:22"], "proxy", local_only=True)
    assert config.tunnels[0].listen_host == "127.0.0.1"
    assert config.local_only


def test_build_config_duplicate_port():
    with pytest.raises(ConfigurationError, match="more than once"):
        build_config(["2222:a:22", "2222:b:22"], "proxy")


def test_build_config_requires_tunnel():
    with pytest.raises(ConfigurationError):
        build_config([], "proxy")


def test_config_is_immutable():
    config = build_config(["2222:host:22"], "proxy")
    with pytest.raises(AttributeError):
        config.tunnels = ()
    with pytest.raises(AttributeError):
        config.tunnels[0].listen_port = 1
