"""
Unit tests for Host header → document root routing.
"""

from pathlib import Path

import pytest

from vhostserver.config import ServerConfig
from vhostserver.handlers.vhost import VhostRouter, host_name


@pytest.fixture
def router() -> VhostRouter:
    return VhostRouter(ServerConfig(
        default_root=Path("public"),
        vhosts={"a.test": Path("sites/a"), "www.a.test": Path("sites/a"), "b.test": Path("sites/b")},
    ))


class TestHostName:

    @pytest.mark.parametrize("header, expected", [
        ("a.test", "a.test"),
        ("A.TEST", "a.test"),
        ("a.test:8080", "a.test"),
        ("  a.test  ", "a.test"),
        ("[::1]:8443", "[::1]"),
        ("[::1]", "[::1]"),
        ("", ""),
        (None, ""),
    ])
    def test_host_name(self, header, expected):
        assert host_name(header) == expected


class TestVhostRouter:

    def test_configured_host(self, router):
        assert router.route("a.test") == Path("sites/a")
        assert router.route("b.test") == Path("sites/b")

    def test_any_case_and_port(self, router):
        assert router.route("WWW.A.Test:9090") == Path("sites/a")

    def test_unknown_host_gets_default(self, router):
        assert router.route("unknown.test") == Path("public")

    def test_missing_host_gets_default(self, router):
        assert router.route(None) == Path("public")
        assert router.route("") == Path("public")

    def test_route_request(self, router):
        routed = router.route_request("GET", "/f.css", "a.test:9090")

        assert routed.method == "GET"
        assert routed.decoded_path == "/f.css"
        assert routed.host_header == "a.test:9090"
        assert routed.resolved_root == Path("sites/a")

    def test_vhosts_with_no_config_entries(self):
        router = VhostRouter(ServerConfig(default_root=Path("only")))
        assert router.route("anything.test") == Path("only")
