"""
Integration tests: a real server on a free port in a background thread.
"""

import dataclasses
import socket
import ssl
import threading

import pytest

from vhostserver import HTTPServer, ServerConfig
from vhostserver.config import TlsConfig
from vhostserver.config_parser import ConfigParser
from vhostserver.tls import CertBootstrap, BootstrapState, bootstrap_tls


def without_date(response: bytes) -> bytes:
    """Drop the Date header line, the only part that varies between replies."""
    head, sep, body = response.partition(b"\r\n\r\n")
    lines = [line for line in head.split(b"\r\n") if not line.lower().startswith(b"date:")]
    return b"\r\n".join(lines) + sep + body


class TestStaticServing:

    def test_index(self, running_server, site):
        status, headers, body = running_server.request("GET", "/")

        assert status == 200
        assert body == (site / "public" / "index.html").read_bytes()
        assert headers["Content-Type"] == "text/html; charset=utf-8"
        assert headers["Content-Length"] == str(len(body))

    def test_vhost(self, running_server):
        status, headers, body = running_server.request("GET", "/f.css", host="a.test")

        assert status == 200
        assert body == b"body{}"
        assert headers["Content-Type"] == "text/css"

    def test_unknown_host_gets_default_site(self, running_server):
        status, _, body = running_server.request("GET", "/", host="nobody.test")

        assert status == 200
        assert body == b"<h1>Default</h1>"

    def test_missing_file(self, running_server):
        status, _, body = running_server.request("GET", "/missing.html")

        assert status == 404
        assert body

    @pytest.mark.parametrize("path", ["/../secret.txt", "/%2e%2e%2fsecret.txt", "/styles/%2E%2E/%2E%2E/secret.txt"])
    def test_traversal(self, running_server, path):
        status, _, body = running_server.request("GET", path)

        assert status == 403
        assert b"top secret" not in body

    def test_post_is_405(self, running_server):
        status, headers, _ = running_server.request("POST", "/")

        assert status == 405
        assert headers["Allow"] == "GET, HEAD"

    def test_head(self, running_server, site):
        status, headers, body = running_server.request("HEAD", "/")

        assert status == 200
        assert body == b""
        assert headers["Content-Length"] == str((site / "public" / "index.html").stat().st_size)

    def test_identical_requests_identical_responses(self, running_server):
        request = b"GET /styles/site.css HTTP/1.1\r\nHost: localhost\r\nConnection: close\r\n\r\n"

        first = without_date(running_server.raw(request))
        second = without_date(running_server.raw(request))

        assert first.startswith(b"HTTP/1.1 200 OK\r\n")
        assert first == second

    def test_keep_alive(self, running_server):
        conn = running_server.connection()
        try:
            for _ in range(3):
                conn.request("GET", "/")
                response = conn.getresponse()
                assert response.status == 200
                response.read()
        finally:
            conn.close()

    def test_malformed_request_line(self, running_server):
        reply = running_server.raw(b"NONSENSE\r\n\r\n")
        assert reply.startswith(b"HTTP/1.1 400 ")

    def test_unsupported_version(self, running_server):
        reply = running_server.raw(b"GET / HTTP/3.0\r\n\r\n")
        assert reply.startswith(b"HTTP/1.1 505 ")

    def test_http10_closes(self, running_server):
        reply = running_server.raw(b"GET / HTTP/1.0\r\n\r\n")

        assert reply.startswith(b"HTTP/1.1 200 OK")
        assert b"Connection: close" in reply
        assert reply.endswith(b"<h1>Default</h1>")

    def test_concurrent_clients(self, running_server):
        results = []

        def fetch():
            results.append(running_server.request("GET", "/f.css", host="a.test")[0])

        threads = [threading.Thread(target=fetch) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(5)

        assert results == [200] * 6


class TestConfigScenario:
    """listen 9090; host 127.0.0.1; default + one vhost, end to end."""

    def test_parsed_config(self, tmp_path, free_port, server_factory):
        text = (
            "listen 9090;\n"
            "host 127.0.0.1;\n"
            f"server {{ root {tmp_path / 'pub'}; }}\n"
            f"server {{ server_name a.test; root {tmp_path / 'sites' / 'a'}; }}\n"
        )
        config = ConfigParser().parse(text)
        assert config.listen_port == 9090

        (tmp_path / "pub" / "index.html").write_text("<p>hi</p>", encoding="utf-8")
        (tmp_path / "sites" / "a" / "f.css").write_text("body{}", encoding="utf-8")

        srv = server_factory(dataclasses.replace(config, listen_port=free_port, log_level="WARNING"))

        status, headers, body = srv.request("GET", "/f.css", host="a.test")
        assert (status, body) == (200, b"body{}")
        assert headers["Content-Type"] == "text/css"

        status, headers, body = srv.request("GET", "/", host="other.test")
        assert (status, body) == (200, b"<p>hi</p>")
        assert headers["Content-Type"] == "text/html; charset=utf-8"

        status, _, _ = srv.request("GET", "/../x")
        assert status == 403


class TestLifecycle:

    def test_shutdown_returns_from_run(self, site_config):
        server = HTTPServer(site_config, configure_logging=False, shutdown_timeout=2.0)
        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        assert server.wait_until_ready(5.0)

        server.shutdown()
        server.shutdown()  # idempotent

        thread.join(10.0)
        assert not thread.is_alive()
        assert server.wait_until_stopped(0)

    def test_bind_failure_raises(self, site_config):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            port = blocker.getsockname()[1]

            config = dataclasses.replace(site_config, listen_port=port)
            with pytest.raises(OSError):
                HTTPServer(config, configure_logging=False).run()

    def test_worker_cap_answers_503(self, site_config, server_factory):
        srv = server_factory(dataclasses.replace(site_config, max_workers=1))

        # Hold the only worker with an idle connection
        with socket.create_connection(("127.0.0.1", srv.port), timeout=5) as holder:
            holder.sendall(b"GET / HTTP/1.1\r\nHost: x\r\n\r\n")
            assert holder.recv(4096).startswith(b"HTTP/1.1 200")

            reply = srv.raw(b"GET / HTTP/1.1\r\n\r\n")
            assert reply.startswith(b"HTTP/1.1 503 ")

    def test_invalid_config_is_rejected(self, site_config):
        with pytest.raises(ValueError):
            HTTPServer(dataclasses.replace(site_config, max_workers=0))


class TestTls:

    @pytest.fixture
    def tls_config(self, tmp_path) -> TlsConfig:
        return TlsConfig(enabled=True, keystore_path=tmp_path / "ssl" / "keystore.p12")

    def test_serves_over_tls(self, site_config, tls_config, tmp_path, fake_cert_tool, server_factory):
        result = CertBootstrap(tls_config, cert_tool=fake_cert_tool, ssl_dir=tmp_path / "ssl").run()
        assert result.visited[-3:] == [BootstrapState.GENERATE_SELF_SIGNED, BootstrapState.LOAD, BootstrapState.READY]

        srv = server_factory(dataclasses.replace(site_config, tls=tls_config), result.bundle)
        assert srv.server.scheme == "https"

        status, headers, body = srv.request("GET", "/f.css", host="a.test")
        assert status == 200
        assert body == b"body{}"

    def test_plain_client_on_tls_port_is_dropped(self, site_config, tls_config, tmp_path, fake_cert_tool, server_factory):
        bundle = bootstrap_tls(tls_config, cert_tool=fake_cert_tool, ssl_dir=tmp_path / "ssl")
        srv = server_factory(site_config, bundle)

        reply = srv.raw(b"GET / HTTP/1.1\r\n\r\n")
        assert not reply.startswith(b"HTTP/1.1 200")

        # Still serving TLS clients afterwards
        assert srv.request("GET", "/")[0] == 200

    def test_failed_bootstrap_falls_back_to_plain_http(self, site_config, tls_config, tmp_path, cert_tool_factory, server_factory):
        bundle = bootstrap_tls(tls_config, cert_tool=cert_tool_factory(fail_generate=True), ssl_dir=tmp_path / "ssl")
        assert bundle is None

        srv = server_factory(dataclasses.replace(site_config, tls=tls_config), bundle)

        assert srv.server.scheme == "http"
        status, _, body = srv.request("GET", "/")
        assert status == 200
        assert body == b"<h1>Default</h1>"

    def test_tls_handshake_protocol(self, site_config, tls_config, tmp_path, fake_cert_tool, server_factory):
        bundle = bootstrap_tls(tls_config, cert_tool=fake_cert_tool, ssl_dir=tmp_path / "ssl")
        srv = server_factory(site_config, bundle)

        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        with socket.create_connection(("127.0.0.1", srv.port), timeout=5) as raw:
            with context.wrap_socket(raw, server_hostname="localhost") as tls_sock:
                assert tls_sock.version() in ("TLSv1.2", "TLSv1.3")
