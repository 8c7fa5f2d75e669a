"""
pytest configuration and fixtures.
"""

import datetime
import http.client
import socket
import ssl
import sys
import threading
from pathlib import Path
from typing import Generator, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vhostserver import HTTPServer, ServerConfig
from vhostserver.tls import CertTool, CertToolResult, CredentialBundle, write_keystore


# =============================================================================
# KEY MATERIAL
# =============================================================================

def make_certificate(common_name: str = "localhost"):
    """Fresh RSA key and self-signed certificate, built in memory."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(common_name)]), critical=False)
        .sign(key, hashes.SHA256())
    )
    return key, certificate


@pytest.fixture(scope="session")
def key_and_cert():
    """One key pair for the whole session; RSA generation is slow."""
    return make_certificate()


class FakeCertTool(CertTool):
    """
    In-process CertTool: writes keystores with cryptography instead of
    running openssl, and records what it was asked to do.
    """

    def __init__(self, key_and_cert, fail_convert: bool = False, fail_generate: bool = False):
        self.key, self.certificate = key_and_cert
        self.fail_convert = fail_convert
        self.fail_generate = fail_generate
        self.calls = []

    def convert_pem_to_store(self, cert_path, key_path, store_path, password):
        self.calls.append(("convert", Path(cert_path), Path(key_path), Path(store_path)))
        if self.fail_convert:
            return CertToolResult(False, 1, "unable to load private key")
        write_keystore(store_path, self.key, self.certificate, password)
        return CertToolResult(True, 0)

    def generate_self_signed(self, store_path, password, *, common_name="localhost", days=365, key_size=2048):
        self.calls.append(("generate", Path(store_path)))
        if self.fail_generate:
            return CertToolResult(False, 1, "req: command failed")
        write_keystore(store_path, self.key, self.certificate, password)
        return CertToolResult(True, 0)


@pytest.fixture
def fake_cert_tool(key_and_cert) -> FakeCertTool:
    return FakeCertTool(key_and_cert)


@pytest.fixture
def cert_tool_factory(key_and_cert):
    """Build FakeCertTools with failure switches, e.g. fail_generate=True."""
    def factory(**kwargs) -> FakeCertTool:
        return FakeCertTool(key_and_cert, **kwargs)
    return factory


# =============================================================================
# SITES
# =============================================================================

@pytest.fixture
def site(tmp_path: Path) -> Path:
    """
    Two document roots:

        public/index.html   "<h1>Default</h1>"
        public/styles/site.css
        sites/a.test/f.css  "body{}"
        secret.txt          (outside every root)
    """
    public = tmp_path / "public"
    (public / "styles").mkdir(parents=True)
    (public / "index.html").write_text("<h1>Default</h1>", encoding="utf-8")
    (public / "styles" / "site.css").write_text("h1 { color: red; }", encoding="utf-8")

    vhost = tmp_path / "sites" / "a.test"
    vhost.mkdir(parents=True)
    (vhost / "f.css").write_text("body{}", encoding="utf-8")
    (vhost / "index.html").write_text("<h1>A</h1>", encoding="utf-8")

    (tmp_path / "secret.txt").write_text("top secret", encoding="utf-8")
    return tmp_path


@pytest.fixture
def site_config(site: Path) -> ServerConfig:
    return ServerConfig(
        listen_host="127.0.0.1",
        listen_port=0,
        default_root=site / "public",
        vhosts={"a.test": site / "sites" / "a.test"},
        timeout=5.0,
        max_workers=8,
        log_level="WARNING",
    )


# =============================================================================
# RUNNING SERVER
# =============================================================================

@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class RunningServer:
    """Test server helper that runs in a background thread."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self) -> "RunningServer":
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")
        return self

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=15.0)

    def connection(self) -> http.client.HTTPConnection:
        if self.server.credentials is None:
            return http.client.HTTPConnection("127.0.0.1", self.port, timeout=5)
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return http.client.HTTPSConnection("127.0.0.1", self.port, timeout=5, context=context)

    def request(self, method: str, path: str, host: Optional[str] = None):
        """One request on a fresh connection; returns (status, headers, body)."""
        conn = self.connection()
        try:
            headers = {"Host": host} if host is not None else {}
            conn.request(method, path, headers=headers)
            response = conn.getresponse()
            return response.status, dict(response.getheaders()), response.read()
        finally:
            conn.close()

    def raw(self, data: bytes) -> bytes:
        """Send raw bytes on a plain socket and read until the server closes."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=5) as sock:
            sock.sendall(data)
            chunks = []
            while True:
                try:
                    chunk = sock.recv(65536)
                except ConnectionResetError:
                    break
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)


def start_server(config: ServerConfig, credentials: Optional[CredentialBundle] = None) -> RunningServer:
    server = HTTPServer(config, credentials, configure_logging=False, shutdown_timeout=5.0)
    return RunningServer(server).start()


@pytest.fixture
def running_server(site_config: ServerConfig) -> Generator[RunningServer, None, None]:
    """Plain HTTP server over the `site` fixture on a free port."""
    srv = start_server(site_config)
    yield srv
    srv.stop()


@pytest.fixture
def server_factory() -> Generator:
    """Start servers for arbitrary configs; all are stopped at teardown."""
    started = []

    def factory(config: ServerConfig, credentials: Optional[CredentialBundle] = None) -> RunningServer:
        srv = start_server(config, credentials)
        started.append(srv)
        return srv

    yield factory

    for srv in started:
        srv.stop()
