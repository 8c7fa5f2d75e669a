"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Immutable configuration values for the server.

=============================================================================
WHERE VALUES COME FROM
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION SOURCES                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   server.conf (directive file, see config_parser.py)                │
    │      └── listen, host, server { ... } blocks, ssl*                  │
    │          → listen_host, listen_port, default_root, vhosts, tls      │
    │                                                                      │
    │   Command-line flags (see __main__.py)                              │
    │      └── --log-level, --workers                                     │
    │          → runtime tuning fields, via dataclasses.replace()         │
    │                                                                      │
    │   Defaults (in these dataclasses)                                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHY FROZEN?
=============================================================================

The configuration is built once at startup and then read concurrently by
every worker thread. Freezing the dataclass (and exposing the vhost table
through a read-only MappingProxyType) means there is no writer after
startup, so readers need no lock.

    config.listen_port = 9000        → dataclasses.FrozenInstanceError
    config.vhosts["x"] = Path("y")   → TypeError

=============================================================================
"""

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional


DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_ROOT = Path("public")
DEFAULT_KEYSTORE = Path("ssl/keystore.p12")
DEFAULT_KEYSTORE_PASSWORD = "changeit"


@dataclass(frozen=True)
class TlsConfig:
    """
    TLS settings from the ssl* directives.

    Consumed exactly once, by CertBootstrap.
    """

    enabled: bool = False
    keystore_path: Path = DEFAULT_KEYSTORE
    keystore_password: str = field(default=DEFAULT_KEYSTORE_PASSWORD, repr=False)


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    LISTENER (from server.conf)
    - listen_host, listen_port, tls

    CONTENT (from server.conf)
    - default_root, vhosts

    NETWORK TUNING
    - backlog, buffer_size, timeout

    HTTP TUNING
    - keep_alive, keep_alive_timeout, max_request_size

    CONCURRENCY
    - max_workers

    LOGGING / IDENTITY
    - log_level, server_name

    =========================================================================
    """

    listen_host: str = DEFAULT_HOST
    """
    The IP address to bind to.
    - "0.0.0.0" - All network interfaces (the default)
    - "127.0.0.1" - Localhost only
    """

    listen_port: int = DEFAULT_PORT

    default_root: Path = DEFAULT_ROOT
    """Document root for requests whose Host matches no virtual host."""

    vhosts: Mapping[str, Path] = field(default_factory=dict)
    """Lower-cased domain → document root."""

    tls: Optional[TlsConfig] = None

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK TUNING
    # ─────────────────────────────────────────────────────────────────────

    backlog: int = 128
    """Maximum number of queued connections before the OS refuses new ones."""

    buffer_size: int = 8192
    """Size of each socket recv() in bytes."""

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds for the first request on a connection."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP TUNING
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024

    # ─────────────────────────────────────────────────────────────────────
    # CONCURRENCY
    # ─────────────────────────────────────────────────────────────────────

    max_workers: int = 64
    """
    Maximum number of connections handled at once.
    Each connection gets its own worker thread; past this limit new
    connections are answered with 503 and closed.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    server_name: str = "vhostserver/1.0"

    def __post_init__(self):
        # Normalize so a config built by hand behaves like a parsed one.
        object.__setattr__(self, "default_root", Path(self.default_root))
        object.__setattr__(
            self,
            "vhosts",
            MappingProxyType({name.lower(): Path(root) for name, root in self.vhosts.items()}),
        )

    @property
    def tls_enabled(self) -> bool:
        return self.tls is not None and self.tls.enabled

    @property
    def bind_host(self) -> str:
        """The address handed to bind(); "0.0.0.0" means every interface."""
        return "" if self.listen_host == DEFAULT_HOST else self.listen_host

    @property
    def document_roots(self) -> list:
        """Every distinct document root, default first."""
        roots = [self.default_root]
        for root in self.vhosts.values():
            if root not in roots:
                roots.append(root)
        return roots

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once by HTTPServer before anything binds (fail-fast).

        Raises:
            ValueError: On the first invalid value.
        """
        if not 0 <= self.listen_port < 65536:
            raise ValueError(f"Invalid port: {self.listen_port}. Must be 0-65535.")

        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")
