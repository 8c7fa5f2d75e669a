"""
=============================================================================
MAIN HTTP SERVER
=============================================================================

Ties the pieces together into a running static-file server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    HTTP SERVER ARCHITECTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   HTTPServer    │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────────┐  ┌──────────────────┐   │
    │    │ SocketServer │    │ConnectionWorkers │  │StaticSiteHandler │   │
    │    │  (accept)    │    │ (thread/conn)    │  │ vhost → resolve  │   │
    │    └──────┬───────┘    └────────┬─────────┘  │   → respond      │   │
    │           │                     │            └──────────────────┘   │
    │           ▼                     ▼                                    │
    │    ┌──────────────┐    ┌──────────────────┐                         │
    │    │  Connection  │───►│ LoggingMiddleware│──► handler              │
    │    │ (TLS, reads) │    └──────────────────┘                         │
    │    └──────────────┘                                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PER-CONNECTION FLOW (worker thread)
=============================================================================

    1. TLS handshake if a credential bundle was supplied
    2. Read one request (Connection.read_request)
    3. Parse it (RequestParser)            malformed → 400 / 505, close
    4. Handler through middleware          unexpected exception → 500
    5. Send, then keep-alive or close

Errors that happen before a request reaches the handler (timeouts,
oversized requests, parse failures) are answered here with the same plain
text error bodies the handler uses.

=============================================================================
SHUTDOWN
=============================================================================

shutdown() may be called from any thread: the stdin command listener,
a signal handler, or a test. It stops the accept loop; run() then waits
for in-flight connections (bounded by shutdown_timeout) and returns.

=============================================================================
"""

import logging
import threading
from typing import Callable, Optional, Tuple

from .config import ServerConfig
from .core.connection import Connection, ConnectionState, RequestTooLarge
from .core.socket_server import SocketServer
from .core.workers import ConnectionWorkers
from .handlers.static import StaticSiteHandler, error_response
from .http.request import HTTPParseError, HTTPRequest, RequestParser
from .http.response import HTTPResponse
from .http.status_codes import HTTPStatus
from .middleware.base import MiddlewarePipeline
from .middleware.logging import LoggingMiddleware
from .tls.bootstrap import CredentialBundle


logger = logging.getLogger(__name__)


RequestHandler = Callable[[HTTPRequest], HTTPResponse]


class HTTPServer:
    """
    Static-file HTTP(S) server with name-based virtual hosts.

    Usage:
        config = load_config("server.conf")
        credentials = bootstrap_tls(config.tls)   # None → plain HTTP
        server = HTTPServer(config, credentials)
        server.run()                              # blocks until shutdown()

    Args:
        config: Immutable server configuration.
        credentials: TLS credential bundle; None serves plain HTTP.
        handler: Request handler; defaults to StaticSiteHandler(config).
        configure_logging: Call logging.basicConfig in run(). The CLI
            wants this, embedding applications usually do not.
    """

    def __init__(
        self,
        config: ServerConfig,
        credentials: Optional[CredentialBundle] = None,
        handler: Optional[RequestHandler] = None,
        configure_logging: bool = True,
        shutdown_timeout: float = 10.0,
    ):
        config.validate()

        self.config = config
        self.credentials = credentials
        self.configure_logging = configure_logging
        self.shutdown_timeout = shutdown_timeout

        self._site = handler or StaticSiteHandler(config)
        self._middleware = MiddlewarePipeline()
        self._middleware.add(LoggingMiddleware())
        self._handler: Optional[RequestHandler] = None

        self._parser = RequestParser(max_request_size=config.max_request_size)
        self._socket_server = SocketServer(config)
        self._workers = ConnectionWorkers(max_workers=config.max_workers)

        self._running = False
        self._stopped = threading.Event()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def scheme(self) -> str:
        return "https" if self.credentials is not None else "http"

    @property
    def address(self) -> Tuple[str, int]:
        """(host, port) actually bound; useful when the port was 0."""
        return self._socket_server.address

    @property
    def url(self) -> str:
        host, port = self.address
        if not host or host == "0.0.0.0":
            host = self.config.listen_host
        return f"{self.scheme}://{host}:{port}"

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Bind and serve until shutdown() (blocking).

        Raises:
            OSError: The listening socket could not be bound. This is the
                only fatal startup error.
        """
        if self.configure_logging:
            self._setup_logging()

        self._socket_server.bind()

        self._handler = self._middleware.wrap(self._site)
        self._running = True
        self._stopped.clear()
        self._print_startup_banner()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """
        Request shutdown. Idempotent and safe from any thread or a signal
        handler; run() returns once in-flight connections have finished.
        """
        if self._running:
            logger.info("Stopping server...")
        self._running = False
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def wait_until_stopped(self, timeout: Optional[float] = None) -> bool:
        return self._stopped.wait(timeout)

    def _print_startup_banner(self):
        config = self.config
        print()
        print("╔══════════════════════════════════════════════════════════════╗")
        print(f"  {config.server_name} started at {self.url}")
        print(f"  Serving files from: {config.default_root.resolve()}")
        if config.vhosts:
            print(f"  Virtual hosts configured: {len(config.vhosts)}")
            for domain, root in config.vhosts.items():
                print(f"    {domain} -> {root}")
        if self.credentials is not None:
            print(f"  TLS certificate: {self.credentials.subject}")
        print(f"  Workers: up to {config.max_workers} connections")
        print("  Type 'stop' or press Ctrl+C to shut down")
        print("╚══════════════════════════════════════════════════════════════╝")
        print()

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("vhostserver").setLevel(level)

    def _shutdown(self):
        self._running = False
        self._workers.shutdown(wait=True, timeout=self.shutdown_timeout)
        self._stopped.set()
        logger.info("Server stopped")

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Hand an accepted connection to a worker (accept thread)."""
        if self._workers.submit(self._process_connection, conn):
            return

        logger.warning(f"[{conn.id}] Worker limit reached, rejecting {conn.client_ip}")
        if self.credentials is None:
            # TLS clients are closed without a response
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE)
        conn.close()

    def _process_connection(self, conn: Connection):
        """Keep-alive loop for one connection (worker thread)."""
        with conn:
            if self.credentials is not None and not conn.start_tls(self.credentials.ssl_context):
                return

            while self._running:
                try:
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break

                    try:
                        request = self._parser.parse(raw_request, conn.address)
                    except HTTPParseError as e:
                        logger.info(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
                        self._send_error(conn, e.status_code)
                        break

                    conn.state = ConnectionState.PROCESSING
                    try:
                        response = self._handler(request)
                    except Exception as e:
                        logger.exception(f"[{conn.id}] Handler error: {e}")
                        response = error_response(HTTPStatus.INTERNAL_SERVER_ERROR, request.method)

                    keep_alive = request.is_keep_alive and self.config.keep_alive and self._running
                    if keep_alive:
                        response.headers.setdefault("Connection", "keep-alive")
                        response.headers.setdefault(
                            "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                        )
                    else:
                        response.headers["Connection"] = "close"

                    if not conn.send_response(response.to_bytes(self.config.server_name)):
                        break

                    if not keep_alive:
                        break
                    conn.set_keep_alive()

                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
                    break

                except RequestTooLarge as e:
                    logger.info(f"[{conn.id}] {e}")
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE)
                    break

                except Exception as e:
                    logger.exception(f"[{conn.id}] Connection error: {e}")
                    break

    def _send_error(self, conn: Connection, status: HTTPStatus):
        """Error response for failures outside the handler; always closes."""
        response = error_response(status)
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))
