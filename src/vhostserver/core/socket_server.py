"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

Owns the listening socket: create, bind, listen, accept in a loop, and
stop cleanly when asked.

    ┌───────────────────────┐
    │   Listening Socket    │ ◄── bound once to host:port
    └───────────┬───────────┘
                │ accept()
        ┌───────┼───────┐
        ▼       ▼       ▼
     client  client  client   ──► Connection ──► handler callback

=============================================================================
SHUTDOWN
=============================================================================

accept() runs with a 1-second timeout so the loop can notice that
shutdown() was called (from the stdin command listener, a signal handler
or a test) without any cross-thread socket tricks:

    while running:
        try:
            accept()        # at most 1 second
        except timeout:
            continue        # re-check running

SIGINT / SIGTERM handlers are only installed when start() runs on the
main thread; Python does not allow them anywhere else.

=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP socket server.

    Usage:
        server = SocketServer(config)
        server.start(handle_connection)  # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._ready_event = threading.Event()
        self._original_handlers: dict = {}
        self._bound_address: Optional[Tuple[str, int]] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); the configured pair before binding."""
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.listen_host, self.config.listen_port)

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.listen_host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        # Rebind immediately after a restart despite TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        sock.settimeout(1.0)
        return sock

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def bind(self) -> Tuple[str, int]:
        """
        Create, bind and listen.

        Separate from start() so the caller learns about a bind failure
        (the one fatal startup error) before anything else happens.

        Raises:
            OSError: Address in use, permission denied, bad address.
        """
        self._socket = self._create_socket()
        try:
            self._socket.bind((self.config.bind_host, self.config.listen_port))
        except OSError as e:
            logger.error(
                f"Failed to bind to {self.config.listen_host}:{self.config.listen_port}: {e}"
            )
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        host, port = self._socket.getsockname()[:2]
        self._bound_address = (host, port)
        return self._bound_address

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown(). Binds first if bind() was not
        called yet.

        Args:
            connection_handler: Called with every accepted Connection.
        """
        if self._socket is None:
            self.bind()

        self._running = True
        self._setup_signals()

        host, port = self.address
        logger.info(f"Server listening on {host or '0.0.0.0'}:{port}")
        self._ready_event.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )
            connection_handler(conn)

    def shutdown(self):
        """
        Stop accepting connections. Idempotent, callable from any thread.
        """
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._ready_event.clear()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop is running. Used by tests."""
        return self._ready_event.wait(timeout)
