"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted client socket: optional TLS handshake, buffered reads
of complete HTTP requests, sends, and an orderly close.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Lifecycle                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   NEW ──► HANDSHAKE ──► READING ──► PROCESSING ──► WRITING          │
    │   (TLS only)  │            ▲                          │              │
    │               │            └──── KEEP_ALIVE ◄─────────┤              │
    │               │                                       │              │
    │               └───────────► CLOSING ──► CLOSED ◄──────┘              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The TLS handshake runs here, in the worker thread, rather than in the
accept loop: a client that stalls mid-handshake only ties up its own
worker.

=============================================================================
"""

import logging
import socket
import ssl
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


logger = logging.getLogger(__name__)


class RequestTooLarge(ValueError):
    """Buffered request data exceeded max_request_size."""


class ConnectionState(Enum):
    """Connection lifecycle states (for logging and debugging)."""

    NEW = "new"
    HANDSHAKE = "handshake"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    Represents a client connection.

    Attributes:
        socket: The client socket (replaced by an SSLSocket after start_tls).
        address: Client's (ip, port) tuple.
        id: Short connection identifier for log lines.
        state: Current connection state.
        requests_handled: Number of requests read on this connection.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    # =========================================================================
    # TLS
    # =========================================================================

    def start_tls(self, context: ssl.SSLContext) -> bool:
        """
        Perform the server side of the TLS handshake.

        Returns:
            True on success. False if the handshake failed (plain-HTTP
            client on the TLS port, protocol mismatch, timeout); the
            connection should then be closed.
        """
        self.state = ConnectionState.HANDSHAKE
        try:
            self.socket = context.wrap_socket(self.socket, server_side=True)
        except (ssl.SSLError, OSError) as e:
            logger.info(f"[{self.id}] TLS handshake with {self.client_ip} failed: {e}")
            return False
        return True

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request from the socket.

            1. recv() until the header terminator \\r\\n\\r\\n arrives
            2. Read Content-Length more bytes for the body
            3. Keep anything after that in the buffer (pipelining)

        Subsequent requests on a keep-alive connection use the shorter
        keep_alive_timeout.

        Returns:
            Complete request bytes, or None if the client closed the
            connection (or went idle on keep-alive).

        Raises:
            TimeoutError: The first request never arrived in full.
            RequestTooLarge: The request exceeded max_request_size.
        """
        self.state = ConnectionState.READING

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk
                if len(self._buffer) > self.max_request_size:
                    raise RequestTooLarge(f"Request too large: {len(self._buffer)} bytes")

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            if body_start + content_length > self.max_request_size:
                raise RequestTooLarge(f"Request too large: {body_start + content_length} bytes")

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break
                self._buffer += chunk

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            return request_data

        except socket.timeout:
            if self.requests_handled > 0:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            if self.state != ConnectionState.CLOSED:
                self.socket.settimeout(self.timeout)

    def _recv(self) -> bytes:
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError, ssl.SSLError):
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        """Content-Length from raw header bytes, 0 if absent or invalid."""
        header_str = headers.decode("latin-1").lower()
        for line in header_str.split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return max(0, int(line.split(":", 1)[1].strip()))
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send response bytes with sendall().

        Returns:
            True if sent, False if the client went away.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection: FIN, drain briefly, release the descriptor.
        Safe to call more than once.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # peer already gone

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
