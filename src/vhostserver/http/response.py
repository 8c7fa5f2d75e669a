"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTP/1.1 responses with proper formatting per RFC 9112.

=============================================================================
HTTP RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP RESPONSE STRUCTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    HTTP/1.1 200 OK\r\n                    ← status line             │
    │    Content-Type: text/css\r\n             ← headers                 │
    │    Content-Length: 6\r\n                                            │
    │    Date: Sun, 18 Oct 2026 12:00:00 GMT\r\n                          │
    │    Server: vhostserver/1.0\r\n                                      │
    │    \r\n                                   ← empty line              │
    │    body{}                                 ← body bytes              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
HEAD REQUESTS
=============================================================================

A HEAD response carries exactly the headers a GET would, including the
Content-Length of the body it does NOT send. That is why Content-Length
is only auto-filled when the caller has not set it explicitly:

    GET  /app.js  →  Content-Length: 1432   + 1432 body bytes
    HEAD /app.js  →  Content-Length: 1432   + no body

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Union

from .status_codes import HTTPStatus


DEFAULT_SERVER_NAME = "vhostserver/1.0"


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

    This is a simple data container that holds the response components.
    Use ResponseBuilder for a more convenient way to construct responses.

        Handler returns          to_bytes()              Socket sends
        HTTPResponse    ─────►   serializes    ─────►    raw bytes
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """
        Get the HTTP status line.

        Format: HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE
        Example: "HTTP/1.1 200 OK"
        """
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def content_length(self) -> int:
        """Declared length: the explicit header if set, else the body size."""
        return int(self.headers.get("Content-Length", len(self.body)))

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a response header. Returns self for method chaining."""
        self.headers[name] = value
        return self

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Serialize the response to bytes for sending over socket.

        Content-Length, Date and Server are added when missing. The header
        dict itself is left untouched so a response can be serialized twice
        with identical results (apart from Date).

        Args:
            server_name: Server identifier for Server header.

        Returns:
            Complete HTTP response as bytes ready for socket.sendall()
        """
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("latin-1") + b"\r\n"
        return header_bytes + self.body


class ResponseBuilder:
    """
    Fluent builder for constructing HTTP responses.

    Each method returns `self`, enabling chaining:

        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type("text/css")
            .body(b"body{}")
            .build())
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    # =========================================================================
    # STATUS / HEADERS
    # =========================================================================

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    # =========================================================================
    # BODY
    # =========================================================================

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """
        Set the response body.

        Strings are encoded to UTF-8 bytes.
        """
        if isinstance(body, str):
            body = body.encode("utf-8")
        self._body = body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        """Set a plain text body."""
        self.content_type(content_type)
        return self.body(text)

    def without_body(self) -> "ResponseBuilder":
        """
        Drop the body but keep its length in Content-Length.

        Used for HEAD: the client learns the size without the bytes.
        """
        self._headers["Content-Length"] = str(len(self._body))
        self._body = b""
        return self

    # =========================================================================
    # CONNECTION
    # =========================================================================

    def keep_alive(self, timeout: int = 5) -> "ResponseBuilder":
        self._headers["Connection"] = "keep-alive"
        self._headers["Keep-Alive"] = f"timeout={timeout}"
        return self

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        """Build and return the HTTPResponse object."""
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
        )


def format_http_date(dt: datetime) -> str:
    """
    Format datetime as HTTP-date (RFC 9110 IMF-fixdate).

        Sun, 18 Oct 2026 12:00:00 GMT

    Day and month names are spelled out here rather than taken from
    strftime, which follows the process locale.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )
