"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes of one request into an HTTPRequest.

    b"GET /css/site.css?v=2 HTTP/1.1\r\n"          HTTPRequest(
    b"Host: a.test:8080\r\n"             ──parse──►   method="GET",
    b"\r\n"                                            path="/css/site.css",
                                                       headers={"host": ...},
                                                   )

=============================================================================
WHAT THIS PARSER DOES NOT DO
=============================================================================

It does NOT percent-decode the path and does NOT look for "..". Both are
the job of the PathResolver, which decodes, joins and normalizes in one
place so the traversal guard sees the final, canonical path. Decoding here
as well would let "%252e%252e" turn into ".." on the second pass.

It also accepts any syntactically valid method token. Deciding that only
GET and HEAD are served belongs to the handler, which answers 405.

=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import urlsplit

from .status_codes import HTTPStatus


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed.

    Carries the status code the server should answer with:
        400 - Malformed request line / headers
        413 - Request too large
        505 - Unsupported HTTP version
    """

    def __init__(self, message: str, status_code: HTTPStatus = HTTPStatus.BAD_REQUEST):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method: Request method, e.g. "GET".
        path: Raw (still percent-encoded) path without the query string.
        version: "HTTP/1.0" or "HTTP/1.1".
        headers: Header names lower-cased.
        query: Raw query string (unused by the static pipeline, kept for logs).
        body: Request body bytes.
        client_address: (ip, port) of the peer.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query: str = ""
    body: bytes = b""
    client_address: tuple = ("", 0)

    @property
    def host(self) -> Optional[str]:
        """The Host header, or None when the client sent none."""
        return self.headers.get("host")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        Should the connection stay open after this request?

            HTTP/1.1: keep-alive unless "Connection: close"
            HTTP/1.0: close unless "Connection: keep-alive"
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Get a header value (case-insensitive)."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses raw HTTP/1.x request bytes.

    Parsing steps:

        1. Size check
        2. Split head / body at the first \\r\\n\\r\\n
        3. Request line  → method, target, version
        4. Header lines  → lower-cased dict
        5. Body          → exactly Content-Length bytes
    """

    REQUEST_LINE_PATTERN = re.compile(r"^([!#$%&'*+.^_`|~0-9A-Za-z-]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: tuple = ("", 0)) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=HTTPStatus.PAYLOAD_TOO_LARGE,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        # Request heads are ASCII on the wire; latin-1 never fails and keeps
        # every byte, so odd bytes in the target survive until the resolver.
        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        if not lines or not lines[0]:
            raise HTTPParseError("Empty request")

        method, path, query, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query=query,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple:
        """
        Parse "METHOD SP REQUEST-TARGET SP HTTP-VERSION".

        The target may be origin-form ("/a/b?x=1") or absolute-form
        ("http://host/a/b"); only the path and query are kept.
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=HTTPStatus.HTTP_VERSION_NOT_SUPPORTED,
            )

        if target.startswith("/"):
            path, _, query = target.partition("?")
        else:
            parts = urlsplit(target)
            if not parts.scheme:
                raise HTTPParseError(f"Invalid request target: {target!r}")
            path, query = parts.path, parts.query

        return method, path or "/", query, version

    def _parse_headers(self, lines: list) -> Dict[str, str]:
        """
        Parse header lines into a dict with lower-cased names.

        Repeated headers are joined with ", ". Lines that do not look like
        "Name: value" are skipped (lenient parsing).
        """
        headers: Dict[str, str] = {}

        for line in lines:
            if not line:
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(data: bytes, client_address: tuple = ("", 0)) -> HTTPRequest:
    """Convenience function to parse an HTTP request in one call."""
    return RequestParser().parse(data, client_address)
