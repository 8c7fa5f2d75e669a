"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Everything that knows about HTTP/1.1 wire format and nothing about files
or virtual hosts:

    request.py       raw bytes  → HTTPRequest
    response.py      HTTPResponse → raw bytes (plus a fluent builder)
    status_codes.py  the status codes this server emits
    mime_types.py    file extension → Content-Type

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import HTTPResponse, ResponseBuilder, format_http_date
from .status_codes import HTTPStatus
from .mime_types import MIME_TYPES, get_content_type

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",
    "HTTPResponse",
    "ResponseBuilder",
    "format_http_date",
    "HTTPStatus",
    "MIME_TYPES",
    "get_content_type",
]
