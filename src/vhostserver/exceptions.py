"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the server can meet falls into one of two families:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ERROR FAMILIES                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   STARTUP (recovered locally, never fatal)                          │
    │   ─────────────────────────────────────────                         │
    │   ConfigError     → defaults substituted                            │
    │   TlsSetupError   → TLS disabled, plain HTTP listener               │
    │                                                                      │
    │   PER REQUEST (converted to a status + short body)                  │
    │   ─────────────────────────────────────────────────                 │
    │   BadRequest        400   undecodable path                          │
    │   Forbidden         403   traversal attempt                         │
    │   NotFound          404   missing / non-file target                 │
    │   MethodNotAllowed  405   anything but GET / HEAD                   │
    │   InternalError     500   I/O failure while stat-ing / reading      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Request errors are raised deep in the pipeline and caught once, at the
handler boundary (see handlers/static.py). Only a failure to bind the
listening socket is allowed to take the process down.

=============================================================================
"""

from .http.status_codes import HTTPStatus


class ConfigError(Exception):
    """Configuration file could not be read or written."""


class TlsSetupError(Exception):
    """TLS key material could not be produced or loaded."""


class RequestError(Exception):
    """
    Base class for errors that end a single request.

    Each subclass pins the HTTP status it maps to, so the handler boundary
    can convert any of them without a lookup table:

        try:
            ...
        except RequestError as e:
            return error_response(e.status, method)
    """

    status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str = ""):
        super().__init__(message or self.status.phrase)
        self.message = message or self.status.phrase


class BadRequest(RequestError):
    status = HTTPStatus.BAD_REQUEST


class Forbidden(RequestError):
    status = HTTPStatus.FORBIDDEN


class NotFound(RequestError):
    status = HTTPStatus.NOT_FOUND


class MethodNotAllowed(RequestError):
    status = HTTPStatus.METHOD_NOT_ALLOWED


class InternalError(RequestError):
    status = HTTPStatus.INTERNAL_SERVER_ERROR
