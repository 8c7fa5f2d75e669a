"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One log line per request, in (roughly) Apache common log format:

    127.0.0.1 - - [18/Oct/2026:12:00:00 +0000] "GET /f.css" a.test 200 6 0.41ms

    client    timestamp                       request     host   status bytes duration

The access log goes to its own logger, "vhostserver.access", so operators
can route or silence it separately:

    logging.getLogger("vhostserver.access").setLevel(logging.WARNING)

Error responses (4xx / 5xx) are logged one level higher than successes
unless a fixed level is requested.

=============================================================================
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from ..handlers.vhost import host_name
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from .base import Middleware, NextHandler


logger = logging.getLogger("vhostserver.access")


@dataclass
class RequestLog:
    """Structured access log entry."""

    method: str
    path: str
    host: str
    client_ip: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_text(self) -> str:
        return (
            f'{self.client_ip or "-"} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.host or "-"} {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Should be FIRST in the pipeline so its timing covers everything.

    Args:
        log_level: Fixed level for every line. When None, successes log at
            INFO and error statuses at WARNING.
    """

    def __init__(self, log_level: Optional[int] = None):
        self.log_level = log_level

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        start_time = time.perf_counter()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        entry = RequestLog(
            method=request.method,
            path=request.path,
            host=host_name(request.host),
            client_ip=request.client_address[0] if request.client_address else "",
            status_code=int(response.status),
            content_length=response.content_length,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        level = self.log_level
        if level is None:
            level = logging.WARNING if response.status.is_error else logging.INFO
        logger.log(level, entry.to_text())

        return response
