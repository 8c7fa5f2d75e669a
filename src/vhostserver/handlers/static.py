"""
=============================================================================
STATIC SITE HANDLER
=============================================================================

Serves the bytes of existing files, read-only, for whichever virtual host
the request names.

=============================================================================
REQUEST PIPELINE
=============================================================================

    HTTPRequest
        │
        ├──► method check            not GET/HEAD → 405
        │
        ├──► decode_path()           malformed    → 400
        │
        ├──► VhostRouter.route()     Host header  → document root
        │
        ├──► PathResolver            traversal    → 403
        │                            stat failure → 500
        │
        └──► ContentResponder        not a file   → 404
                                     read failure → 500
                                     otherwise    → 200 + bytes

Every RequestError raised along the way is caught ONCE, in
StaticSiteHandler.handle(), and turned into a status with a short
plain-text body (the reason phrase). Nothing here can crash a worker.

=============================================================================
WHAT IS DELIBERATELY MISSING
=============================================================================

No ETag, Last-Modified or Cache-Control; no compression; no directory
listing; no index fallback except for "/" itself. A request for a
directory is a 404.

=============================================================================
"""

import logging
from typing import Optional

from ..config import ServerConfig
from ..exceptions import InternalError, MethodNotAllowed, NotFound, RequestError
from ..http.mime_types import get_content_type
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder
from ..http.status_codes import HTTPStatus
from .resolver import PathResolver, ResolvedFile, decode_path
from .vhost import VhostRouter


logger = logging.getLogger(__name__)


ALLOWED_METHODS = ("GET", "HEAD")


def error_response(status: HTTPStatus, method: str = "GET") -> HTTPResponse:
    """
    Plain-text error response whose body is the reason phrase.

    For HEAD the body is dropped but Content-Length still describes it.
    """
    builder = ResponseBuilder().status(status).text(status.phrase)
    if status == HTTPStatus.METHOD_NOT_ALLOWED:
        builder.header("Allow", ", ".join(ALLOWED_METHODS))
    if method == "HEAD":
        builder.without_body()
    return builder.build()


class ContentResponder:
    """Turns a ResolvedFile into a response."""

    def respond(self, resolved: ResolvedFile, method: str) -> HTTPResponse:
        """
        200 with the file's bytes.

        Raises:
            NotFound: Nothing servable was found.
            InternalError: The file was found but could not be read.
        """
        if not resolved.found:
            raise NotFound(f"No file at {resolved.absolute_path.name}")

        try:
            content = resolved.absolute_path.read_bytes()
        except OSError as e:
            logger.error(f"Error serving file {resolved.absolute_path}: {e}")
            raise InternalError(f"Could not read {resolved.absolute_path.name}") from e

        builder = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type(get_content_type(resolved.absolute_path))
            .body(content))

        if method == "HEAD":
            builder.without_body()

        return builder.build()


class StaticSiteHandler:
    """
    Request handler for the whole static site, every virtual host included.

    Usage:
        handler = StaticSiteHandler(config)
        response = handler.handle(request)

    The collaborators can be swapped for tests; by default they are built
    from the configuration.
    """

    def __init__(
        self,
        config: ServerConfig,
        router: Optional[VhostRouter] = None,
        resolver: Optional[PathResolver] = None,
        responder: Optional[ContentResponder] = None,
    ):
        self.router = router or VhostRouter(config)
        self.resolver = resolver or PathResolver()
        self.responder = responder or ContentResponder()

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Serve one request. Never raises a RequestError."""
        method = request.method
        try:
            if method not in ALLOWED_METHODS:
                raise MethodNotAllowed(f"Method not allowed: {method}")

            routed = self.router.route_request(method, decode_path(request.path), request.host)
            resolved = self.resolver.resolve_decoded(routed.resolved_root, routed.decoded_path)
            return self.responder.respond(resolved, method)

        except RequestError as e:
            logger.debug(f"{int(e.status)} {e.status.phrase}: {method} {request.path} ({e.message})")
            return error_response(e.status, method)

    __call__ = handle
