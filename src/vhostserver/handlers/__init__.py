"""
=============================================================================
REQUEST HANDLERS
=============================================================================

The per-request pipeline, leaves first:

    vhost.py     VhostRouter       Host header → document root
    resolver.py  PathResolver      request path → ResolvedFile (traversal-safe)
    static.py    ContentResponder  ResolvedFile → HTTPResponse
                 StaticSiteHandler all of the above, errors → status codes

    from vhostserver.handlers import StaticSiteHandler

    handler = StaticSiteHandler(config)
    response = handler.handle(request)

=============================================================================
"""

from .vhost import VhostRouter, RoutedRequest, host_name
from .resolver import PathResolver, ResolvedFile, decode_path
from .static import ContentResponder, StaticSiteHandler, error_response, ALLOWED_METHODS

__all__ = [
    "VhostRouter",
    "RoutedRequest",
    "host_name",
    "PathResolver",
    "ResolvedFile",
    "decode_path",
    "ContentResponder",
    "StaticSiteHandler",
    "error_response",
    "ALLOWED_METHODS",
]
