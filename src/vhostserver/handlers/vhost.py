"""
=============================================================================
VIRTUAL HOST ROUTING
=============================================================================

Name-based virtual hosting: one IP, one port, many sites. The browser
says which site it wants in the Host header, and we pick the document
root from that.

    Host: A.test:8080
          ──┬─── ──┬─
            │      └── port suffix stripped
            └───────── lower-cased → "a.test"

    vhosts = {"a.test": sites/a, "b.test": sites/b}

    "a.test"    → sites/a
    "other.org" → default root
    (no Host)   → default root

Routing is total: there is no error case.

=============================================================================
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..config import ServerConfig


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutedRequest:
    """Per-request routing outcome; never shared between requests."""

    method: str
    decoded_path: str
    host_header: Optional[str]
    resolved_root: Path


def host_name(host_header: Optional[str]) -> str:
    """
    Extract the lower-cased host name from a Host header value.

        >>> host_name("Example.COM:8080")
        'example.com'
        >>> host_name("[::1]:8443")
        '[::1]'
        >>> host_name(None)
        ''
    """
    if not host_header:
        return ""
    host = host_header.strip()
    if host.startswith("["):
        # IPv6 literal: the port (if any) follows the closing bracket
        end = host.find("]")
        host = host[:end + 1] if end != -1 else host
    else:
        host = host.partition(":")[0]
    return host.lower()


class VhostRouter:
    """
    Maps a Host header to a document root.

    Args:
        config: The server configuration (read-only).
    """

    def __init__(self, config: ServerConfig):
        self._vhosts = config.vhosts
        self._default_root = config.default_root

    def route(self, host_header: Optional[str]) -> Path:
        """Document root for this Host header; the default root on a miss."""
        domain = host_name(host_header)
        root = self._vhosts.get(domain)
        if root is None:
            return self._default_root
        logger.debug(f"Using vhost: {domain} -> {root}")
        return root

    def route_request(
        self,
        method: str,
        decoded_path: str,
        host_header: Optional[str],
    ) -> RoutedRequest:
        return RoutedRequest(
            method=method,
            decoded_path=decoded_path,
            host_header=host_header,
            resolved_root=self.route(host_header),
        )
