"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

Networking plumbing underneath the HTTP layer:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  SocketServer       listening socket, accept loop, signal handling  │
    └─────────────────────────────────────────────────────────────────────┘
                                    │ accepted Connection
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  ConnectionWorkers  one thread per connection, capped               │
    └─────────────────────────────────────────────────────────────────────┘
                                    │ worker thread
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  Connection         TLS handshake, buffered reads, keep-alive       │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState, RequestTooLarge
from .socket_server import SocketServer
from .workers import ConnectionWorkers

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "RequestTooLarge",
    "ConnectionWorkers",
]
