"""
=============================================================================
VHOSTSERVER - Static File HTTP(S) Server With Virtual Hosts
=============================================================================

A small read-only web server on raw Python sockets:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   server.conf ──► ConfigParser ──► ServerConfig (immutable)         │
    │                                        │                             │
    │                     ssl on? ──► CertBootstrap ──► CredentialBundle   │
    │                                        │                             │
    │   client ──► SocketServer ──► worker ──► StaticSiteHandler          │
    │                                          │                           │
    │                       VhostRouter ──► PathResolver ──► Responder     │
    │                       (Host → root)   (traversal guard) (MIME, 200)  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    vhostserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m vhostserver)
    ├── server.py            # HTTPServer: wiring, run(), shutdown()
    ├── config.py            # ServerConfig / TlsConfig dataclasses
    ├── config_parser.py     # nginx-style directive file → ServerConfig
    ├── control.py           # stdin "stop" command listener
    ├── exceptions.py        # ConfigError, TlsSetupError, RequestError family
    ├── core/                # socket server, connection, worker threads
    ├── http/                # request parser, response builder, statuses, MIME
    ├── middleware/          # pipeline + access logging
    ├── handlers/            # vhost routing, path resolution, static responses
    └── tls/                 # keystore, openssl tool, certificate bootstrap

=============================================================================
QUICK START
=============================================================================

    from vhostserver import HTTPServer, bootstrap_tls, load_config

    config = load_config("server.conf")
    server = HTTPServer(config, bootstrap_tls(config.tls))
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig, TlsConfig
from .config_parser import ConfigParser, load_config
from .exceptions import ConfigError, RequestError, TlsSetupError
from .server import HTTPServer
from .tls import CertBootstrap, CredentialBundle, bootstrap_tls

__all__ = [
    "__version__",
    "HTTPServer",
    "ServerConfig",
    "TlsConfig",
    "ConfigParser",
    "load_config",
    "CertBootstrap",
    "CredentialBundle",
    "bootstrap_tls",
    "ConfigError",
    "RequestError",
    "TlsSetupError",
]
