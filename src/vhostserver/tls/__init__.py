"""
TLS key material: keystore I/O, the external certificate tool, and the
bootstrap state machine that ties them together.
"""

from .bootstrap import (
    BootstrapResult,
    BootstrapState,
    CertBootstrap,
    CredentialBundle,
    bootstrap_tls,
    build_server_context,
)
from .certtool import CertTool, CertToolResult, OpenSSLCertTool
from .keystore import read_keystore, write_keystore

__all__ = [
    "BootstrapResult",
    "BootstrapState",
    "CertBootstrap",
    "CredentialBundle",
    "bootstrap_tls",
    "build_server_context",
    "CertTool",
    "CertToolResult",
    "OpenSSLCertTool",
    "read_keystore",
    "write_keystore",
]
