"""
=============================================================================
TLS BOOTSTRAP
=============================================================================

Makes sure usable key material exists before the listener binds, and
turns it into a server-side ssl.SSLContext.

=============================================================================
STATE MACHINE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │                      ┌───────────┐                                  │
    │                      │ CHECK_PEM │  ssl/cert.pem + ssl/key.pem ?    │
    │                      └─────┬─────┘                                  │
    │                 yes ┌──────┴───────┐ no                             │
    │                     ▼              ▼                                 │
    │             ┌─────────────┐  ┌────────────────┐                     │
    │             │ CONVERT_PEM │  │ CHECK_KEYSTORE │  keystore exists ?  │
    │             └──────┬──────┘  └───────┬────────┘                     │
    │                    │         yes ┌───┴────────────┐ no              │
    │                    │             │                ▼                  │
    │                    │             │   ┌──────────────────────┐       │
    │                    │             │   │ GENERATE_SELF_SIGNED │       │
    │                    │             │   └──────────┬───────────┘       │
    │                    ▼             ▼              ▼                    │
    │                  ┌──────────────────────────────────┐               │
    │                  │               LOAD               │               │
    │                  └────────────────┬─────────────────┘               │
    │                                   ▼                                  │
    │                  READY(CredentialBundle)   or   FAILED(reason)      │
    │                                                                      │
    │   Any failing step jumps straight to FAILED.                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

FAILED is fatal to TLS, never to the process: the caller logs the reason
and starts a plain HTTP listener instead.

=============================================================================
"""

import logging
import secrets
import ssl
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from ..config import TlsConfig
from ..exceptions import TlsSetupError
from .certtool import CertTool, OpenSSLCertTool
from .keystore import read_keystore


logger = logging.getLogger(__name__)


DEFAULT_SSL_DIR = Path("ssl")
PEM_CERT_NAME = "cert.pem"
PEM_KEY_NAME = "key.pem"


class BootstrapState(Enum):
    CHECK_PEM = "check_pem"
    CONVERT_PEM = "convert_pem"
    CHECK_KEYSTORE = "check_keystore"
    GENERATE_SELF_SIGNED = "generate_self_signed"
    LOAD = "load"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class CredentialBundle:
    """
    Loaded TLS server credential, ready for the listener.

    Attributes:
        certificate: Leaf certificate.
        private_key: Its private key.
        chain: Any further certificates from the keystore.
        ssl_context: Server-side context loaded with all of the above.
    """

    certificate: x509.Certificate
    private_key: object = field(repr=False)
    chain: Tuple[x509.Certificate, ...]
    ssl_context: ssl.SSLContext = field(repr=False)

    @property
    def subject(self) -> str:
        return self.certificate.subject.rfc4514_string()


@dataclass
class BootstrapResult:
    """Terminal outcome of CertBootstrap.run()."""

    state: BootstrapState
    bundle: Optional[CredentialBundle] = None
    reason: str = ""
    visited: List[BootstrapState] = field(default_factory=list)

    @property
    def ready(self) -> bool:
        return self.state is BootstrapState.READY


class CertBootstrap:
    """
    Runs the TLS bootstrap state machine once.

    Usage:
        result = CertBootstrap(config.tls).run()
        if result.ready:
            context = result.bundle.ssl_context

    Args:
        tls: TLS settings from the configuration.
        cert_tool: Collaborator for the external steps. Defaults to
            OpenSSLCertTool.
        ssl_dir: Where the conventional PEM pair is looked for.
    """

    def __init__(
        self,
        tls: TlsConfig,
        cert_tool: Optional[CertTool] = None,
        ssl_dir: Union[str, Path] = DEFAULT_SSL_DIR,
    ):
        self.tls = tls
        self.cert_tool = cert_tool or OpenSSLCertTool()
        self.ssl_dir = Path(ssl_dir)
        self._bundle: Optional[CredentialBundle] = None

        self._steps: Dict[BootstrapState, Callable[[], BootstrapState]] = {
            BootstrapState.CHECK_PEM: self._check_pem,
            BootstrapState.CONVERT_PEM: self._convert_pem,
            BootstrapState.CHECK_KEYSTORE: self._check_keystore,
            BootstrapState.GENERATE_SELF_SIGNED: self._generate_self_signed,
            BootstrapState.LOAD: self._load,
        }

    @property
    def cert_pem(self) -> Path:
        return self.ssl_dir / PEM_CERT_NAME

    @property
    def key_pem(self) -> Path:
        return self.ssl_dir / PEM_KEY_NAME

    @property
    def keystore_path(self) -> Path:
        return Path(self.tls.keystore_path)

    def run(self) -> BootstrapResult:
        """
        Drive the state machine to READY or FAILED. Never raises.

        Returns:
            BootstrapResult with the bundle on READY, the reason on FAILED,
            and every state visited along the way.
        """
        if not self.tls.enabled:
            return BootstrapResult(BootstrapState.FAILED, reason="TLS is not enabled")

        visited: List[BootstrapState] = []
        state = BootstrapState.CHECK_PEM

        while state not in (BootstrapState.READY, BootstrapState.FAILED):
            visited.append(state)
            logger.debug(f"TLS bootstrap: {state.value}")
            try:
                state = self._steps[state]()
            except TlsSetupError as e:
                return self._failed(str(e), visited)
            except Exception as e:
                logger.debug(f"TLS bootstrap step {state.value} raised", exc_info=True)
                return self._failed(f"{state.value}: {e}", visited)

        visited.append(state)
        return BootstrapResult(state, bundle=self._bundle, visited=visited)

    @staticmethod
    def _failed(reason: str, visited: List[BootstrapState]) -> BootstrapResult:
        visited.append(BootstrapState.FAILED)
        logger.error(f"TLS setup failed: {reason}")
        return BootstrapResult(BootstrapState.FAILED, reason=reason, visited=visited)

    # =========================================================================
    # STEPS
    # =========================================================================
    # Each step returns the next state or raises TlsSetupError.

    def _check_pem(self) -> BootstrapState:
        if self.cert_pem.is_file() and self.key_pem.is_file():
            logger.info(f"Found PEM certificate in {self.ssl_dir}/, converting to keystore")
            return BootstrapState.CONVERT_PEM
        return BootstrapState.CHECK_KEYSTORE

    def _convert_pem(self) -> BootstrapState:
        result = self.cert_tool.convert_pem_to_store(
            self.cert_pem, self.key_pem, self.keystore_path, self.tls.keystore_password
        )
        if not result.ok:
            raise TlsSetupError(
                f"PEM conversion failed (exit status {result.returncode})"
            )
        logger.info(f"Converted PEM certificate into {self.keystore_path}")
        return BootstrapState.LOAD

    def _check_keystore(self) -> BootstrapState:
        if self.keystore_path.is_file():
            return BootstrapState.LOAD
        return BootstrapState.GENERATE_SELF_SIGNED

    def _generate_self_signed(self) -> BootstrapState:
        logger.info(f"Generating self-signed certificate into {self.keystore_path}")
        result = self.cert_tool.generate_self_signed(
            self.keystore_path, self.tls.keystore_password
        )
        if not result.ok:
            raise TlsSetupError(
                f"Self-signed certificate generation failed (exit status {result.returncode})"
            )
        logger.warning(
            "Using a self-signed certificate: browsers will not trust it. "
            f"Put a real certificate in {self.cert_pem} and {self.key_pem} for production."
        )
        return BootstrapState.LOAD

    def _load(self) -> BootstrapState:
        try:
            key, certificate, chain = read_keystore(self.keystore_path, self.tls.keystore_password)
            context = build_server_context(key, certificate, chain)
        except (OSError, ValueError, TypeError) as e:
            raise TlsSetupError(f"Could not load keystore {self.keystore_path}: {e}") from e

        self._bundle = CredentialBundle(
            certificate=certificate,
            private_key=key,
            chain=tuple(chain),
            ssl_context=context,
        )
        logger.info(f"Loaded TLS certificate for {self._bundle.subject}")
        return BootstrapState.READY


def build_server_context(private_key, certificate: x509.Certificate, chain=()) -> ssl.SSLContext:
    """
    Build a server-side SSLContext from in-memory key material.

    ssl only loads key material from files, so the PEM forms are written
    to a private temporary directory just long enough to be loaded. The
    key is encrypted there with a throwaway pass phrase.

    Raises:
        ssl.SSLError: If the key does not match the certificate.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2

    passphrase = secrets.token_hex(16).encode("ascii")
    with tempfile.TemporaryDirectory(prefix="vhostserver-tls-") as workdir:
        cert_file = Path(workdir) / "chain.pem"
        key_file = Path(workdir) / "key.pem"

        pem_chain = [certificate.public_bytes(serialization.Encoding.PEM)]
        pem_chain.extend(c.public_bytes(serialization.Encoding.PEM) for c in chain)
        cert_file.write_bytes(b"".join(pem_chain))
        key_file.write_bytes(
            private_key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.BestAvailableEncryption(passphrase),
            )
        )
        context.load_cert_chain(str(cert_file), str(key_file), password=passphrase)

    return context


def bootstrap_tls(
    tls: Optional[TlsConfig],
    cert_tool: Optional[CertTool] = None,
    ssl_dir: Union[str, Path] = DEFAULT_SSL_DIR,
) -> Optional[CredentialBundle]:
    """
    Caller-facing helper: credential bundle or None.

    Returns None without doing anything when TLS is not enabled, and None
    (after logging the reason) when bootstrap fails, so the caller can fall
    back to plain HTTP.
    """
    if tls is None or not tls.enabled:
        return None

    result = CertBootstrap(tls, cert_tool=cert_tool, ssl_dir=ssl_dir).run()
    if not result.ready:
        logger.warning(f"TLS disabled, falling back to plain HTTP: {result.reason}")
        return None
    return result.bundle
