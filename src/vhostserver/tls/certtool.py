"""
=============================================================================
CERTIFICATE TOOL
=============================================================================

The two external steps CertBootstrap may need, behind one interface:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         CertTool                                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   convert_pem_to_store(cert.pem, key.pem, keystore, password)      │
    │       └── openssl pkcs12 -export ...                                │
    │                                                                      │
    │   generate_self_signed(keystore, password)                          │
    │       └── openssl req -x509 -newkey rsa:2048 -days 365              │
    │           -subj /CN=localhost ...                                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Each step runs exactly ONE external process. Its exit code is the only
success signal; stdout and stderr are relayed to the log so the operator
can see what openssl said.

The keystore password never appears on the command line (where `ps`
would show it): it is handed to openssl through the child's environment
with the `env:` pass-phrase source.

Tests substitute a fake CertTool; the state machine only talks to this
interface.

=============================================================================
"""

import logging
import os
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from .keystore import write_keystore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CertToolResult:
    """Outcome of one external step."""

    ok: bool
    returncode: int
    output: str = ""


class CertTool(ABC):
    """Interface for producing a keystore."""

    @abstractmethod
    def convert_pem_to_store(
        self,
        cert_path: Path,
        key_path: Path,
        store_path: Path,
        password: str,
    ) -> CertToolResult:
        """Package a PEM certificate + private key into the keystore."""

    @abstractmethod
    def generate_self_signed(
        self,
        store_path: Path,
        password: str,
        *,
        common_name: str = "localhost",
        days: int = 365,
        key_size: int = 2048,
    ) -> CertToolResult:
        """Create a self-signed RSA certificate directly into the keystore."""


class OpenSSLCertTool(CertTool):
    """
    CertTool backed by the `openssl` command-line binary.

    Args:
        openssl: Name or path of the binary.
    """

    PASSWORD_ENV = "VHOSTSERVER_KEYSTORE_PASSWORD"

    def __init__(self, openssl: str = "openssl"):
        self.openssl = openssl

    def convert_pem_to_store(
        self,
        cert_path: Path,
        key_path: Path,
        store_path: Path,
        password: str,
    ) -> CertToolResult:
        store_path = Path(store_path)
        store_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = store_path.with_name(store_path.name + ".tmp")

        # AES/SHA-256 explicitly: OpenSSL 1.1 still defaults to RC2, which
        # current builds can no longer read back.
        args = [
            "pkcs12", "-export",
            "-in", str(cert_path),
            "-inkey", str(key_path),
            "-out", str(tmp_path),
            "-name", "server",
            "-keypbe", "AES-256-CBC",
            "-certpbe", "AES-256-CBC",
            "-macalg", "sha256",
            "-passout", f"env:{self.PASSWORD_ENV}" if password else "pass:",
        ]
        try:
            result = self._run(args, password)
            if result.ok:
                os.replace(tmp_path, store_path)
            return result
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    def generate_self_signed(
        self,
        store_path: Path,
        password: str,
        *,
        common_name: str = "localhost",
        days: int = 365,
        key_size: int = 2048,
    ) -> CertToolResult:
        store_path = Path(store_path)
        store_path.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix="vhostserver-cert-") as workdir:
            key_file = Path(workdir) / "key.pem"
            cert_file = Path(workdir) / "cert.pem"
            args = [
                "req", "-x509",
                "-newkey", f"rsa:{key_size}",
                "-keyout", str(key_file),
                "-out", str(cert_file),
                "-days", str(days),
                "-nodes",
                "-subj", f"/CN={common_name}",
            ]
            result = self._run(args)
            if not result.ok:
                return result

            # The PEM pair only lives inside workdir, which is removed on exit
            try:
                key = serialization.load_pem_private_key(key_file.read_bytes(), password=None)
                certificate = x509.load_pem_x509_certificate(cert_file.read_bytes())
                write_keystore(store_path, key, certificate, password)
            except (OSError, ValueError) as e:
                logger.error(f"Could not package generated certificate: {e}")
                return CertToolResult(False, 1, f"{result.output}\n{e}".strip())

        return result

    def _run(self, args: List[str], password: Optional[str] = None) -> CertToolResult:
        """Run openssl once; relay its output to the log."""
        command = [self.openssl, *args]
        env = dict(os.environ)
        if password is not None:
            env[self.PASSWORD_ENV] = password

        logger.info(f"Running: {' '.join(command[:3])} ...")
        try:
            completed = subprocess.run(
                command,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                env=env,
                check=False,
            )
        except OSError as e:
            logger.error(f"Could not run {self.openssl}: {e}")
            return CertToolResult(False, 127, str(e))

        output = "\n".join(part.strip() for part in (completed.stdout, completed.stderr) if part.strip())
        for line in output.splitlines():
            logger.info(f"[openssl] {line}")

        if completed.returncode != 0:
            logger.error(f"{self.openssl} {args[0]} exited with status {completed.returncode}")

        return CertToolResult(completed.returncode == 0, completed.returncode, output)
