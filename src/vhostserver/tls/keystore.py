"""
=============================================================================
PKCS#12 KEYSTORE HELPERS
=============================================================================

The keystore is a password-protected PKCS#12 (.p12) file holding one
private key, its certificate and optionally the rest of the chain.

    ┌──────────────────────────────┐
    │  keystore.p12  (password)    │
    │  ├── private key             │
    │  ├── certificate             │
    │  └── chain certificates...   │
    └──────────────────────────────┘

Python's ssl module cannot read PKCS#12 directly; `cryptography` does the
(de)serialization and ssl only ever sees PEM.

=============================================================================
"""

import os
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12


KEYSTORE_ALIAS = b"server"


def _password_bytes(password: str) -> Optional[bytes]:
    return password.encode("utf-8") if password else None


def write_keystore(
    path: Union[str, Path],
    private_key,
    certificate: x509.Certificate,
    password: str,
    chain: Sequence[x509.Certificate] = (),
) -> None:
    """
    Serialize key + certificate(s) into a PKCS#12 file.

    The file is written next to its final location and moved into place,
    so a reader never sees a half-written keystore.
    """
    path = Path(path)
    secret = _password_bytes(password)
    encryption = (
        serialization.BestAvailableEncryption(secret)
        if secret
        else serialization.NoEncryption()
    )
    data = pkcs12.serialize_key_and_certificates(
        KEYSTORE_ALIAS, private_key, certificate, list(chain) or None, encryption
    )

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def read_keystore(path: Union[str, Path], password: str) -> Tuple[object, x509.Certificate, list]:
    """
    Read a PKCS#12 file.

    Returns:
        (private_key, certificate, chain)

    Raises:
        OSError: File missing or unreadable.
        ValueError: Wrong password, corrupt data, or no key / certificate.
    """
    data = Path(path).read_bytes()
    key, certificate, chain = pkcs12.load_key_and_certificates(data, _password_bytes(password))
    if key is None or certificate is None:
        raise ValueError("keystore holds no private key or no certificate")
    return key, certificate, list(chain)
