"""
=============================================================================
PATH RESOLUTION
=============================================================================

Turns a request path into a file under a document root, and refuses to
turn it into anything outside that root.

=============================================================================
THE ALGORITHM
=============================================================================

    raw path            "/css/%2e%2e/%2e%2e/%2e%2e/etc/passwd"
        │
        │ 1. percent-decode (strict)          malformed → 400
        ▼
    decoded             "/css/../../../etc/passwd"
        │
        │ 2. "/" becomes "/index.html"
        │ 3. base = absolute, normalized document root
        │ 4. candidate = normalize(base + decoded[1:])
        ▼
    candidate           "/etc/passwd"
        │
        │ 5. candidate == base, or under base + "/" ?   no → 403
        │ 6. stat: regular file → found
        │          directory / missing → not found
        │          other OSError → 500
        ▼
    ResolvedFile

=============================================================================
WHY THE ORDER MATTERS
=============================================================================

Decoding happens FIRST and normalization LAST, on the joined absolute
path. Every encoding trick ("%2e%2e%2f", "..%2f", mixed case escapes)
has already been turned into plain ".." segments by the time normpath
collapses them, so the prefix check sees the path the OS would open.

The prefix check compares against base + os.sep, not base alone, so
"/srv/site" does not accept "/srv/site-private/secret".

Symbolic links inside the root are followed by stat(); the guard is about
request paths, not about what the operator links into a root.

=============================================================================
"""

import logging
import os
import re
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Union
from urllib.parse import unquote_to_bytes

from ..exceptions import BadRequest, Forbidden, InternalError


logger = logging.getLogger(__name__)


INDEX_FILE = "/index.html"

# A "%" not followed by two hex digits
_MALFORMED_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


@dataclass(frozen=True)
class ResolvedFile:
    """
    Where a request path landed.

    Only ever built after the traversal guard has passed, so whenever
    `exists` is true `absolute_path` is inside the document root.
    """

    absolute_path: Path
    exists: bool
    is_regular_file: bool

    @property
    def found(self) -> bool:
        return self.exists and self.is_regular_file


def decode_path(raw_path: str) -> str:
    """
    Strictly percent-decode a request path.

    Every "%" must start a two-digit hex escape and the decoded bytes must
    be valid UTF-8. "+" stays a "+".

    Raises:
        BadRequest: Malformed escape, invalid UTF-8, or a NUL byte.
    """
    if _MALFORMED_ESCAPE.search(raw_path):
        raise BadRequest(f"Malformed percent-escape in path: {raw_path!r}")

    # The request parser hands over the path as latin-1 text, one char per
    # wire byte; round-trip it to recover the original bytes.
    try:
        raw_bytes = raw_path.encode("latin-1")
    except UnicodeEncodeError:
        raw_bytes = raw_path.encode("utf-8")

    try:
        decoded = unquote_to_bytes(raw_bytes).decode("utf-8")
    except UnicodeDecodeError as e:
        raise BadRequest(f"Path is not valid UTF-8: {raw_path!r}") from e

    if "\x00" in decoded:
        raise BadRequest("NUL byte in path")

    return decoded


class PathResolver:
    """
    Resolves request paths against document roots.

    Stateless; one instance serves every worker thread.

    Usage:
        resolver = PathResolver()
        resolved = resolver.resolve(Path("public"), "/css/site.css")
        if resolved.found:
            data = resolved.absolute_path.read_bytes()
    """

    def resolve(self, document_root: Union[str, Path], request_path: str) -> ResolvedFile:
        """
        Resolve a raw (still percent-encoded) request path.

        Raises:
            BadRequest: The path cannot be decoded.
            Forbidden: The path escapes the document root.
            InternalError: stat() failed for a reason other than absence.
        """
        return self.resolve_decoded(document_root, decode_path(request_path))

    def resolve_decoded(self, document_root: Union[str, Path], decoded_path: str) -> ResolvedFile:
        """Resolve a path that has already been through decode_path()."""
        if decoded_path == "/":
            decoded_path = INDEX_FILE

        base = os.path.abspath(os.fspath(document_root))
        relative = decoded_path[1:] if decoded_path.startswith("/") else decoded_path
        candidate = os.path.normpath(os.path.join(base, relative))

        if not self._is_within(candidate, base):
            logger.warning(f"403 FORBIDDEN (path traversal attempt): {decoded_path}")
            raise Forbidden(f"Path escapes document root: {decoded_path}")

        try:
            st = os.stat(candidate)
        except (FileNotFoundError, NotADirectoryError):
            return ResolvedFile(Path(candidate), exists=False, is_regular_file=False)
        except OSError as e:
            logger.error(f"Error checking {candidate}: {e}")
            raise InternalError(f"Could not stat {decoded_path}") from e

        return ResolvedFile(
            Path(candidate),
            exists=True,
            is_regular_file=stat.S_ISREG(st.st_mode),
        )

    @staticmethod
    def _is_within(candidate: str, base: str) -> bool:
        if candidate == base:
            return True
        prefix = base if base.endswith(os.sep) else base + os.sep
        return candidate.startswith(prefix)
