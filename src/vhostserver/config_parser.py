"""
=============================================================================
DIRECTIVE FILE PARSER
=============================================================================

Reads the nginx-style server.conf into an immutable ServerConfig.

=============================================================================
THE DIRECTIVE LANGUAGE
=============================================================================

    # comment
    listen 8080;
    host 0.0.0.0;

    ssl on;
    ssl_keystore ssl/keystore.p12;
    ssl_keystore_password changeit;

    # no server_name: default root
    server {
        root public;
    }

    # virtual host(s)
    server {
        server_name a.test www.a.test;
        root sites/a;
    }

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    BLOCK CLOSE RULES                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   server_name + root   → every name (lower-cased) maps to root      │
    │   root only            → becomes the default root (last one wins)   │
    │   server_name only     → discarded                                   │
    │   neither              → discarded                                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
TOLERANCE OVER STRICTNESS
=============================================================================

The parser never rejects a file. Unknown directives, a non-numeric port,
a stray "}" or an unterminated block are logged and skipped; everything
else in the file still applies. Only an unreadable file falls back to the
built-in defaults wholesale (0.0.0.0:8080, root "public").

Lines are processed one at a time, but a line may carry several
statements: it is split after every ";", "{" and "}". These two files are
equivalent:

    listen 9090; host 127.0.0.1; server { root public; }

    listen 9090;
    host 127.0.0.1;
    server {
        root public;
    }

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from .config import (
    DEFAULT_HOST,
    DEFAULT_KEYSTORE,
    DEFAULT_KEYSTORE_PASSWORD,
    DEFAULT_PORT,
    DEFAULT_ROOT,
    ServerConfig,
    TlsConfig,
)
from .exceptions import ConfigError


logger = logging.getLogger(__name__)


DEFAULT_CONFIG_FILE = Path("server.conf")

DEFAULT_CONFIG_TEXT = """\
# Simple Web Server Configuration

listen 8080;
host 0.0.0.0;

# TLS (uncomment to enable)
# ssl on;
# ssl_keystore ssl/keystore.p12;
# ssl_keystore_password changeit;

# Default server
server {
    root public;
}

# Virtual hosts
# server {
#     server_name example.com www.example.com;
#     root sites/example.com;
# }
"""

_SSL_ON = ("on", "true")
_SSL_OFF = ("off", "false")

# Statement kinds produced by _split_statements()
_DIRECTIVE = "directive"
_OPEN = "open"
_CLOSE = "close"


@dataclass
class _ServerBlock:
    """A server { ... } block while it is still open."""

    names: List[str] = field(default_factory=list)
    root: Optional[Path] = None


@dataclass
class _ParseState:
    listen_host: str = DEFAULT_HOST
    listen_port: int = DEFAULT_PORT
    default_root: Path = DEFAULT_ROOT
    vhosts: dict = field(default_factory=dict)
    tls: Optional[dict] = None
    block: Optional[_ServerBlock] = None

    def tls_settings(self) -> dict:
        # Any ssl* directive brings a TlsConfig into existence
        if self.tls is None:
            self.tls = {}
        return self.tls


def _split_statements(line: str) -> Iterator[Tuple[str, str]]:
    """
    Split one trimmed line into (kind, text) statements.

        "server { root public; }"
            → ("open", "server"), ("directive", "root public"), ("close", "")

    Text left over after the last terminator is still a directive, so
    "listen 8080" without a semicolon works.
    """
    current = []
    for char in line:
        if char == ";":
            yield _DIRECTIVE, "".join(current).strip()
            current = []
        elif char == "{":
            yield _OPEN, "".join(current).strip()
            current = []
        elif char == "}":
            text = "".join(current).strip()
            if text:
                yield _DIRECTIVE, text
            yield _CLOSE, ""
            current = []
        else:
            current.append(char)

    text = "".join(current).strip()
    if text:
        yield _DIRECTIVE, text


class ConfigParser:
    """
    Parses directive text into a ServerConfig.

    Usage:
        parser = ConfigParser()
        config = parser.parse(Path("server.conf").read_text())

    Args:
        create_directories: Create every missing document root (and its
            parents) before returning. On by default; tests that only
            inspect the parsed values turn it off.
    """

    def __init__(self, create_directories: bool = True):
        self.create_directories = create_directories

    def parse(self, text: str) -> ServerConfig:
        """
        Parse directive text. Never raises on bad content.

        Args:
            text: Full contents of the configuration file.

        Returns:
            The immutable configuration.
        """
        state = _ParseState()

        for lineno, raw_line in enumerate(text.splitlines(), start=1):
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue

            for kind, statement in _split_statements(line):
                if statement.startswith("#"):
                    break  # trailing comment: rest of the line is ignored
                if kind == _OPEN:
                    self._open_block(state, statement, lineno)
                elif kind == _CLOSE:
                    self._close_block(state)
                elif statement:
                    self._apply_directive(state, statement, lineno)

        if state.block is not None:
            logger.warning("Unterminated server block at end of config; discarded")

        config = ServerConfig(
            listen_host=state.listen_host,
            listen_port=state.listen_port,
            default_root=state.default_root,
            vhosts=state.vhosts,
            tls=self._build_tls(state.tls),
        )

        if self.create_directories:
            ensure_document_roots(config)

        return config

    # =========================================================================
    # BLOCKS
    # =========================================================================

    def _open_block(self, state: _ParseState, statement: str, lineno: int) -> None:
        if statement == "server":
            # A second "server {" inside an open block restarts it
            state.block = _ServerBlock()
        else:
            logger.debug(f"Line {lineno}: ignoring unknown block {statement!r}")

    def _close_block(self, state: _ParseState) -> None:
        block = state.block
        if block is None:
            return  # stray "}"

        state.block = None

        if block.names and block.root is not None:
            for name in block.names:
                state.vhosts[name.lower()] = block.root
        elif block.root is not None:
            state.default_root = block.root
        else:
            logger.debug(f"Discarding server block without root (server_name={block.names})")

    # =========================================================================
    # DIRECTIVES
    # =========================================================================

    def _apply_directive(self, state: _ParseState, statement: str, lineno: int) -> None:
        parts = statement.split(None, 1)
        keyword = parts[0]
        value = parts[1].strip() if len(parts) > 1 else ""

        if not value:
            logger.debug(f"Line {lineno}: ignoring directive without a value: {statement!r}")
            return

        if keyword == "listen":
            self._apply_listen(state, value, lineno)

        elif keyword == "host":
            state.listen_host = value

        elif keyword == "ssl":
            flag = value.lower()
            if flag in _SSL_ON:
                state.tls_settings()["enabled"] = True
            elif flag in _SSL_OFF:
                state.tls_settings()["enabled"] = False
            else:
                logger.warning(f"Line {lineno}: ignoring ssl value {value!r} (expected on/off)")

        elif keyword == "ssl_keystore":
            state.tls_settings()["keystore_path"] = Path(value)

        elif keyword == "ssl_keystore_password":
            state.tls_settings()["keystore_password"] = value

        elif keyword == "server_name" and state.block is not None:
            state.block.names = value.split()

        elif keyword == "root" and state.block is not None:
            if "\x00" in value:
                logger.warning(f"Line {lineno}: ignoring root containing a NUL character")
                return
            state.block.root = Path(value)

        else:
            logger.debug(f"Line {lineno}: ignoring directive {statement!r}")

    def _apply_listen(self, state: _ParseState, value: str, lineno: int) -> None:
        try:
            port = int(value)
        except ValueError:
            logger.warning(f"Line {lineno}: ignoring invalid listen port {value!r}")
            return

        if not 0 < port < 65536:
            logger.warning(f"Line {lineno}: ignoring out-of-range listen port {port}")
            return

        state.listen_port = port

    @staticmethod
    def _build_tls(settings: Optional[dict]) -> Optional[TlsConfig]:
        if settings is None:
            return None
        return TlsConfig(
            enabled=settings.get("enabled", False),
            keystore_path=settings.get("keystore_path", DEFAULT_KEYSTORE),
            keystore_password=settings.get("keystore_password", DEFAULT_KEYSTORE_PASSWORD),
        )


# =============================================================================
# FILE HELPERS
# =============================================================================

def ensure_document_roots(config: ServerConfig) -> None:
    """
    Create every missing document root, parents included.

    A root that cannot be created is logged, not raised: requests for it
    will simply answer 404.
    """
    for root in config.document_roots:
        try:
            if root.exists():
                continue
            root.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created folder: {root}")
        except (OSError, ValueError) as e:
            logger.warning(f"Could not create folder {root}: {e}")


def write_default_config(path: Union[str, Path] = DEFAULT_CONFIG_FILE) -> None:
    """
    Write the default configuration file.

    Raises:
        ConfigError: If the file cannot be written.
    """
    path = Path(path)
    try:
        path.write_text(DEFAULT_CONFIG_TEXT, encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Could not create config file {path}: {e}") from e
    logger.info(f"Created default config file: {path}")


def load_config(
    path: Union[str, Path] = DEFAULT_CONFIG_FILE,
    create_directories: bool = True,
) -> ServerConfig:
    """
    Load the configuration file, creating it first if it is absent.

    Never raises: when the file can be neither created nor read, a warning
    is logged and the built-in defaults are returned.

    Args:
        path: Location of the directive file.
        create_directories: Passed through to ConfigParser.

    Returns:
        The parsed configuration, or the defaults.
    """
    path = Path(path)
    parser = ConfigParser(create_directories=create_directories)

    try:
        if not path.exists():
            write_default_config(path)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Could not read {path}: {e}") from e
    except ConfigError as e:
        logger.warning(f"Error loading config, using defaults: {e}")
        return parser.parse("")

    config = parser.parse(text)
    logger.info(f"Loaded config: host={config.listen_host}, port={config.listen_port}")
    return config
