"""
Operator commands read from a text stream (stdin by default).

Only one command exists: ``stop`` (case-insensitive, surrounding whitespace
ignored) shuts the server down. Anything else is logged and ignored. End of
input stops the listener but leaves the server running, so the server can
be started with stdin closed or redirected from /dev/null.
"""

import logging
import sys
import threading
from typing import Callable, Optional, TextIO


logger = logging.getLogger(__name__)


STOP_COMMAND = "stop"


class CommandListener:
    """
    Background thread reading one command per line.

        listener = CommandListener(on_stop=server.shutdown)
        listener.start()
    """

    def __init__(self, on_stop: Callable[[], None], stream: Optional[TextIO] = None):
        self.on_stop = on_stop
        self.stream = stream if stream is not None else sys.stdin
        self._thread: Optional[threading.Thread] = None
        self._stop_requested = threading.Event()

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested.is_set()

    def start(self) -> "CommandListener":
        self._thread = threading.Thread(target=self.listen, name="command-listener", daemon=True)
        self._thread.start()
        return self

    def join(self, timeout: Optional[float] = None):
        if self._thread is not None:
            self._thread.join(timeout)

    def listen(self):
        """Read lines until ``stop`` or end of input."""
        for line in self.stream:
            command = line.strip().lower()
            if not command:
                continue
            if command == STOP_COMMAND:
                logger.info("Stop command received")
                self._stop_requested.set()
                self.on_stop()
                return
            logger.info(f"Unknown command: {command!r} (type 'stop' to shut down)")

        logger.debug("Command input closed; server keeps running")
