"""
=============================================================================
CONNECTION WORKERS
=============================================================================

Every accepted connection gets its own worker thread, so a slow client
never delays another one. The number of live workers is capped:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      ConnectionWorkers                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   accept loop ──► submit(func, conn)                                │
    │                      │                                               │
    │                      ├── active < max_workers ──► new daemon thread  │
    │                      │                                               │
    │                      └── at the cap ──► False (caller answers 503)   │
    │                                                                      │
    │   worker thread: func(conn) ──► finally: remove itself from active  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

There is no task queue: a queued connection would sit with its client
waiting and no answer, while a refused one gets an immediate 503.

shutdown() stops new submissions and optionally joins the in-flight
workers with an overall deadline.

=============================================================================
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Set


logger = logging.getLogger(__name__)


class ConnectionWorkers:
    """
    Bounded thread-per-connection executor.

        workers = ConnectionWorkers(max_workers=64)
        if not workers.submit(handle_connection, conn):
            reject(conn)
        ...
        workers.shutdown(wait=True, timeout=5.0)
    """

    def __init__(self, max_workers: int = 64, name_prefix: str = "conn"):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self.max_workers = max_workers
        self.name_prefix = name_prefix

        self._active: Set[threading.Thread] = set()
        self._lock = threading.Lock()
        self._shutdown = False
        self._next_id = 0

        self.tasks_completed = 0
        self.tasks_failed = 0
        self.tasks_rejected = 0

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def submit(self, func: Callable[..., Any], *args: Any) -> bool:
        """
        Run func(*args) on a new worker thread.

        Returns:
            True if a worker was started, False if the cap is reached or
            the pool is shutting down.
        """
        with self._lock:
            if self._shutdown or len(self._active) >= self.max_workers:
                self.tasks_rejected += 1
                return False

            worker = threading.Thread(
                target=self._run,
                args=(func, args),
                name=f"{self.name_prefix}-{self._next_id}",
                daemon=True,
            )
            self._next_id += 1
            self._active.add(worker)

        worker.start()
        return True

    def _run(self, func: Callable[..., Any], args: tuple):
        start_time = time.perf_counter()
        try:
            func(*args)
            with self._lock:
                self.tasks_completed += 1
        except Exception as e:
            elapsed = time.perf_counter() - start_time
            logger.exception(
                f"{threading.current_thread().name} failed after {elapsed:.3f}s: {e}"
            )
            with self._lock:
                self.tasks_failed += 1
        finally:
            with self._lock:
                self._active.discard(threading.current_thread())

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Refuse further submissions; with wait=True, join live workers.

        Args:
            wait: Join workers that are still running.
            timeout: Overall deadline for the join, None for no limit.
        """
        with self._lock:
            self._shutdown = True
            active = list(self._active)

        if active:
            logger.info(f"Waiting for {len(active)} active connection(s)...")

        if not wait:
            return

        deadline = None if timeout is None else time.monotonic() + timeout
        for worker in active:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            worker.join(remaining)

        still_running = self.active_count
        if still_running:
            logger.warning(f"Shutdown timeout, {still_running} connection(s) still open")

    @property
    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "active": len(self._active),
                "max_workers": self.max_workers,
                "completed": self.tasks_completed,
                "failed": self.tasks_failed,
                "rejected": self.tasks_rejected,
            }
