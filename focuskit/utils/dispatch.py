"""Detached execution of best-effort side effects (remote calls)."""

import logging
import threading
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

Job = Callable[[], None]


class Dispatcher(Protocol):
    def submit(self, job: Job) -> None: ...


def _run_job(job: Job) -> None:
    try:
        job()
    except Exception:
        logger.exception("Background job %r failed", job)


class ThreadDispatcher:
    """Run each job on its own daemon thread.

    ``wait`` lets short-lived callers (the CLI) block until outstanding
    jobs finish, since daemon threads are killed at interpreter exit.
    """

    def __init__(self) -> None:
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

    def submit(self, job: Job) -> None:
        thread = threading.Thread(target=_run_job, args=(job,), daemon=True)
        with self._lock:
            self._threads = [t for t in self._threads if t.is_alive()]
            self._threads.append(thread)
        thread.start()

    def wait(self, timeout: float = 10.0) -> None:
        with self._lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join(timeout=timeout)


class InlineDispatcher:
    """Run jobs synchronously in the caller's thread."""

    def submit(self, job: Job) -> None:
        _run_job(job)

    def wait(self, timeout: float = 10.0) -> None:
        return None
