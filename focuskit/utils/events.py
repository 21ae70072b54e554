"""Listener fan-out used for in-process notifications."""

import logging
import threading
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Unsubscribe = Callable[[], None]


class Listeners(Generic[T]):
    """Ordered set of single-argument callbacks.

    A failing listener is logged and skipped; it never stops delivery to
    the remaining listeners or unwinds into the caller of ``emit``.
    """

    def __init__(self) -> None:
        self._listeners: list[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def add(self, listener: Callable[[T], None]) -> Unsubscribe:
        if not callable(listener):
            raise ValueError("Listener must be callable")
        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    def emit(self, payload: T) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                logger.exception("Error in listener %r", listener)

    def __len__(self) -> int:
        return len(self._listeners)
