"""Current principal: who owns remote data, or nobody in local-only mode."""

import logging
from typing import Callable, Optional

from focuskit.utils.events import Listeners, Unsubscribe

logger = logging.getLogger(__name__)


class PrincipalProvider:
    """Holds the current principal id and announces changes."""

    def __init__(self, principal_id: Optional[str] = None) -> None:
        self._principal_id = principal_id or None
        self._listeners: Listeners[Optional[str]] = Listeners()

    def current(self) -> Optional[str]:
        return self._principal_id

    def set(self, principal_id: Optional[str]) -> None:
        principal_id = principal_id or None
        if principal_id == self._principal_id:
            return
        logger.info("Principal changed to %s", principal_id or "anonymous")
        self._principal_id = principal_id
        self._listeners.emit(principal_id)

    def subscribe(self, listener: Callable[[Optional[str]], None]) -> Unsubscribe:
        return self._listeners.add(listener)
