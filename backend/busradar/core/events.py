"""Synchronous change-notification hook shared by the stateful services."""

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class ChangeNotifier:
    """Keeps a set of listener callbacks and calls them on change."""

    def __init__(self) -> None:
        self._listeners: list[Callable[..., None]] = []

    def add_listener(self, callback: Callable[..., None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that removes it again."""
        self._listeners.append(callback)
        return lambda: self.remove_listener(callback)

    def remove_listener(self, callback: Callable[..., None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def notify(self, *args) -> None:
        for callback in list(self._listeners):
            try:
                callback(*args)
            except Exception:
                logger.exception("Change listener %r failed", callback)
