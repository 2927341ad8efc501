"""Minimal subscribe/notify contract shared by the state containers."""

from __future__ import annotations

from collections.abc import Callable

from loguru import logger

Listener = Callable[[], None]


class ObservableStore:
    """Holds listeners and notifies them after each committed change."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener`; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as ex:  # pylint: disable=broad-exception-caught
                logger.exception("Store listener failed: {}", ex)
