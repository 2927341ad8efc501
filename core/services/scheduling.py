"""Deferred-work scheduling decoupled from any UI toolkit.

Work is keyed: scheduling under a key that already has pending work replaces
it, so bursts collapse into one run of the most recent work. The app layer
provides a timer-driven implementation; `ManualScheduler` runs work only when
flushed, which suits headless use and tests.
"""

from __future__ import annotations

from collections.abc import Callable

Work = Callable[[], None]


class IScheduler:
    """Interface for coalescing schedulers."""

    def schedule(self, key: str, work: Work, delay_ms: int | None = None) -> None:
        """Schedule `work` under `key`, replacing pending work for that key."""
        raise NotImplementedError

    def cancel(self, key: str) -> None:
        """Drop pending work for `key` without running it."""
        raise NotImplementedError

    def flush(self, key: str | None = None) -> None:
        """Run pending work now, for `key` or for every key."""
        raise NotImplementedError

    def is_pending(self, key: str) -> bool:
        """True if work is waiting under `key`."""
        raise NotImplementedError


class ManualScheduler(IScheduler):
    """Keeps the latest work per key until `flush` is called."""

    def __init__(self) -> None:
        self._pending: dict[str, Work] = {}

    def schedule(self, key: str, work: Work, delay_ms: int | None = None) -> None:
        self._pending[key] = work

    def cancel(self, key: str) -> None:
        self._pending.pop(key, None)

    def flush(self, key: str | None = None) -> None:
        keys = [key] if key is not None else list(self._pending)
        for k in keys:
            work = self._pending.pop(k, None)
            if work is not None:
                work()

    def is_pending(self, key: str) -> bool:
        return key in self._pending
