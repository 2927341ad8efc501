"""Coalescing of settle passes (redistribute, renumber, persist).

Mutations call `request_settle`. Outside a batch the settle is either run
immediately or scheduled under a single key so bursts collapse into one pass.
Inside `batch()` requests only mark the state dirty; closing the outermost
scope runs exactly one settle.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager

from loguru import logger

from core.services.scheduling import IScheduler

SETTLE_KEY = "settle"


class BatchCoordinator:
    """Coordinates when the settle callback runs."""

    def __init__(
        self,
        settle: Callable[[], None],
        scheduler: IScheduler,
        delay_ms: int | None = None,
    ) -> None:
        self._settle = settle
        self._scheduler = scheduler
        self._delay_ms = delay_ms
        self._depth = 0
        self._dirty = False
        self._settling = False
        self.settle_count = 0

    @property
    def in_batch(self) -> bool:
        return self._depth > 0

    @property
    def is_pending(self) -> bool:
        return self._dirty or self._scheduler.is_pending(SETTLE_KEY)

    def request_settle(self, immediate: bool = False) -> None:
        """Ask for a settle pass, deferred while a batch is open."""
        if self._depth > 0:
            self._dirty = True
            return
        if immediate:
            self._run()
        else:
            self._scheduler.schedule(SETTLE_KEY, self._run, self._delay_ms)

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Suppress settles until the outermost scope exits, then settle once."""
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
            if self._depth == 0 and self._dirty:
                self._run()

    def flush(self) -> None:
        """Run a scheduled settle now."""
        self._scheduler.flush(SETTLE_KEY)

    def _run(self) -> None:
        self._scheduler.cancel(SETTLE_KEY)
        self._dirty = False
        if self._settling:
            # nested request; rerun after the current settle returns
            self._dirty = True
            return
        self._settling = True
        try:
            self._settle()
            self.settle_count += 1
        finally:
            self._settling = False
        if self._dirty:
            logger.debug("Settle requested during settle, running again")
            self._run()
