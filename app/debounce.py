"""Qt timer driven implementation of the core scheduler interface."""

from __future__ import annotations

from PySide6.QtCore import QObject, QTimer
from loguru import logger

from core.services.scheduling import IScheduler, Work

# ~1 frame at 60fps
DEFAULT_DELAY_MS = 16


class QtDebounceScheduler(QObject, IScheduler):
    """Runs keyed work on single-shot `QTimer`s.

    Scheduling a key that is already waiting restarts its timer, so a burst of
    requests runs once, after the burst, with the most recent work. Timers only
    fire while a Qt event loop runs; `flush` runs pending work synchronously.
    """

    def __init__(self, default_delay_ms: int = DEFAULT_DELAY_MS, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._default_delay_ms = max(0, default_delay_ms)
        self._timers: dict[str, QTimer] = {}
        self._work: dict[str, Work] = {}

    def schedule(self, key: str, work: Work, delay_ms: int | None = None) -> None:
        self._work[key] = work
        timer = self._timers.get(key)
        if timer is None:
            timer = QTimer(self)
            timer.setSingleShot(True)
            timer.timeout.connect(lambda k=key: self._fire(k))
            self._timers[key] = timer
        timer.start(self._default_delay_ms if delay_ms is None else max(0, delay_ms))

    def cancel(self, key: str) -> None:
        timer = self._timers.get(key)
        if timer is not None:
            timer.stop()
        self._work.pop(key, None)

    def flush(self, key: str | None = None) -> None:
        keys = [key] if key is not None else list(self._work)
        for k in keys:
            timer = self._timers.get(k)
            if timer is not None:
                timer.stop()
            work = self._work.pop(k, None)
            if work is not None:
                work()

    def is_pending(self, key: str) -> bool:
        return key in self._work

    def _fire(self, key: str) -> None:
        work = self._work.pop(key, None)
        if work is None:
            return
        try:
            work()
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.exception("Scheduled work {!r} failed: {}", key, ex)
