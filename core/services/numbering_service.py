"""Shot numbering from the canonical ordering.

Numbers are a pure function of (ordering, grouping, format string). A format
string carries an optional literal prefix followed by a run of digits; the
run's length is the zero-padding width and its value is the first number:

    "01"   -> 01, 02, 03 ...
    "100"  -> 100, 101 ...
    "SH010" -> SH010, SH011 ...

Members of a sub-shot group share the main number and get a letter suffix:
``a`` to ``z``, then ``aa``, ``ab`` and so on.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
import re

from loguru import logger

from core.models import DEFAULT_NUMBER_FORMAT, Shot
from core.repositories.shot_repository import ShotRepository
from core.services.scheduling import IScheduler

_TRAILING_DIGITS_RE = re.compile(r"\d+$")

RENUMBER_KEY = "renumber"


@dataclass(frozen=True)
class NumberFormat:
    """Parsed number format."""

    prefix: str = ""
    padding: int = 1
    start: int = 1

    @classmethod
    def parse(cls, fmt: str | None) -> NumberFormat:
        """Parse `fmt`; blank input means the default format."""
        text = (fmt or "").strip() or DEFAULT_NUMBER_FORMAT
        match = _TRAILING_DIGITS_RE.search(text)
        if not match:
            logger.debug("Number format {!r} has no digits, using plain numbers", text)
            return cls()
        digits = match.group(0)
        return cls(prefix=text[: match.start()], padding=len(digits), start=int(digits))

    def format(self, position: int, letter: str = "") -> str:
        """Render the 1-based main `position` with an optional sub-shot letter."""
        number = str(self.start + position - 1).zfill(self.padding)
        return f"{self.prefix}{number}{letter}"


def format_shot_number(position: int, fmt: str | None, letter: str = "") -> str:
    """Format the 1-based `position` using the format string `fmt`."""
    return NumberFormat.parse(fmt).format(position, letter)


def sub_shot_letter(index: int) -> str:
    """Letter suffix for the 0-based `index` within a group (a..z, aa, ab ...)."""
    if index < 0:
        raise ValueError(f"sub-shot index must be >= 0, got {index}")
    letters = ""
    n = index + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        letters = chr(ord("a") + rem) + letters
    return letters


def renumber_shots(
    shots: Mapping[str, Shot],
    shot_order: Sequence[str],
    fmt: str | None,
    now: datetime | None = None,
) -> int:
    """Write `number` on every shot in `shot_order`.

    Ids missing from `shots` are skipped. Returns the number of shots written.
    """
    number_format = NumberFormat.parse(fmt)
    stamp = now or datetime.now()
    main_counter = 0
    sub_index = 0
    prev: Shot | None = None
    written = 0
    for shot_id in shot_order:
        shot = shots.get(shot_id)
        if shot is None:
            continue
        group_id = shot.sub_shot_group_id
        is_continuation = bool(group_id) and prev is not None and prev.sub_shot_group_id == group_id
        if not is_continuation:
            main_counter += 1
            sub_index = 0
        if group_id:
            shot.number = number_format.format(main_counter, sub_shot_letter(sub_index))
            sub_index += 1
        else:
            shot.number = number_format.format(main_counter)
        shot.updated_at = stamp
        prev = shot
        written += 1
    return written


@dataclass
class NumberingStats:
    """Counters for coalesced renumbering."""

    total_calls: int = 0
    batched_calls: int = 0
    executions: int = 0


class NumberingService:
    """Runs renumber passes over a `ShotRepository`.

    `renumber` is coalesced through the scheduler: repeated calls before the
    scheduled pass runs collapse into one pass using the latest format.
    `renumber_immediate` cancels any pending pass and runs synchronously.
    """

    def __init__(self, shot_repo: ShotRepository, scheduler: IScheduler, delay_ms: int | None = None) -> None:
        self._repo = shot_repo
        self._scheduler = scheduler
        self._delay_ms = delay_ms
        self._running = False
        self.stats = NumberingStats()

    def renumber(self, fmt: str | None) -> None:
        """Schedule a coalesced renumber pass."""
        self.stats.total_calls += 1
        if self._scheduler.is_pending(RENUMBER_KEY):
            self.stats.batched_calls += 1
        self._scheduler.schedule(RENUMBER_KEY, lambda: self._execute(fmt), self._delay_ms)

    def renumber_immediate(self, fmt: str | None) -> int:
        """Cancel any pending pass and renumber now."""
        self._scheduler.cancel(RENUMBER_KEY)
        return self._execute(fmt)

    def flush(self) -> None:
        """Run a pending coalesced pass, if any."""
        self._scheduler.flush(RENUMBER_KEY)

    @property
    def is_pending(self) -> bool:
        return self._scheduler.is_pending(RENUMBER_KEY)

    def _execute(self, fmt: str | None) -> int:
        if self._running:
            return 0
        self._running = True
        try:
            written = renumber_shots(self._repo.shots, self._repo.shot_order, fmt)
            self.stats.executions += 1
            logger.debug("Renumbered {} shots with format {!r}", written, fmt)
        finally:
            self._running = False
        self._repo.notify()
        return written
