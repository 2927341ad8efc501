"""Partitioning of the canonical ordering into fixed-capacity pages.

A full pass runs three steps to a fixed point:

1. Overflow expansion: append pages (cloning the first page's grid and aspect
   tag) until total capacity covers the ordering.
2. Slice projection: overwrite page ``i`` with
   ``shot_order[i * capacity:(i + 1) * capacity]``.
3. Backflow contraction: drop the trailing run of empty pages, keeping at
   least one page.

Capacity is read from the first page; grid sizes are kept uniform across
pages by the callers.
"""

from __future__ import annotations

from loguru import logger

from core.models import Page
from core.repositories.page_repository import PageRepository
from core.repositories.shot_repository import ShotRepository
from core.services.interfaces import RedistributionResult

DEFAULT_MAX_ITERATIONS = 10_000


class LayoutError(RuntimeError):
    """Raised for impossible layouts (non-positive capacity, runaway growth)."""


class RedistributionService:
    """Keeps page slices consistent with the canonical ordering."""

    def __init__(
        self,
        shot_repo: ShotRepository,
        page_repo: PageRepository,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        self._shots = shot_repo
        self._pages = page_repo
        self._max_iterations = max_iterations
        self._in_flight = False
        self._rerun_requested = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def redistribute(self) -> RedistributionResult | None:
        """Run a full pass.

        A call made while a pass is running is deferred: it returns None and
        the running pass repeats once before returning.
        """
        if self._in_flight:
            logger.debug("Redistribution already in flight, deferring")
            self._rerun_requested = True
            return None

        self._in_flight = True
        try:
            result = self._run_pass()
            while self._rerun_requested:
                self._rerun_requested = False
                follow_up = self._run_pass()
                result.pages_created += follow_up.pages_created
                result.pages_removed += follow_up.pages_removed
                result.active_page_id = follow_up.active_page_id
        finally:
            self._in_flight = False
            self._rerun_requested = False
        return result

    # ---------------------------------------------------------------- full pass
    def _run_pass(self) -> RedistributionResult:
        order = self._shots.shot_order
        capacity = self._capacity()
        result = RedistributionResult(capacity=capacity)

        result.pages_created = self._expand(len(order), capacity)

        for idx, page in enumerate(self._pages.pages):
            start = idx * capacity
            self._pages.reorder_shots_in_page(page.id, order[start : start + capacity])

        result.pages_removed = self._contract()
        result.active_page_id = self._pages.active_page_id
        if result.page_count_changed:
            logger.info(
                "Redistributed {} shots over {} pages (+{} / -{})",
                len(order),
                self._pages.page_count,
                len(result.pages_created),
                len(result.pages_removed),
            )
        return result

    def _capacity(self) -> int:
        pages = self._pages.pages
        if not pages:
            raise LayoutError("Page repository holds no pages")
        capacity = pages[0].capacity
        if capacity <= 0:
            raise LayoutError(f"Page capacity must be positive, got {capacity}")
        return capacity

    def _expand(self, shot_count: int, capacity: int) -> list[str]:
        created: list[str] = []
        iterations = 0
        while shot_count > self._pages.page_count * capacity:
            iterations += 1
            if iterations > self._max_iterations:
                raise LayoutError(
                    f"Overflow expansion exceeded {self._max_iterations} iterations"
                )
            created.append(self._append_clone())
        return created

    def _append_clone(self) -> str:
        template = self._pages.pages[0]
        return self._pages.create_page(
            grid_rows=template.grid_rows,
            grid_cols=template.grid_cols,
            aspect_ratio=template.aspect_ratio,
            activate=False,
        )

    def _contract(self) -> list[str]:
        """Remove trailing empty pages; returns removed ids."""
        pages = self._pages.pages
        keep = len(pages)
        while keep > 1 and not pages[keep - 1].shot_ids:
            keep -= 1
        removed = [page.id for page in pages[keep:]]
        if not removed:
            return removed

        active_removed = self._pages.active_page_id in removed
        for page_id in removed:
            self._pages.delete_page(page_id, reindex=False)
        if active_removed:
            self._pages.set_active_page(pages[keep - 1].id)
        return removed

    # -------------------------------------------------------- incremental paths
    def cascade_overflow(self, page_index: int = 0) -> list[str]:
        """Push excess shots forward from `page_index`, creating pages as needed.

        Each over-full page hands its tail to the head of the next page.
        Returns the ids of created pages.
        """
        capacity = self._capacity()
        created: list[str] = []
        idx = max(page_index, 0)
        while idx < self._pages.page_count:
            page = self._pages.pages[idx]
            if len(page.shot_ids) <= capacity:
                idx += 1
                continue
            if idx + 1 >= self._pages.page_count:
                if len(created) >= self._max_iterations:
                    raise LayoutError("Overflow cascade exceeded iteration limit")
                created.append(self._append_clone())
            next_page = self._pages.pages[idx + 1]
            head, tail = page.shot_ids[:capacity], page.shot_ids[capacity:]
            self._pages.reorder_shots_in_page(page.id, head)
            self._pages.reorder_shots_in_page(next_page.id, tail + next_page.shot_ids)
            idx += 1
        return created

    def cascade_backflow(self, page_index: int = 0) -> list[str]:
        """Pull shots back from later pages to fill gaps from `page_index` on.

        Emptied trailing pages are removed. Returns removed page ids.
        """
        capacity = self._capacity()
        idx = max(page_index, 0)
        while idx + 1 < self._pages.page_count:
            page: Page = self._pages.pages[idx]
            space = capacity - len(page.shot_ids)
            if space > 0:
                for later in self._pages.pages[idx + 1 :]:
                    if space <= 0:
                        break
                    pulled = later.shot_ids[:space]
                    if pulled:
                        self._pages.reorder_shots_in_page(page.id, page.shot_ids + pulled)
                        self._pages.reorder_shots_in_page(later.id, later.shot_ids[len(pulled) :])
                        space -= len(pulled)
            idx += 1
        return self._contract()
