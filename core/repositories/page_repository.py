"""Pages holding ordered slices of shot ids.

The repository works on ids only and performs no capacity enforcement; keeping
slices within capacity is the redistribution service's job.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime
import re
import uuid

from loguru import logger

from core.models import DEFAULT_ASPECT_RATIO, DEFAULT_GRID_COLS, DEFAULT_GRID_ROWS, Page
from core.repositories.observable import ObservableStore

_PAGE_NAME_RE = re.compile(r"^Page (\d+)$")


def _new_id() -> str:
    return str(uuid.uuid4())


class PageRepository(ObservableStore):
    """Owns the page list and the active page pointer.

    A fresh repository holds one empty default page.
    """

    def __init__(
        self,
        id_factory: Callable[[], str] | None = None,
        grid_rows: int = DEFAULT_GRID_ROWS,
        grid_cols: int = DEFAULT_GRID_COLS,
        aspect_ratio: str = DEFAULT_ASPECT_RATIO,
    ) -> None:
        super().__init__()
        self._new_id = id_factory or _new_id
        self._defaults = (grid_rows, grid_cols, aspect_ratio)
        first = self._make_page("Page 1")
        self._pages: list[Page] = [first]
        self.active_page_id: str | None = first.id

    # ------------------------------------------------------------------ queries
    @property
    def pages(self) -> list[Page]:
        """Copy of the page list (the pages themselves are shared)."""
        return list(self._pages)

    @property
    def page_count(self) -> int:
        return len(self._pages)

    def get_page(self, page_id: str) -> Page | None:
        for page in self._pages:
            if page.id == page_id:
                return page
        return None

    def page_index(self, page_id: str) -> int:
        """Index of `page_id`, or -1 when unknown."""
        for idx, page in enumerate(self._pages):
            if page.id == page_id:
                return idx
        return -1

    def get_active_page(self) -> Page | None:
        return self.get_page(self.active_page_id) if self.active_page_id else None

    def get_total_shots(self, page_id: str) -> int:
        page = self.get_page(page_id)
        return len(page.shot_ids) if page else 0

    def all_shot_ids(self) -> list[str]:
        """Concatenation of every page's ids in page order."""
        return [sid for page in self._pages for sid in page.shot_ids]

    # ------------------------------------------------------------ page mutators
    def create_page(
        self,
        name: str | None = None,
        *,
        grid_rows: int | None = None,
        grid_cols: int | None = None,
        aspect_ratio: str | None = None,
        activate: bool = True,
    ) -> str:
        """Append a page and return its id.

        Args:
            name: Display name; defaults to `Page N` with the lowest unused N.
            grid_rows: Rows, defaulting to the repository default.
            grid_cols: Columns, defaulting to the repository default.
            aspect_ratio: Opaque aspect tag.
            activate: Make the new page the active page.
        """
        page = self._make_page(name or self._next_page_name())
        if grid_rows is not None and grid_cols is not None and grid_rows > 0 and grid_cols > 0:
            page.grid_rows, page.grid_cols = grid_rows, grid_cols
        if aspect_ratio is not None:
            page.aspect_ratio = aspect_ratio
        self._pages.append(page)
        if activate:
            self.active_page_id = page.id
        self.notify()
        return page.id

    def delete_page(self, page_id: str, *, reindex: bool = True) -> None:
        """Remove a page, always keeping at least one.

        With `reindex`, remaining pages are renamed `Page 1..n`.
        """
        if len(self._pages) <= 1:
            return
        idx = self.page_index(page_id)
        if idx == -1:
            return
        self._pages.pop(idx)
        if self.active_page_id == page_id:
            self.active_page_id = self._pages[min(idx, len(self._pages) - 1)].id
        if reindex:
            for pos, page in enumerate(self._pages, start=1):
                page.name = f"Page {pos}"
        self.notify()

    def rename_page(self, page_id: str, name: str) -> None:
        page = self.get_page(page_id)
        if page is None:
            return
        page.name = name
        page.updated_at = datetime.now()
        self.notify()

    def set_active_page(self, page_id: str) -> None:
        if self.get_page(page_id) is None:
            return
        self.active_page_id = page_id
        self.notify()

    def duplicate_page(self, page_id: str) -> str | None:
        """Insert a copy of a page after it; only the id list is copied."""
        idx = self.page_index(page_id)
        if idx == -1:
            return None
        now = datetime.now()
        source = self._pages[idx]
        copy_page = replace(
            source,
            id=self._new_id(),
            name=self._next_page_name(),
            shot_ids=list(source.shot_ids),
            created_at=now,
            updated_at=now,
        )
        self._pages.insert(idx + 1, copy_page)
        self.active_page_id = copy_page.id
        self.notify()
        return copy_page.id

    def update_grid_size(self, page_id: str, rows: int, cols: int) -> None:
        page = self.get_page(page_id)
        if page is None:
            return
        if rows < 1 or cols < 1:
            logger.warning("Rejecting grid size {}x{} for page {}", rows, cols, page_id)
            return
        page.grid_rows, page.grid_cols = rows, cols
        page.updated_at = datetime.now()
        self.notify()

    def update_aspect_ratio(self, page_id: str, aspect_ratio: str) -> None:
        page = self.get_page(page_id)
        if page is None:
            return
        page.aspect_ratio = aspect_ratio
        page.updated_at = datetime.now()
        self.notify()

    # ----------------------------------------------------------- slice mutators
    def add_shot_to_page(self, page_id: str, shot_id: str, position: int | None = None) -> None:
        page = self.get_page(page_id)
        if page is None:
            return
        if position is not None and 0 <= position <= len(page.shot_ids):
            page.shot_ids.insert(position, shot_id)
        else:
            page.shot_ids.append(shot_id)
        page.updated_at = datetime.now()
        self.notify()

    def remove_shot_from_page(self, page_id: str, shot_id: str) -> None:
        page = self.get_page(page_id)
        if page is None or shot_id not in page.shot_ids:
            return
        page.shot_ids.remove(shot_id)
        page.updated_at = datetime.now()
        self.notify()

    def reorder_shots_in_page(self, page_id: str, shot_ids: Iterable[str]) -> None:
        """Overwrite a page's id list."""
        page = self.get_page(page_id)
        if page is None:
            return
        new_ids = list(shot_ids)
        if new_ids == page.shot_ids:
            return
        page.shot_ids = new_ids
        page.updated_at = datetime.now()
        self.notify()

    # -------------------------------------------------------------- bulk state
    def restore(self, pages: Iterable[Page], active_page_id: str | None = None) -> None:
        """Replace all pages; an empty input restores one default page."""
        self._pages = list(pages)
        if not self._pages:
            logger.warning("No pages to restore, creating a default page")
            self._pages = [self._make_page("Page 1")]
        if active_page_id and self.get_page(active_page_id) is not None:
            self.active_page_id = active_page_id
        else:
            self.active_page_id = self._pages[0].id
        self.notify()

    # ---------------------------------------------------------------- internals
    def _make_page(self, name: str) -> Page:
        rows, cols, aspect = self._defaults
        return Page(id=self._new_id(), name=name, grid_rows=rows, grid_cols=cols, aspect_ratio=aspect)

    def _next_page_name(self) -> str:
        used: set[int] = set()
        for page in self._pages:
            match = _PAGE_NAME_RE.match(page.name)
            if match:
                used.add(int(match.group(1)))
        number = 1
        while number in used:
            number += 1
        return f"Page {number}"
