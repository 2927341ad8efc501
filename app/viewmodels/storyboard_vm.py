"""ViewModel orchestrating the storyboard repositories and layout services."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

from loguru import logger

from app.viewmodels.page_vm import PageVM
from app.viewmodels.shot_vm import ShotVM
from core.models import (
    DEFAULT_ASPECT_RATIO,
    DEFAULT_GRID_COLS,
    DEFAULT_GRID_ROWS,
    DEFAULT_NUMBER_FORMAT,
    Page,
    Shot,
)
from core.repositories.page_repository import PageRepository
from core.repositories.shot_repository import ShotRepository
from core.services.batch_coordinator import BatchCoordinator
from core.services.interfaces import DriftReport, ProjectData
from core.services.numbering_service import NumberingService
from core.services.reconciliation_service import ReconciliationService
from core.services.redistribution_service import RedistributionService
from core.services.scheduling import IScheduler, ManualScheduler
from infrastructure.csv_shot_list import CsvShotListRepository, ShotListRow
from infrastructure.json_project_repository import JsonProjectRepository
from infrastructure.settings import JsonSettings

AUTOSAVE_KEY = "autosave"


class StoryboardVM:
    """Main storyboard view-model.

    Every structural change (membership, order, grouping, capacity) ends in a
    settle pass: redistribute pages from the canonical ordering, renumber, then
    schedule an autosave. High-frequency edits (adds, drags) settle through
    the scheduler so bursts coalesce; deletions, grouping changes, capacity
    changes and loads settle immediately.
    """

    def __init__(
        self,
        scheduler: IScheduler | None = None,
        project_repo: JsonProjectRepository | None = None,
        shot_list_repo: CsvShotListRepository | None = None,
        number_format: str = DEFAULT_NUMBER_FORMAT,
        grid_rows: int = DEFAULT_GRID_ROWS,
        grid_cols: int = DEFAULT_GRID_COLS,
        aspect_ratio: str = DEFAULT_ASPECT_RATIO,
        settle_delay_ms: int | None = None,
        renumber_delay_ms: int | None = None,
        autosave_delay_ms: int | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        """Create a StoryboardVM.

        Args:
            scheduler: Coalescing scheduler (defaults to `ManualScheduler`).
            project_repo: Project persistence (defaults to JSON files).
            shot_list_repo: Shot list import/export (defaults to CSV files).
            number_format: Initial shot number format.
            grid_rows: Grid rows for the initial page.
            grid_cols: Grid columns for the initial page.
            aspect_ratio: Aspect tag for the initial page.
            settle_delay_ms: Delay for coalesced settle passes.
            renumber_delay_ms: Delay for coalesced renumber passes.
            autosave_delay_ms: Delay for autosave after a settle.
            id_factory: Id generator shared by both repositories.
        """
        self._scheduler = scheduler or ManualScheduler()
        self._project_repo = project_repo or JsonProjectRepository()
        self._shot_list_repo = shot_list_repo or CsvShotListRepository()
        self._autosave_delay_ms = autosave_delay_ms
        self._autosave_path: Path | None = None

        self.number_format = number_format
        self.project_name = ""

        self.shot_repo = ShotRepository(id_factory=id_factory)
        self.page_repo = PageRepository(
            id_factory=id_factory, grid_rows=grid_rows, grid_cols=grid_cols, aspect_ratio=aspect_ratio
        )
        self.redistribution = RedistributionService(self.shot_repo, self.page_repo)
        self.numbering = NumberingService(self.shot_repo, self._scheduler, renumber_delay_ms)
        self.reconciliation = ReconciliationService(
            self.shot_repo, self.page_repo, self.redistribution, self.numbering
        )
        self.coordinator = BatchCoordinator(self._settle, self._scheduler, settle_delay_ms)

    @classmethod
    def from_settings(cls, settings: JsonSettings, scheduler: IScheduler | None = None) -> StoryboardVM:
        """Build a view-model from `grid.*`, `numbering.*` and `scheduling.*` settings."""
        return cls(
            scheduler=scheduler,
            number_format=str(settings.get("numbering.format", DEFAULT_NUMBER_FORMAT)),
            grid_rows=settings.get_int("grid.rows", DEFAULT_GRID_ROWS),
            grid_cols=settings.get_int("grid.cols", DEFAULT_GRID_COLS),
            aspect_ratio=str(settings.get("grid.aspect_ratio", DEFAULT_ASPECT_RATIO)),
            settle_delay_ms=settings.get_int("scheduling.settle_delay_ms", 16),
            renumber_delay_ms=settings.get_int("scheduling.renumber_delay_ms", 16),
            autosave_delay_ms=settings.get_int("scheduling.autosave_delay_ms", 2000),
        )

    # ------------------------------------------------------------------ queries
    @property
    def pages(self) -> list[Page]:
        return self.page_repo.pages

    @property
    def shots(self) -> Mapping[str, Shot]:
        return self.shot_repo.shots

    @property
    def shot_order(self) -> list[str]:
        return self.shot_repo.shot_order

    @property
    def active_page_id(self) -> str | None:
        return self.page_repo.active_page_id

    def get_total_shots(self, page_id: str) -> int:
        return self.page_repo.get_total_shots(page_id)

    def get_global_shot_index(self, shot_id: str) -> int:
        return self.shot_repo.get_global_shot_index(shot_id)

    def page_numbers(self) -> list[list[str]]:
        """Display numbers per page, in page order."""
        return [
            [shot.number for shot in self.shot_repo.get_shots(page.shot_ids)] for page in self.pages
        ]

    def page_view(self, page_id: str) -> PageVM | None:
        idx = self.page_repo.page_index(page_id)
        if idx == -1:
            return None
        return self._build_page_vm(idx, self.pages[idx])

    def page_views(self) -> list[PageVM]:
        return [self._build_page_vm(idx, page) for idx, page in enumerate(self.pages)]

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Listen to changes in either repository; returns an unsubscriber."""
        unsub_shots = self.shot_repo.subscribe(listener)
        unsub_pages = self.page_repo.subscribe(listener)

        def _unsubscribe() -> None:
            unsub_shots()
            unsub_pages()

        return _unsubscribe

    # -------------------------------------------------------------- shot edits
    def create_shot(self, **fields: Any) -> str:
        """Append a new shot to the end of the storyboard."""
        shot_id = self.shot_repo.create_shot(**fields)
        self.coordinator.request_settle()
        return shot_id

    def add_shot(self, page_id: str, position: int | None = None, **fields: Any) -> str | None:
        """Insert a new shot into a page slot, pushing later shots forward.

        Args:
            page_id: Target page.
            position: Slot within the page; None means after the page's last shot.
            **fields: Content fields for the new shot.
        """
        self.flush()
        page_idx = self.page_repo.page_index(page_id)
        if page_idx == -1:
            return None
        capacity = self.pages[0].capacity
        page = self.pages[page_idx]
        slot = len(page.shot_ids) if position is None else max(0, min(position, len(page.shot_ids)))

        shot_id = self.shot_repo.create_shot(**fields)
        target = min(page_idx * capacity + slot, self.shot_repo.count - 1)
        self.shot_repo.move_shot(shot_id, target)

        # grouping may have shifted the shot; place it where the ordering says
        global_idx = self.shot_repo.get_global_shot_index(shot_id)
        home_idx, home_slot = divmod(global_idx, capacity)
        if home_idx < self.page_repo.page_count:
            home = self.pages[home_idx]
            self.page_repo.add_shot_to_page(home.id, shot_id, home_slot)
            self.redistribution.cascade_overflow(home_idx)
        self.coordinator.request_settle()
        return shot_id

    def add_sub_shot(self, parent_id: str) -> str | None:
        """Create a sub-shot right after `parent_id`."""
        shot_id = self.shot_repo.create_sub_shot(parent_id)
        if shot_id is not None:
            self.coordinator.request_settle(immediate=True)
        return shot_id

    def duplicate_shot(self, shot_id: str) -> str | None:
        new_id = self.shot_repo.duplicate_shot(shot_id)
        if new_id is not None:
            self.coordinator.request_settle()
        return new_id

    def delete_shot(self, shot_id: str) -> None:
        if self.shot_repo.get_shot(shot_id) is None:
            return
        self.shot_repo.delete_shot(shot_id)
        self.coordinator.request_settle(immediate=True)

    def delete_shots(self, shot_ids: Iterable[str]) -> None:
        """Delete several shots with a single settle pass."""
        with self.coordinator.batch():
            for shot_id in list(shot_ids):
                self.delete_shot(shot_id)

    def update_shot(self, shot_id: str, **fields: Any) -> None:
        """Update content fields; ordering and grouping are unaffected."""
        if self.shot_repo.get_shot(shot_id) is None:
            return
        self.shot_repo.update_shot(shot_id, **fields)
        if self.coordinator.in_batch:
            self.coordinator.request_settle()
        else:
            self._schedule_autosave()

    def remove_from_sub_group(self, shot_id: str) -> None:
        self.shot_repo.remove_from_sub_group(shot_id)
        self.coordinator.request_settle(immediate=True)

    def insert_into_sub_group(self, shot_id: str, target_group_id: str, insert_position: int) -> None:
        self.shot_repo.insert_into_sub_group(shot_id, target_group_id, insert_position)
        self.coordinator.request_settle(immediate=True)

    # ---------------------------------------------------------------- ordering
    def set_shot_order(self, shot_ids: Iterable[str]) -> None:
        self.shot_repo.set_shot_order(shot_ids)
        self.coordinator.request_settle()

    def reorder_shots_in_page(self, page_id: str, shot_ids: Iterable[str]) -> None:
        """Apply a reorder made within one page to the global ordering."""
        self.flush()
        if self.page_repo.get_page(page_id) is None:
            return
        new_slice = list(shot_ids)
        order: list[str] = []
        for page in self.pages:
            order.extend(new_slice if page.id == page_id else page.shot_ids)
        self.set_shot_order(order)

    def move_shot(self, shot_id: str, target_index: int) -> None:
        self.shot_repo.move_shot(shot_id, target_index)
        self.coordinator.request_settle()

    def move_shot_group(self, group_id: str, target_index: int) -> None:
        self.shot_repo.move_shot_group(group_id, target_index)
        self.coordinator.request_settle()

    # ------------------------------------------------------------------- pages
    def create_page(self, name: str | None = None) -> str:
        """Append an empty page using the shared grid settings.

        The page is dropped by the next settle if it is still empty and last.
        """
        template = self.pages[0]
        page_id = self.page_repo.create_page(
            name,
            grid_rows=template.grid_rows,
            grid_cols=template.grid_cols,
            aspect_ratio=template.aspect_ratio,
        )
        self._schedule_autosave()
        return page_id

    def delete_page(self, page_id: str) -> None:
        """Delete a page and every shot on it."""
        self.flush()
        page = self.page_repo.get_page(page_id)
        if page is None:
            return
        logger.info("Deleting page {} with {} shots", page.name, len(page.shot_ids))
        with self.coordinator.batch():
            for shot_id in list(page.shot_ids):
                self.shot_repo.delete_shot(shot_id)
            self.page_repo.delete_page(page_id)
            self.coordinator.request_settle(immediate=True)

    def duplicate_page(self, page_id: str) -> list[str]:
        """Copy a page's shots and insert them right after the page's slice.

        Returns the ids of the new shots.
        """
        self.flush()
        idx = self.page_repo.page_index(page_id)
        if idx == -1:
            return []
        page = self.pages[idx]
        insert_at = sum(len(p.shot_ids) for p in self.pages[: idx + 1])
        with self.coordinator.batch():
            new_ids = self.shot_repo.clone_shots(page.shot_ids, insert_at)
            self.coordinator.request_settle(immediate=True)
        return new_ids

    def rename_page(self, page_id: str, name: str) -> None:
        self.page_repo.rename_page(page_id, name)
        self._schedule_autosave()

    def set_active_page(self, page_id: str) -> None:
        self.page_repo.set_active_page(page_id)

    def update_grid_size(self, rows: int, cols: int) -> None:
        """Apply a grid size to every page and reflow."""
        if rows < 1 or cols < 1:
            logger.warning("Ignoring invalid grid size {}x{}", rows, cols)
            return
        with self.coordinator.batch():
            for page in self.pages:
                self.page_repo.update_grid_size(page.id, rows, cols)
            self.coordinator.request_settle(immediate=True)

    def update_aspect_ratio(self, aspect_ratio: str) -> None:
        for page in self.pages:
            self.page_repo.update_aspect_ratio(page.id, aspect_ratio)
        self._schedule_autosave()

    # --------------------------------------------------------------- numbering
    def set_number_format(self, fmt: str) -> None:
        self.number_format = fmt.strip() or DEFAULT_NUMBER_FORMAT
        self.numbering.renumber(self.number_format)
        self._schedule_autosave()

    def renumber(self) -> None:
        self.numbering.renumber(self.number_format)

    def renumber_immediate(self) -> None:
        self.numbering.renumber_immediate(self.number_format)

    # ------------------------------------------------------------ consistency
    def flush(self) -> None:
        """Run any pending settle and renumber passes now."""
        self.coordinator.flush()
        self.numbering.flush()

    def reconcile(self, force: bool = False) -> DriftReport:
        """Heal drift between pages and the ordering."""
        self.flush()
        return self.reconciliation.reconcile(self.number_format, force=force)

    def prepare_export(self) -> list[PageVM]:
        """Settle, reconcile and renumber, then return a snapshot of the pages."""
        self.flush()
        report = self.reconciliation.reconcile(self.number_format)
        if not report.repaired:
            self.numbering.renumber_immediate(self.number_format)
        return self.page_views()

    # ------------------------------------------------------------- persistence
    def enable_autosave(self, path: str | Path | None) -> None:
        """Save to `path` after settles; None turns autosave off."""
        self._autosave_path = Path(path) if path is not None else None

    def to_project_data(self) -> ProjectData:
        shots, order = self.shot_repo.snapshot()
        return ProjectData(
            pages=self.pages,
            shots=shots,
            shot_order=order,
            active_page_id=self.active_page_id,
            number_format=self.number_format,
            project_name=self.project_name,
        )

    def load_project(self, path: str | Path) -> DriftReport:
        """Load a project file and converge pages with the ordering."""
        project = self._project_repo.load(path)
        self._scheduler.cancel(AUTOSAVE_KEY)
        self.number_format = project.number_format
        self.project_name = project.project_name
        pages = project.pages
        template = pages[0]
        for page in pages[1:]:
            if (page.grid_rows, page.grid_cols) != (template.grid_rows, template.grid_cols):
                logger.warning(
                    "Page {} grid {}x{} differs from first page, using {}x{}",
                    page.name,
                    page.grid_rows,
                    page.grid_cols,
                    template.grid_rows,
                    template.grid_cols,
                )
                page.grid_rows, page.grid_cols = template.grid_rows, template.grid_cols
        with self.coordinator.batch():
            self.page_repo.restore(pages, project.active_page_id)
            self.shot_repo.restore(project.shots, project.shot_order)
        return self.reconciliation.reconcile(self.number_format, force=True)

    def save_project(self, path: str | Path) -> None:
        self.flush()
        self._project_repo.save(path, self.to_project_data())

    def export_shot_list(self, path: str | Path) -> int:
        """Write the shot list as CSV; returns the number of rows."""
        rows = [
            ShotListRow(
                page=page.name,
                number=item.number,
                action_text=item.action_text,
                script_text=item.script_text,
                image_ref=item.shot.image_ref,
            )
            for page in self.prepare_export()
            for item in page.items
        ]
        self._shot_list_repo.save(path, rows)
        return len(rows)

    def import_shot_list(self, path: str | Path) -> list[str]:
        """Append one shot per CSV row with a single settle pass."""
        created: list[str] = []
        with self.coordinator.batch():
            for row in self._shot_list_repo.load(path):
                created.append(
                    self.create_shot(
                        action_text=row.action_text,
                        script_text=row.script_text,
                        image_ref=row.image_ref,
                    )
                )
        logger.info("Imported {} shots from {}", len(created), path)
        return created

    # ---------------------------------------------------------------- internals
    def _settle(self) -> None:
        self.redistribution.redistribute()
        self.numbering.renumber_immediate(self.number_format)
        self._schedule_autosave()

    def _schedule_autosave(self) -> None:
        if self._autosave_path is None:
            return
        path = self._autosave_path
        self._scheduler.schedule(AUTOSAVE_KEY, lambda: self.save_project(path), self._autosave_delay_ms)

    def _build_page_vm(self, index: int, page: Page) -> PageVM:
        return PageVM(
            page_id=page.id,
            name=page.name,
            index=index,
            grid_rows=page.grid_rows,
            grid_cols=page.grid_cols,
            aspect_ratio=page.aspect_ratio,
            items=[
                ShotVM(shot=shot, page_id=page.id, slot=slot)
                for slot, shot in enumerate(self.shot_repo.get_shots(page.shot_ids))
            ],
        )
