"""RedistributionService: overflow, slice projection and backflow."""

from __future__ import annotations

import pytest

from core.repositories.page_repository import PageRepository
from core.repositories.shot_repository import ShotRepository
from core.services.redistribution_service import LayoutError, RedistributionService


def _fill(repo: ShotRepository, n: int) -> list[str]:
    return [repo.create_shot() for _ in range(n)]


def _slices(pages: PageRepository) -> list[list[str]]:
    return [list(p.shot_ids) for p in pages.pages]


class TestFullPass:
    def test_overflow_creates_pages(
        self, shot_repo: ShotRepository, page_repo: PageRepository, redistribution: RedistributionService
    ):
        ids = _fill(shot_repo, 10)
        result = redistribution.redistribute()
        assert _slices(page_repo) == [ids[:8], ids[8:]]
        assert result.capacity == 8
        assert len(result.pages_created) == 1
        assert result.page_count_changed

    def test_new_pages_clone_first_page_grid(
        self, shot_repo: ShotRepository, page_repo: PageRepository, redistribution: RedistributionService
    ):
        first = page_repo.pages[0]
        page_repo.update_grid_size(first.id, 1, 2)
        page_repo.update_aspect_ratio(first.id, "4/3")
        _fill(shot_repo, 5)
        redistribution.redistribute()
        assert page_repo.page_count == 3
        assert all((p.grid_rows, p.grid_cols, p.aspect_ratio) == (1, 2, "4/3") for p in page_repo.pages)

    def test_backflow_after_delete(
        self, shot_repo: ShotRepository, page_repo: PageRepository, redistribution: RedistributionService
    ):
        ids = _fill(shot_repo, 10)
        redistribution.redistribute()
        shot_repo.delete_shot(ids[2])
        redistribution.redistribute()
        remaining = ids[:2] + ids[3:]
        assert _slices(page_repo) == [remaining[:8], remaining[8:]]
        assert ids[8] in page_repo.pages[0].shot_ids

    def test_trailing_empty_pages_removed(
        self, shot_repo: ShotRepository, page_repo: PageRepository, redistribution: RedistributionService
    ):
        ids = _fill(shot_repo, 3)
        for _ in range(3):
            page_repo.create_page()
        result = redistribution.redistribute()
        assert _slices(page_repo) == [ids]
        assert len(result.pages_removed) == 3
        assert page_repo.active_page_id == page_repo.pages[0].id

    def test_empty_order_keeps_one_empty_page(
        self, page_repo: PageRepository, redistribution: RedistributionService
    ):
        page_repo.create_page()
        page_repo.reorder_shots_in_page(page_repo.pages[0].id, ["stale"])
        redistribution.redistribute()
        assert _slices(page_repo) == [[]]

    def test_second_pass_is_a_noop(
        self, shot_repo: ShotRepository, page_repo: PageRepository, redistribution: RedistributionService
    ):
        _fill(shot_repo, 11)
        redistribution.redistribute()
        before = _slices(page_repo)
        calls: list[int] = []
        page_repo.subscribe(lambda: calls.append(1))

        result = redistribution.redistribute()
        assert _slices(page_repo) == before
        assert not result.page_count_changed
        assert calls == []

    def test_capacity_shrink_relocates_tail(
        self, shot_repo: ShotRepository, page_repo: PageRepository, redistribution: RedistributionService
    ):
        ids = _fill(shot_repo, 8)
        redistribution.redistribute()
        assert page_repo.page_count == 1

        page_repo.update_grid_size(page_repo.pages[0].id, 2, 3)
        redistribution.redistribute()
        assert _slices(page_repo) == [ids[:6], ids[6:]]
        assert page_repo.pages[1].capacity == 6

    def test_non_positive_capacity_raises(
        self, shot_repo: ShotRepository, page_repo: PageRepository, redistribution: RedistributionService
    ):
        _fill(shot_repo, 1)
        page_repo.pages[0].grid_rows = 0
        with pytest.raises(LayoutError):
            redistribution.redistribute()
        assert not redistribution.in_flight

    def test_iteration_guard(self, shot_repo: ShotRepository, page_repo: PageRepository):
        _fill(shot_repo, 20)
        service = RedistributionService(shot_repo, page_repo, max_iterations=1)
        with pytest.raises(LayoutError):
            service.redistribute()

    def test_nested_call_is_deferred(
        self, shot_repo: ShotRepository, page_repo: PageRepository, redistribution: RedistributionService
    ):
        ids = _fill(shot_repo, 9)
        nested: list[object] = []

        def on_change() -> None:
            if len(nested) < 3:
                nested.append(redistribution.redistribute())

        page_repo.subscribe(on_change)
        result = redistribution.redistribute()
        assert nested and all(r is None for r in nested)
        assert result is not None
        assert _slices(page_repo) == [ids[:8], ids[8:]]


class TestIncremental:
    def test_cascade_overflow_matches_projection(
        self, shot_repo: ShotRepository, page_repo: PageRepository, redistribution: RedistributionService
    ):
        ids = _fill(shot_repo, 19)
        page_repo.reorder_shots_in_page(page_repo.pages[0].id, ids)
        created = redistribution.cascade_overflow(0)
        assert len(created) == 2
        cascaded = _slices(page_repo)

        redistribution.redistribute()
        assert _slices(page_repo) == cascaded == [ids[:8], ids[8:16], ids[16:]]

    def test_cascade_backflow_fills_gaps(
        self, shot_repo: ShotRepository, page_repo: PageRepository, redistribution: RedistributionService
    ):
        ids = _fill(shot_repo, 10)
        second = page_repo.create_page()
        third = page_repo.create_page()
        page_repo.reorder_shots_in_page(page_repo.pages[0].id, ids[:5])
        page_repo.reorder_shots_in_page(second, ids[5:7])
        page_repo.reorder_shots_in_page(third, ids[7:])

        removed = redistribution.cascade_backflow(0)
        assert removed == [third]
        assert _slices(page_repo) == [ids[:8], ids[8:]]
