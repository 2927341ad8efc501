"""Shared fixtures for the storyboard tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator
import itertools

import pytest

from app.viewmodels.storyboard_vm import StoryboardVM
from core.repositories.page_repository import PageRepository
from core.repositories.shot_repository import ShotRepository
from core.services.numbering_service import NumberingService
from core.services.redistribution_service import RedistributionService
from core.services.scheduling import ManualScheduler


@pytest.fixture
def id_factory() -> Callable[[], str]:
    """Deterministic ids: id-1, id-2, ..."""
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def shot_repo(id_factory: Callable[[], str]) -> ShotRepository:
    return ShotRepository(id_factory=id_factory)


@pytest.fixture
def page_repo(id_factory: Callable[[], str]) -> PageRepository:
    return PageRepository(id_factory=id_factory, grid_rows=2, grid_cols=4)


@pytest.fixture
def redistribution(shot_repo: ShotRepository, page_repo: PageRepository) -> RedistributionService:
    return RedistributionService(shot_repo, page_repo)


@pytest.fixture
def numbering(shot_repo: ShotRepository, scheduler: ManualScheduler) -> NumberingService:
    return NumberingService(shot_repo, scheduler)


@pytest.fixture
def vm(scheduler: ManualScheduler, id_factory: Callable[[], str]) -> StoryboardVM:
    """A 2x4 storyboard with one empty page."""
    return StoryboardVM(scheduler=scheduler, grid_rows=2, grid_cols=4, id_factory=id_factory)


@pytest.fixture(scope="session")
def qapp() -> Iterator[object]:
    """A QCoreApplication for timer based tests."""
    qtcore = pytest.importorskip("PySide6.QtCore")
    app = qtcore.QCoreApplication.instance() or qtcore.QCoreApplication([])
    yield app
