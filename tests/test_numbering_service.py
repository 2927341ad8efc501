"""Numbering: format parsing, letters and coalesced renumbering."""

from __future__ import annotations

import pytest

from core.models import Shot
from core.repositories.shot_repository import ShotRepository
from core.services.numbering_service import (
    NumberFormat,
    NumberingService,
    format_shot_number,
    renumber_shots,
    sub_shot_letter,
)
from core.services.scheduling import ManualScheduler


class TestNumberFormat:
    @pytest.mark.parametrize(
        "fmt, position, expected",
        [
            ("01", 1, "01"),
            ("01", 12, "12"),
            ("001", 7, "007"),
            ("100", 1, "100"),
            ("100", 3, "102"),
            ("SH010", 2, "SH011"),
            ("", 1, "01"),
            ("Shot", 4, "4"),
        ],
    )
    def test_format(self, fmt: str, position: int, expected: str):
        assert format_shot_number(position, fmt) == expected

    def test_width_grows_past_padding(self):
        assert format_shot_number(100, "01") == "100"

    def test_parse(self):
        assert NumberFormat.parse("A-05") == NumberFormat(prefix="A-", padding=2, start=5)
        assert NumberFormat.parse(None) == NumberFormat(prefix="", padding=2, start=1)

    def test_letter_suffix(self):
        assert format_shot_number(2, "01", "b") == "02b"


class TestSubShotLetter:
    @pytest.mark.parametrize(
        "index, expected", [(0, "a"), (1, "b"), (25, "z"), (26, "aa"), (27, "ab"), (51, "az"), (52, "ba")]
    )
    def test_letters(self, index: int, expected: str):
        assert sub_shot_letter(index) == expected

    def test_negative_index(self):
        with pytest.raises(ValueError):
            sub_shot_letter(-1)


class TestRenumberShots:
    def test_groups_share_main_number(self):
        shots = {
            "A": Shot(id="A"),
            "B": Shot(id="B", sub_shot_group_id="g1"),
            "C": Shot(id="C", sub_shot_group_id="g1"),
            "D": Shot(id="D"),
        }
        written = renumber_shots(shots, ["A", "B", "C", "D"], "01")
        assert written == 4
        assert [shots[k].number for k in "ABCD"] == ["01", "02a", "02b", "03"]

    def test_adjacent_groups_get_separate_numbers(self):
        shots = {
            "A": Shot(id="A", sub_shot_group_id="g1"),
            "B": Shot(id="B", sub_shot_group_id="g1"),
            "C": Shot(id="C", sub_shot_group_id="g2"),
            "D": Shot(id="D", sub_shot_group_id="g2"),
        }
        renumber_shots(shots, ["A", "B", "C", "D"], "01")
        assert [shots[k].number for k in "ABCD"] == ["01a", "01b", "02a", "02b"]

    def test_unknown_ids_skipped(self):
        shots = {"A": Shot(id="A"), "B": Shot(id="B")}
        assert renumber_shots(shots, ["A", "ghost", "B"], "1") == 2
        assert shots["B"].number == "2"

    def test_idempotent(self):
        shots = {k: Shot(id=k) for k in "ABC"}
        renumber_shots(shots, list("ABC"), "01")
        first = [s.number for s in shots.values()]
        renumber_shots(shots, list("ABC"), "01")
        assert [s.number for s in shots.values()] == first


class TestNumberingService:
    def test_renumber_is_coalesced(self, shot_repo: ShotRepository, scheduler: ManualScheduler):
        service = NumberingService(shot_repo, scheduler)
        a = shot_repo.create_shot()
        shot_repo.create_shot()

        service.renumber("01")
        service.renumber("01")
        service.renumber("100")
        assert service.is_pending
        assert shot_repo.get_shot(a).number == ""

        service.flush()
        assert shot_repo.get_shot(a).number == "100"
        assert service.stats.total_calls == 3
        assert service.stats.batched_calls == 2
        assert service.stats.executions == 1

    def test_immediate_cancels_pending(self, shot_repo: ShotRepository, scheduler: ManualScheduler):
        service = NumberingService(shot_repo, scheduler)
        a = shot_repo.create_shot()
        service.renumber("100")
        assert service.renumber_immediate("01") == 1
        assert not service.is_pending
        scheduler.flush()
        assert shot_repo.get_shot(a).number == "01"
        assert service.stats.executions == 1

    def test_notifies_listeners(self, shot_repo: ShotRepository, scheduler: ManualScheduler):
        service = NumberingService(shot_repo, scheduler)
        shot_repo.create_shot()
        calls: list[int] = []
        shot_repo.subscribe(lambda: calls.append(1))
        service.renumber_immediate("01")
        assert calls == [1]

