"""JsonSettings defaults, merging and typed access."""

from __future__ import annotations

import json
import os
from pathlib import Path

from app.viewmodels.storyboard_vm import StoryboardVM
from core.services.scheduling import ManualScheduler
from infrastructure.logging import find_latest_log_file
from infrastructure.settings import JsonSettings


class TestJsonSettings:
    def test_defaults_without_file(self, tmp_path: Path):
        settings = JsonSettings(tmp_path / "missing.json")
        assert settings.get("grid.rows") == 2
        assert settings.get("numbering.format") == "01"
        assert settings.get("scheduling.autosave_delay_ms") == 2000
        assert settings.get("nope.nothing", "fallback") == "fallback"

    def test_file_overrides_are_merged(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"grid": {"cols": 3}, "numbering": {"format": "SH100"}}), encoding="utf-8")
        settings = JsonSettings(path)
        assert settings.get("grid.cols") == 3
        assert settings.get("grid.rows") == 2
        assert settings.get("numbering.format") == "SH100"

    def test_unreadable_file_keeps_defaults(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text("[1, 2", encoding="utf-8")
        assert JsonSettings(path).get("grid.cols") == 4

    def test_get_int(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"grid": {"rows": "3", "cols": "wide"}}), encoding="utf-8")
        settings = JsonSettings(path)
        assert settings.get_int("grid.rows", 2) == 3
        assert settings.get_int("grid.cols", 4) == 4

    def test_view_model_from_settings(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text(
            json.dumps({"grid": {"rows": 1, "cols": 2}, "numbering": {"format": "100"}}), encoding="utf-8"
        )
        vm = StoryboardVM.from_settings(JsonSettings(path), ManualScheduler())
        ids = [vm.create_shot() for _ in range(3)]
        vm.flush()
        assert [len(p.shot_ids) for p in vm.pages] == [2, 1]
        assert [vm.shots[s].number for s in ids] == ["100", "101", "102"]


class TestLogFiles:
    def test_latest_log_file(self, tmp_path: Path):
        assert find_latest_log_file(str(tmp_path / "none")) is None
        older = tmp_path / "storyboard_20240101.log"
        newer = tmp_path / "storyboard_20240102.log"
        older.write_text("a", encoding="utf-8")
        newer.write_text("b", encoding="utf-8")
        os.utime(older, (1_000_000, 1_000_000))
        assert find_latest_log_file(str(tmp_path)) == newer
