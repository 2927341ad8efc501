"""JSON project persistence and tolerant parsing."""

from __future__ import annotations

from datetime import datetime
import json
from pathlib import Path

import pytest

from core.models import Page, Shot
from core.services.interfaces import ProjectData
from infrastructure.json_project_repository import (
    FORMAT_VERSION,
    JsonProjectRepository,
    parse_project,
    project_to_dict,
)


def _project() -> ProjectData:
    stamp = datetime(2024, 5, 1, 12, 30)
    shots = {
        "a": Shot(id="a", number="01", action_text="Wide", created_at=stamp, updated_at=stamp),
        "b": Shot(id="b", number="02a", sub_shot_group_id="g", image_ref="img/b.png", image_scale=1.5),
        "c": Shot(id="c", number="02b", sub_shot_group_id="g", script_text="Line"),
    }
    pages = [Page(id="p1", name="Page 1", shot_ids=["a", "b", "c"], grid_rows=1, grid_cols=3)]
    return ProjectData(
        pages=pages,
        shots=shots,
        shot_order=["a", "b", "c"],
        active_page_id="p1",
        number_format="SH01",
        project_name="Pilot",
    )


class TestRoundTrip:
    def test_save_then_load(self, tmp_path: Path):
        repo = JsonProjectRepository()
        path = tmp_path / "nested" / "project.json"
        repo.save(path, _project())

        loaded = repo.load(path)
        assert loaded.shot_order == ["a", "b", "c"]
        assert loaded.pages[0].shot_ids == ["a", "b", "c"]
        assert loaded.pages[0].capacity == 3
        assert loaded.active_page_id == "p1"
        assert loaded.number_format == "SH01"
        assert loaded.project_name == "Pilot"
        assert not loaded.order_derived
        assert loaded.shots["a"].created_at == datetime(2024, 5, 1, 12, 30)
        assert loaded.shots["b"].sub_shot_group_id == "g"
        assert loaded.shots["b"].image_scale == 1.5
        assert loaded.shots["c"].script_text == "Line"

    def test_written_layout(self):
        data = project_to_dict(_project())
        assert data["version"] == FORMAT_VERSION
        assert data["settings"] == {"number_format": "SH01"}
        assert set(data["shots"]["a"]) >= {"number", "sub_shot_group_id", "action_text"}

    def test_invalid_json_raises(self, tmp_path: Path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ValueError):
            JsonProjectRepository().load(path)


class TestTolerantParsing:
    def test_non_object_root(self):
        project = parse_project(["nope"])
        assert len(project.pages) == 1
        assert project.shots == {}
        assert project.shot_order == []
        assert project.number_format == "01"

    def test_missing_pages_gets_default_page(self):
        project = parse_project({"shots": {"a": {}}, "shot_order": ["a"]})
        assert len(project.pages) == 1
        assert project.pages[0].shot_ids == []
        assert project.shot_order == ["a"]

    def test_invalid_grid_falls_back(self):
        project = parse_project({"pages": [{"id": "p", "grid_rows": 0, "grid_cols": "x"}]})
        assert (project.pages[0].grid_rows, project.pages[0].grid_cols) == (2, 4)

    def test_bad_entries_are_skipped(self):
        project = parse_project(
            {
                "pages": ["junk", {"id": "p", "shot_ids": ["a", 5]}],
                "shots": {"a": {}, "b": "junk"},
                "shot_order": ["a", 3],
            }
        )
        assert [p.id for p in project.pages] == ["p"]
        assert project.pages[0].shot_ids == ["a"]
        assert set(project.shots) == {"a"}
        assert project.shot_order == ["a"]

    def test_order_derived_from_pages(self):
        project = parse_project(
            {
                "pages": [{"id": "p1", "shot_ids": ["b", "a", "b"]}, {"id": "p2", "shot_ids": ["x"]}],
                "shots": {"a": {}, "b": {}, "c": {}},
                "shot_order": "broken",
            }
        )
        assert project.order_derived
        assert project.shot_order == ["b", "a", "c"]

    def test_duplicate_page_ids_get_fresh_ids(self):
        project = parse_project(
            {
                "pages": [
                    {"id": "p1", "shot_ids": ["a"]},
                    {"id": "p1", "shot_ids": ["b"]},
                    {"id": "p2", "shot_ids": []},
                ],
                "shots": {"a": {}, "b": {}},
            }
        )
        page_ids = [p.id for p in project.pages]
        assert page_ids[0] == "p1"
        assert page_ids[2] == "p2"
        assert len(set(page_ids)) == 3
        assert project.pages[1].shot_ids == ["b"]

    def test_partial_order_completed_in_page_order(self):
        project = parse_project(
            {
                "pages": [{"id": "p1", "shot_ids": ["a", "b"]}, {"id": "p2", "shot_ids": ["c", "d"]}],
                "shots": {k: {} for k in "edcba"},
                "shot_order": ["c", "a"],
            }
        )
        assert not project.order_derived
        assert project.shot_order == ["c", "a", "b", "d", "e"]

    def test_legacy_keys(self):
        project = parse_project(
            {
                "projectName": "Old",
                "activePageId": "p1",
                "settings": {"shotNumberFormat": "100"},
                "pages": [{"id": "p1", "shots": ["a"], "gridRows": 3, "gridCols": 3, "aspectRatio": "4/3"}],
                "shots": {"a": {"subShotGroupId": "g", "imageUrl": "a.png", "imageScale": "2"}},
                "shotOrder": ["a"],
            }
        )
        assert project.project_name == "Old"
        assert project.active_page_id == "p1"
        assert project.number_format == "100"
        assert project.pages[0].capacity == 9
        assert project.pages[0].aspect_ratio == "4/3"
        assert project.shots["a"].sub_shot_group_id == "g"
        assert project.shots["a"].image_ref == "a.png"
        assert project.shots["a"].image_scale == 2.0

    def test_bad_timestamp_defaults_to_now(self):
        project = parse_project({"shots": {"a": {"created_at": "yesterday"}}})
        assert isinstance(project.shots["a"].created_at, datetime)

    def test_file_on_disk_with_utf8(self, tmp_path: Path):
        path = tmp_path / "utf8.json"
        path.write_text(
            json.dumps({"shots": {"a": {"action_text": "雨の夜"}}, "shot_order": ["a"]}, ensure_ascii=False),
            encoding="utf-8",
        )
        project = JsonProjectRepository().load(path)
        assert project.shots["a"].action_text == "雨の夜"
