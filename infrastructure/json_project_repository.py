"""JSON persistence for storyboard projects.

A project file stores the triple (pages, shots, shot_order) plus a few project
settings. Loading is tolerant: malformed sections are logged and replaced by a
minimal valid state instead of raising. When `shot_order` is absent or not a
list it is derived by concatenating the pages' id lists in page order, and a
list that misses live shots gets them added in page order. Repeated page ids
are replaced by fresh ones. The caller is expected to run reconciliation
after loading so both representations converge.

camelCase keys (`shotOrder`, `gridRows`, `subShotGroupId`, ...) are accepted on
load.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
import json
from pathlib import Path
from typing import Any
import uuid

from loguru import logger

from core.models import (
    DEFAULT_ASPECT_RATIO,
    DEFAULT_GRID_COLS,
    DEFAULT_GRID_ROWS,
    DEFAULT_NUMBER_FORMAT,
    Page,
    Shot,
)
from core.services.interfaces import ProjectData

FORMAT_VERSION = 1


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key among `keys`."""
    for key in keys:
        if key in data:
            return data[key]
    return default


def _parse_datetime(value: Any) -> datetime:
    """Parse an ISO timestamp, falling back to now."""
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Invalid datetime: {}", value)
    return datetime.now()


def _parse_positive_int(value: Any) -> int | None:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _parse_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _parse_page(raw: Any, index: int) -> Page | None:
    if not isinstance(raw, dict):
        logger.error("Page entry {} is not an object: {!r}", index, raw)
        return None
    rows = _parse_positive_int(_pick(raw, "grid_rows", "gridRows"))
    cols = _parse_positive_int(_pick(raw, "grid_cols", "gridCols"))
    if rows is None or cols is None:
        logger.warning(
            "Page {} has invalid grid size, falling back to {}x{}",
            index,
            DEFAULT_GRID_ROWS,
            DEFAULT_GRID_COLS,
        )
        rows, cols = DEFAULT_GRID_ROWS, DEFAULT_GRID_COLS
    raw_ids = _pick(raw, "shot_ids", "shots", default=[])
    if not isinstance(raw_ids, list):
        logger.warning("Page {} shot list is not a list, treating as empty", index)
        raw_ids = []
    return Page(
        id=str(raw.get("id") or uuid.uuid4()),
        name=str(raw.get("name") or f"Page {index + 1}"),
        shot_ids=[str(sid) for sid in raw_ids if isinstance(sid, str)],
        grid_rows=rows,
        grid_cols=cols,
        aspect_ratio=str(_pick(raw, "aspect_ratio", "aspectRatio", default=DEFAULT_ASPECT_RATIO)),
        created_at=_parse_datetime(_pick(raw, "created_at", "createdAt")),
        updated_at=_parse_datetime(_pick(raw, "updated_at", "updatedAt")),
    )


def _parse_shot(shot_id: str, raw: Any) -> Shot | None:
    if not isinstance(raw, dict):
        logger.error("Shot {} is not an object: {!r}", shot_id, raw)
        return None
    group_id = _pick(raw, "sub_shot_group_id", "subShotGroupId")
    image_ref = _pick(raw, "image_ref", "imageUrl", "imageData")
    return Shot(
        id=shot_id,
        number=str(raw.get("number") or ""),
        sub_shot_group_id=str(group_id) if group_id else None,
        action_text=str(_pick(raw, "action_text", "actionText", default="") or ""),
        script_text=str(_pick(raw, "script_text", "scriptText", default="") or ""),
        image_ref=str(image_ref) if image_ref else None,
        image_scale=_parse_float(_pick(raw, "image_scale", "imageScale"), 1.0),
        image_offset_x=_parse_float(_pick(raw, "image_offset_x", "imageOffsetX"), 0.0),
        image_offset_y=_parse_float(_pick(raw, "image_offset_y", "imageOffsetY"), 0.0),
        created_at=_parse_datetime(_pick(raw, "created_at", "createdAt")),
        updated_at=_parse_datetime(_pick(raw, "updated_at", "updatedAt")),
    )


def _derive_order(pages: list[Page], shots: Mapping[str, Shot]) -> list[str]:
    """Concatenate page slices, then append live shots no page references."""
    seen: set[str] = set()
    order: list[str] = []
    for page in pages:
        for sid in page.shot_ids:
            if sid in shots and sid not in seen:
                seen.add(sid)
                order.append(sid)
    orphans = [sid for sid in shots if sid not in seen]
    if orphans:
        logger.warning("Appending {} shots not referenced by any page", len(orphans))
    return order + orphans


def _dedupe_page_ids(pages: list[Page]) -> list[Page]:
    """Give a fresh id to every page whose id an earlier page already uses."""
    seen: set[str] = set()
    for index, page in enumerate(pages):
        if page.id in seen:
            new_id = str(uuid.uuid4())
            logger.warning("Page {} repeats id {}, assigning {}", index, page.id, new_id)
            page.id = new_id
        seen.add(page.id)
    return pages


def _complete_order(order: list[str], pages: list[Page], shots: Mapping[str, Shot]) -> list[str]:
    """Keep the stored order and add the live shots it misses in page order."""
    listed = set(order)
    missing: list[str] = []
    for sid in [sid for page in pages for sid in page.shot_ids] + list(shots):
        if sid in shots and sid not in listed:
            listed.add(sid)
            missing.append(sid)
    if missing:
        logger.warning("Shot order misses {} live shots, adding them in page order", len(missing))
    return order + missing


def parse_project(data: Any) -> ProjectData:
    """Build `ProjectData` from decoded JSON, repairing what it can."""
    if not isinstance(data, dict):
        logger.error("Project root is not an object, starting empty")
        data = {}

    raw_pages = data.get("pages")
    if not isinstance(raw_pages, list):
        logger.warning("Project has no pages array, creating a default page")
        raw_pages = []
    pages = _dedupe_page_ids(
        [p for p in (_parse_page(raw, i) for i, raw in enumerate(raw_pages)) if p is not None]
    )
    if not pages:
        pages = [Page(id=str(uuid.uuid4()), name="Page 1")]

    raw_shots = data.get("shots")
    if not isinstance(raw_shots, dict):
        if raw_shots is not None:
            logger.warning("Project shots section is not an object, ignoring it")
        raw_shots = {}
    shots: dict[str, Shot] = {}
    for shot_id, raw in raw_shots.items():
        shot = _parse_shot(str(shot_id), raw)
        if shot is not None:
            shots[shot.id] = shot

    raw_order = _pick(data, "shot_order", "shotOrder")
    order_derived = not isinstance(raw_order, list)
    if order_derived:
        logger.info("Shot order missing or malformed, deriving it from page slices")
        shot_order = _derive_order(pages, shots)
    else:
        listed = [sid for sid in raw_order if isinstance(sid, str)]
        shot_order = _complete_order(listed, pages, shots)

    settings = data.get("settings") if isinstance(data.get("settings"), dict) else {}
    number_format = _pick(settings, "number_format", "shotNumberFormat") or data.get("number_format")
    active_page_id = _pick(data, "active_page_id", "activePageId")
    return ProjectData(
        pages=pages,
        shots=shots,
        shot_order=shot_order,
        active_page_id=str(active_page_id) if active_page_id else None,
        number_format=str(number_format or DEFAULT_NUMBER_FORMAT),
        project_name=str(_pick(data, "project_name", "projectName", default="") or ""),
        order_derived=order_derived,
    )


def _page_to_dict(page: Page) -> dict[str, Any]:
    return {
        "id": page.id,
        "name": page.name,
        "shot_ids": list(page.shot_ids),
        "grid_rows": page.grid_rows,
        "grid_cols": page.grid_cols,
        "aspect_ratio": page.aspect_ratio,
        "created_at": page.created_at.isoformat(),
        "updated_at": page.updated_at.isoformat(),
    }


def _shot_to_dict(shot: Shot) -> dict[str, Any]:
    return {
        "number": shot.number,
        "sub_shot_group_id": shot.sub_shot_group_id,
        "action_text": shot.action_text,
        "script_text": shot.script_text,
        "image_ref": shot.image_ref,
        "image_scale": shot.image_scale,
        "image_offset_x": shot.image_offset_x,
        "image_offset_y": shot.image_offset_y,
        "created_at": shot.created_at.isoformat(),
        "updated_at": shot.updated_at.isoformat(),
    }


def project_to_dict(project: ProjectData) -> dict[str, Any]:
    """Encode `project` as a JSON-ready dict."""
    return {
        "version": FORMAT_VERSION,
        "project_name": project.project_name,
        "settings": {"number_format": project.number_format},
        "active_page_id": project.active_page_id,
        "pages": [_page_to_dict(p) for p in project.pages],
        "shots": {sid: _shot_to_dict(s) for sid, s in project.shots.items()},
        "shot_order": list(project.shot_order),
    }


class JsonProjectRepository:
    """Load and save projects as JSON files."""

    def load(self, path: str | Path) -> ProjectData:
        """Read the project at `path`.

        Raises:
            ValueError: If the file is not valid JSON.
        """
        file_path = Path(path)
        with file_path.open("r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as ex:
                raise ValueError(f"Project file is not valid JSON: {file_path}: {ex}") from ex
        project = parse_project(data)
        logger.info(
            "Loaded project {} ({} pages, {} shots)", file_path, len(project.pages), len(project.shots)
        )
        return project

    def save(self, path: str | Path, project: ProjectData) -> None:
        """Write `project` to `path`, creating parent directories."""
        file_path = Path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with file_path.open("w", encoding="utf-8") as f:
            json.dump(project_to_dict(project), f, ensure_ascii=False, indent=2)
        logger.info("Saved project {} ({} shots)", file_path, len(project.shot_order))
