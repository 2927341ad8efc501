"""CSV import/export of shot lists.

Export writes one row per shot in canonical order with its page and display
number. Import reads action/script text to create shots in bulk.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
import csv
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

CSV_HEADERS = ["Page", "Shot", "Action", "Script", "Image"]
REQUIRED_IMPORT_HEADERS = ["Action", "Script"]


@dataclass
class ShotListRow:
    """One row of a shot list."""

    page: str = ""
    number: str = ""
    action_text: str = ""
    script_text: str = ""
    image_ref: str | None = None


class CsvShotListRepository:
    """Load and save shot lists in CSV format."""

    def load(self, csv_path: str | Path) -> Iterator[ShotListRow]:
        """Yield `ShotListRow` from CSV at `csv_path`."""
        path = Path(csv_path)
        with path.open("r", encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f)
            fieldnames = reader.fieldnames or []
            missing = [h for h in REQUIRED_IMPORT_HEADERS if h not in fieldnames]
            if missing:
                raise ValueError(f"CSV missing required headers: {missing}")

            for line_no, row in enumerate(reader, start=2):
                try:
                    yield ShotListRow(
                        page=(row.get("Page") or "").strip(),
                        number=(row.get("Shot") or "").strip(),
                        action_text=(row.get("Action") or "").strip(),
                        script_text=(row.get("Script") or "").strip(),
                        image_ref=(row.get("Image") or "").strip() or None,
                    )
                except (AttributeError, TypeError) as ex:
                    logger.error("CSV row error at line {}: {} | row={}", line_no, ex, row)
                    continue

    def save(self, csv_path: str | Path, rows: Iterable[ShotListRow]) -> None:
        """Write `rows` to `csv_path` using the canonical headers."""
        path = Path(csv_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        count = 0
        with path.open("w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=CSV_HEADERS)
            writer.writeheader()
            for row in rows:
                writer.writerow(
                    {
                        "Page": row.page,
                        "Shot": row.number,
                        "Action": row.action_text,
                        "Script": row.script_text,
                        "Image": row.image_ref or "",
                    }
                )
                count += 1
        logger.info("Shot list written: {} ({} rows)", path, count)
