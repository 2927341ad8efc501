"""Core domain models for storyboard shots and pages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

DEFAULT_GRID_ROWS = 2
DEFAULT_GRID_COLS = 4
DEFAULT_ASPECT_RATIO = "16/9"
DEFAULT_NUMBER_FORMAT = "01"

# Fields `ShotRepository.update_shot` is allowed to merge
CONTENT_FIELDS: frozenset[str] = frozenset(
    {
        "action_text",
        "script_text",
        "image_ref",
        "image_scale",
        "image_offset_x",
        "image_offset_y",
    }
)


@dataclass
class Shot:
    """A single storyboard panel.

    The position of a shot is not stored here; it is implied by its index in
    the canonical ordering. `number` is a cache written by the numbering pass.
    """

    id: str
    number: str = ""
    sub_shot_group_id: str | None = None
    action_text: str = ""
    script_text: str = ""
    image_ref: str | None = None
    image_scale: float = 1.0
    image_offset_x: float = 0.0
    image_offset_y: float = 0.0
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class Page:
    """A fixed-capacity grid holding a contiguous slice of the ordering."""

    id: str
    name: str
    shot_ids: list[str] = field(default_factory=list)
    grid_rows: int = DEFAULT_GRID_ROWS
    grid_cols: int = DEFAULT_GRID_COLS
    aspect_ratio: str = DEFAULT_ASPECT_RATIO
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def capacity(self) -> int:
        """Number of shot slots (rows x cols)."""
        return self.grid_rows * self.grid_cols
