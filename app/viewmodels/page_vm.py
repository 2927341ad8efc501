from __future__ import annotations

from dataclasses import dataclass, field

from app.viewmodels.shot_vm import ShotVM


@dataclass
class PageVM:
    page_id: str
    name: str
    index: int
    grid_rows: int
    grid_cols: int
    aspect_ratio: str
    items: list[ShotVM] = field(default_factory=list)

    @property
    def capacity(self) -> int:
        return self.grid_rows * self.grid_cols

    @property
    def empty_slots(self) -> int:
        return max(0, self.capacity - len(self.items))
