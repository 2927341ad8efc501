"""Lightweight view model wrapper around `Shot`."""

from __future__ import annotations

from dataclasses import dataclass

from core.models import Shot


@dataclass
class ShotVM:
    """Expose convenient properties for bindings/templates."""

    shot: Shot
    page_id: str
    slot: int

    @property
    def id(self) -> str:
        return self.shot.id

    @property
    def number(self) -> str:
        """Display number as last written by the numbering pass."""
        return self.shot.number

    @property
    def is_sub_shot(self) -> bool:
        """True if the shot belongs to a sub-shot group."""
        return self.shot.sub_shot_group_id is not None

    @property
    def has_image(self) -> bool:
        return bool(self.shot.image_ref)

    @property
    def action_text(self) -> str:
        return self.shot.action_text

    @property
    def script_text(self) -> str:
        return self.shot.script_text
