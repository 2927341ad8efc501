"""Core service interfaces and shared data structures.

This module defines simple dataclasses describing the outcome of layout,
reconciliation and persistence operations used across the infrastructure and
app layers.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from core.models import Page, Shot


@dataclass
class RedistributionResult:
    """Outcome of a redistribution pass.

    Attributes:
        capacity: Per-page capacity used for slicing.
        pages_created: Ids of pages appended during overflow expansion.
        pages_removed: Ids of trailing pages dropped during backflow.
        active_page_id: Active page after the pass.
    """

    capacity: int
    pages_created: list[str] = field(default_factory=list)
    pages_removed: list[str] = field(default_factory=list)
    active_page_id: str | None = None

    @property
    def page_count_changed(self) -> bool:
        """True if pages were added or removed."""
        return bool(self.pages_created or self.pages_removed)


@dataclass
class DriftReport:
    """Comparison of page membership against the canonical ordering.

    Attributes:
        page_id_count: Distinct shot ids referenced by pages.
        order_count: Distinct shot ids in the canonical ordering.
        missing_from_pages: Ids in the ordering that no page references.
        unknown_in_pages: Ids on pages that the ordering does not contain.
        duplicated_on_pages: Ids referenced more than once across pages.
        sequence_mismatch: Sets agree but concatenated slices differ in order.
        repaired: Whether a reconciliation pass was run for this report.
    """

    page_id_count: int
    order_count: int
    missing_from_pages: list[str] = field(default_factory=list)
    unknown_in_pages: list[str] = field(default_factory=list)
    duplicated_on_pages: list[str] = field(default_factory=list)
    sequence_mismatch: bool = False
    repaired: bool = False

    @property
    def has_drift(self) -> bool:
        """True when the two representations disagree in any way."""
        return bool(
            self.page_id_count != self.order_count
            or self.missing_from_pages
            or self.unknown_in_pages
            or self.duplicated_on_pages
            or self.sequence_mismatch
        )


@dataclass
class ProjectData:
    """Persisted triple (pages, shots, ordering) plus project settings.

    Attributes:
        pages: Pages in display order.
        shots: Shot entities keyed by id.
        shot_order: Canonical ordering.
        active_page_id: Page selected when the project was saved.
        number_format: Shot number format string.
        project_name: Free-form project title.
        order_derived: True when `shot_order` was rebuilt from page slices.
    """

    pages: list[Page]
    shots: dict[str, Shot]
    shot_order: list[str]
    active_page_id: str | None = None
    number_format: str = "01"
    project_name: str = ""
    order_derived: bool = False
