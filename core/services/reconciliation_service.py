"""Self-healing check between page slices and the canonical ordering.

This is not a merge: the ordering is authoritative and any page-local state
it does not reflect is discarded by re-projecting the pages from it.
"""

from __future__ import annotations

from collections import Counter

from loguru import logger

from core.repositories.page_repository import PageRepository
from core.repositories.shot_repository import ShotRepository
from core.services.interfaces import DriftReport
from core.services.numbering_service import NumberingService
from core.services.redistribution_service import RedistributionService


class ReconciliationService:
    """Detects drift and forces a re-projection plus renumber."""

    def __init__(
        self,
        shot_repo: ShotRepository,
        page_repo: PageRepository,
        redistribution: RedistributionService,
        numbering: NumberingService,
    ) -> None:
        self._shots = shot_repo
        self._pages = page_repo
        self._redistribution = redistribution
        self._numbering = numbering

    def detect_drift(self) -> DriftReport:
        """Compare the ids referenced by pages with the ordering."""
        page_ids = self._pages.all_shot_ids()
        order = self._shots.shot_order
        page_set = set(page_ids)
        order_set = set(order)
        counts = Counter(page_ids)
        return DriftReport(
            page_id_count=len(page_set),
            order_count=len(order_set),
            missing_from_pages=[sid for sid in order if sid not in page_set],
            unknown_in_pages=[sid for sid in dict.fromkeys(page_ids) if sid not in order_set],
            duplicated_on_pages=[sid for sid, n in counts.items() if n > 1],
            sequence_mismatch=page_set == order_set and page_ids != order,
        )

    def reconcile(self, number_format: str | None, *, force: bool = False) -> DriftReport:
        """Re-project pages and renumber when drift is found (or `force`)."""
        report = self.detect_drift()
        if not report.has_drift and not force:
            logger.debug("Reconcile: layout matches shot order ({} shots)", report.order_count)
            return report

        if report.has_drift:
            logger.warning(
                "Reconcile: drift detected (pages={}, order={}, missing={}, unknown={}, "
                "duplicated={}, reordered={}); normalizing from shot order",
                report.page_id_count,
                report.order_count,
                len(report.missing_from_pages),
                len(report.unknown_in_pages),
                len(report.duplicated_on_pages),
                report.sequence_mismatch,
            )
        self._redistribution.redistribute()
        self._numbering.renumber_immediate(number_format)
        report.repaired = True
        return report
