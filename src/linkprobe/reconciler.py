"""Duplicate repair for the durable store.

Racing writers can leave more than one row for the same url in a project
(see ``linkprobe.cache``). The Reconciler restores the one-row-per-url
invariant after the fact: it keeps the first-inserted row for every url,
rewrites the project's rows in a single transaction, and then tries to
(re)build the unique index so new duplicates are rejected at write time.
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

import structlog

from linkprobe.errors import ErrorCode, LinkProbeError
from linkprobe.models.repair import DuplicateReport, RepairOutcome

if TYPE_CHECKING:
    from linkprobe.models.cache import StoredResult
    from linkprobe.protocols import ResultStoreProtocol

log = structlog.get_logger()


def _deduplicate(rows: list[StoredResult]) -> list[StoredResult]:
    """Keep the first row seen for each url. ``rows`` must be in insertion order."""
    kept: dict[str, StoredResult] = {}
    for stored in rows:
        kept.setdefault(stored.result.url, stored)
    return list(kept.values())


class Reconciler:
    def __init__(self, store: ResultStoreProtocol) -> None:
        self._store = store

    async def list_projects(self) -> list[str]:
        return await self._store.list_projects()

    async def analyze_duplicates(self, project_id: str, top_n: int = 5) -> DuplicateReport:
        """Report duplicate rows in a project without changing anything.

        Raises LinkProbeError(PROJECT_NOT_FOUND) when the project holds no rows.
        """
        rows = await self._store.load_rows(project_id)
        if not rows:
            raise LinkProbeError(
                code=ErrorCode.PROJECT_NOT_FOUND,
                message=f"No stored results for project {project_id!r}.",
                suggestion="Call list_projects to see the projects in the store.",
                recoverable=False,
            )

        counts = Counter(stored.result.url for stored in rows)
        duplicated = [(url, count) for url, count in counts.items() if count > 1]
        # Stable sort keeps first-seen order among equally duplicated urls.
        duplicated.sort(key=lambda item: item[1], reverse=True)

        report = DuplicateReport(
            project_id=project_id,
            total_urls=len(rows),
            unique_urls=len(counts),
            total_duplicates=len(rows) - len(counts),
            urls_with_duplicates=len(duplicated),
            top_duplicates=duplicated[:top_n],
        )
        log.info(
            "duplicates_analyzed",
            project_id=project_id,
            total_urls=report.total_urls,
            unique_urls=report.unique_urls,
            total_duplicates=report.total_duplicates,
        )
        return report

    async def repair_dataset(self, project_id: str) -> RepairOutcome:
        """Remove duplicate rows from a project, keeping the first-inserted one per url.

        Never raises: storage failures are logged and reported with
        ``success=False``, in which case the original rows are left in place.
        """
        repair_log = log.bind(project_id=project_id)
        repair_log.info("repair_started")

        try:
            rows = await self._store.load_rows(project_id)
        except LinkProbeError as exc:
            repair_log.error("repair_failed", stage="load", error=exc.message)
            return RepairOutcome(
                project_id=project_id,
                success=False,
                rows_before=0,
                rows_after=0,
                removed=0,
                error=exc.message,
            )

        if not rows:
            repair_log.warning("repair_failed", stage="load", error="project_not_found")
            return RepairOutcome(
                project_id=project_id,
                success=False,
                rows_before=0,
                rows_after=0,
                removed=0,
                error=f"No stored results for project {project_id!r}.",
            )

        deduplicated = _deduplicate(rows)
        removed = len(rows) - len(deduplicated)

        if removed > 0:
            try:
                await self._store.replace_rows(project_id, deduplicated)
            except LinkProbeError as exc:
                repair_log.error("repair_failed", stage="persist", error=exc.message)
                return RepairOutcome(
                    project_id=project_id,
                    success=False,
                    rows_before=len(rows),
                    rows_after=len(rows),
                    removed=0,
                    error=exc.message,
                )

        index_built = await self._store.ensure_unique_index()
        repair_log.info(
            "repair_complete",
            rows_before=len(rows),
            rows_after=len(deduplicated),
            removed=removed,
            unique_index=index_built,
        )
        return RepairOutcome(
            project_id=project_id,
            success=True,
            rows_before=len(rows),
            rows_after=len(deduplicated),
            removed=removed,
        )
