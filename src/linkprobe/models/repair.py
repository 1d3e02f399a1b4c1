from __future__ import annotations

from pydantic import BaseModel


class DuplicateReport(BaseModel):
    """Read-only duplicate analysis of one project's stored results."""

    project_id: str
    total_urls: int
    unique_urls: int
    total_duplicates: int  # rows that would be removed by a repair
    urls_with_duplicates: int
    top_duplicates: list[tuple[str, int]] = []  # (url, occurrences), most duplicated first


class RepairOutcome(BaseModel):
    project_id: str
    success: bool
    rows_before: int
    rows_after: int
    removed: int
    error: str | None = None
