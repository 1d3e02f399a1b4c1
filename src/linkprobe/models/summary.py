from __future__ import annotations

from pydantic import BaseModel, Field, computed_field


class SummaryResult(BaseModel):
    """Aggregate counters over one batch of validation results."""

    total: int = 0
    success: int = 0
    redirects: int = 0
    errors: int = 0
    empty_content: int = 0
    no_assets: int = 0
    with_assets: int = 0
    issue_summary: dict[str, int] = Field(default_factory=dict)

    def record_issue(self, issue_type: str) -> None:
        self.issue_summary[issue_type] = self.issue_summary.get(issue_type, 0) + 1

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success_rate(self) -> float:
        return self.success / self.total if self.total > 0 else 0.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def asset_detection_rate(self) -> float:
        return self.with_assets / self.success if self.success > 0 else 0.0
