from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel

from linkprobe.models.validation import ValidationResult


@dataclass(frozen=True, eq=False)
class CacheEntry:
    """In-process cache slot. Immutable once written; identity is the url."""

    result: ValidationResult
    recorded_at: float  # epoch seconds
    ttl_seconds: float

    @property
    def url(self) -> str:
        return self.result.url

    def is_expired(self, now: float, max_age_seconds: float | None = None) -> bool:
        age_limit = self.ttl_seconds if max_age_seconds is None else max_age_seconds
        return now > self.recorded_at + age_limit

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CacheEntry):
            return NotImplemented
        return self.url == other.url

    def __hash__(self) -> int:
        return hash(self.url)


class CacheStats(BaseModel):
    size: int
    expired_count: int


class StoredResult(BaseModel):
    """One row of the durable store, in insertion order."""

    row_id: int
    project_id: str
    result: ValidationResult
