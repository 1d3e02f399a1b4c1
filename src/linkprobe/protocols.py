"""Protocol interfaces for swappable components.

Tool handlers, the batch orchestrator and AppState reference these
protocols, not the concrete implementations. This allows:
- the in-process and SQLite caches to be used interchangeably
- tests to substitute lightweight fakes for the validation engine
- the Reconciler to run against any store exposing the maintenance methods
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from datetime import timedelta

    from linkprobe.models.cache import CacheStats, StoredResult
    from linkprobe.models.validation import ValidationOptions, ValidationResult


class ValidationCacheProtocol(Protocol):
    """Interface shared by both cache store variants."""

    async def get(self, url: str) -> ValidationResult | None: ...

    async def put(self, url: str, result: ValidationResult, ttl: timedelta) -> None: ...

    async def sweep(self, max_age_minutes: int | None = None) -> int: ...

    async def sweep_if_due(self, interval_hours: int) -> None: ...

    async def stats(self) -> CacheStats: ...

    async def clear(self) -> int: ...


class ValidatorProtocol(Protocol):
    """Interface for the single-URL validation engine."""

    async def validate(self, url: str, options: ValidationOptions) -> ValidationResult: ...


class ResultStoreProtocol(Protocol):
    """Maintenance surface of the durable store used by the Reconciler."""

    async def list_projects(self) -> list[str]: ...

    async def load_rows(self, project_id: str) -> list[StoredResult]: ...

    async def replace_rows(self, project_id: str, rows: list[StoredResult]) -> None: ...

    async def ensure_unique_index(self) -> bool: ...
