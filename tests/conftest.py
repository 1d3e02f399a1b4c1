"""Shared test fixtures for the linkprobe test suite."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import aiosqlite
import pytest

from linkprobe.cache import _INSERT_SQL, SqliteValidationCache, _result_params
from linkprobe.memory_cache import InMemoryValidationCache
from linkprobe.models.validation import ValidationOptions, ValidationResult, ValidationStatus

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_result(url: str, *, valid: bool = True, **fields: object) -> ValidationResult:
    """Build a terminal ValidationResult without going through the engine."""
    defaults: dict[str, object] = {
        "status_code": 200 if valid else 404,
        "content_type": "text/html",
        "content_length_bytes": 1024,
        "response_time_ms": 12,
        "asset_type": "webpage",
        "status": ValidationStatus.SUCCESS if valid else ValidationStatus.ERROR,
    }
    if not valid:
        defaults["error"] = "invalid response code: 404"
        defaults["error_type"] = "invalid_response_code"
    defaults.update(fields)
    return ValidationResult(url=url, valid=valid, **defaults)  # type: ignore[arg-type]


MakeResult = Callable[..., ValidationResult]
InsertRows = Callable[[str, list[str]], Awaitable[None]]


@pytest.fixture()
def make_result() -> MakeResult:
    return _make_result


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def memory_cache(clock: FakeClock) -> InMemoryValidationCache:
    return InMemoryValidationCache(clock=clock)


@pytest.fixture()
async def sqlite_cache() -> AsyncGenerator[SqliteValidationCache, None]:
    """SqliteValidationCache over an in-memory database, schema already created."""
    async with aiosqlite.connect(":memory:") as db:
        store = SqliteValidationCache(db, project_id="default")
        await store.init_db()
        yield store


@pytest.fixture()
def insert_rows(sqlite_cache: SqliteValidationCache) -> InsertRows:
    """Insert raw rows, bypassing put(), the way racing writers would.

    Drops the unique index first so duplicate urls can be stored.
    """

    async def _insert(project_id: str, urls: list[str]) -> None:
        db = sqlite_cache._db
        await db.execute("DROP INDEX IF EXISTS idx_validated_urls_unique")
        expires_at = datetime.now(UTC) + timedelta(days=7)
        for url in urls:
            params = _result_params(_make_result(url), expires_at)
            await db.execute(_INSERT_SQL, (project_id, *params))
        await db.commit()

    return _insert


@pytest.fixture()
def options() -> ValidationOptions:
    return ValidationOptions()
