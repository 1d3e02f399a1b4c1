"""SQLite validation cache (durable variant).

All online cache operations catch ``aiosqlite.Error`` internally and degrade
gracefully: read failures return ``None`` (treated as cache miss by callers),
write failures are logged and ignored (the probed result is still returned).
Infrastructure errors never cross the class boundary on the validation path.

Writes are check-then-write with no transaction spanning the lookup and the
insert. Two writers racing on the same uncached URL may therefore both
insert. With the unique index in place the loser gets an ``IntegrityError``
(logged, dropped); on a database whose index could not be built, duplicate
rows accumulate until the Reconciler repairs them. The maintenance methods
used by the Reconciler (``load_rows``, ``replace_rows``) raise
``LinkProbeError`` instead, since an operator is waiting on them.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite
import structlog

from linkprobe.errors import ErrorCode, LinkProbeError
from linkprobe.models.cache import CacheStats, StoredResult
from linkprobe.models.validation import ValidationResult, ValidationStatus

if TYPE_CHECKING:
    from collections.abc import Sequence

    from linkprobe.config import Settings

log = structlog.get_logger()

_CREATE_RESULTS_TABLE = """
CREATE TABLE IF NOT EXISTS validated_urls (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id           TEXT NOT NULL,
    url                  TEXT NOT NULL,
    valid                INTEGER NOT NULL,
    status_code          INTEGER NOT NULL,
    content_type         TEXT,
    content_length_bytes INTEGER NOT NULL,
    response_time_ms     INTEGER NOT NULL,
    redirect             INTEGER NOT NULL,
    redirect_url         TEXT,
    final_url            TEXT,
    asset_type           TEXT,
    error                TEXT,
    error_type           TEXT,
    status               TEXT NOT NULL,
    validated_at         TEXT NOT NULL,
    expires_at           TEXT NOT NULL
)
"""

_CREATE_EXPIRES_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_validated_urls_expires ON validated_urls(expires_at)"
)
_CREATE_UNIQUE_INDEX = (
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_validated_urls_unique "
    "ON validated_urls(project_id, url)"
)

_CREATE_METADATA_TABLE = """
CREATE TABLE IF NOT EXISTS server_metadata (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""

_RESULT_COLUMNS = (
    "url",
    "valid",
    "status_code",
    "content_type",
    "content_length_bytes",
    "response_time_ms",
    "redirect",
    "redirect_url",
    "final_url",
    "asset_type",
    "error",
    "error_type",
    "status",
    "validated_at",
    "expires_at",
)
_SELECT_COLUMNS = "id, project_id, " + ", ".join(_RESULT_COLUMNS)
_INSERT_SQL = (
    f"INSERT INTO validated_urls (project_id, {', '.join(_RESULT_COLUMNS)}) "
    f"VALUES ({', '.join('?' * (len(_RESULT_COLUMNS) + 1))})"
)
_INSERT_WITH_ID_SQL = (
    f"INSERT INTO validated_urls (id, project_id, {', '.join(_RESULT_COLUMNS)}) "
    f"VALUES ({', '.join('?' * (len(_RESULT_COLUMNS) + 2))})"
)
_UPDATE_SQL = (
    "UPDATE validated_urls SET "
    + ", ".join(f"{column} = ?" for column in _RESULT_COLUMNS)
    + " WHERE id = ?"
)


def _result_params(result: ValidationResult, expires_at: datetime) -> tuple[Any, ...]:
    return (
        result.url,
        int(result.valid),
        result.status_code,
        result.content_type,
        result.content_length_bytes,
        result.response_time_ms,
        int(result.redirect),
        result.redirect_url,
        result.final_url,
        result.asset_type,
        result.error,
        result.error_type,
        str(result.status),
        result.validated_at.isoformat(),
        expires_at.isoformat(),
    )


def _row_to_stored(row: Sequence[Any]) -> StoredResult:
    result = ValidationResult(
        url=row[2],
        valid=bool(row[3]),
        status_code=row[4],
        content_type=row[5],
        content_length_bytes=row[6],
        response_time_ms=row[7],
        redirect=bool(row[8]),
        redirect_url=row[9],
        final_url=row[10],
        asset_type=row[11],
        error=row[12],
        error_type=row[13],
        status=ValidationStatus(row[14]),
        validated_at=datetime.fromisoformat(row[15]),
        expires_at=datetime.fromisoformat(row[16]),
    )
    return StoredResult(row_id=row[0], project_id=row[1], result=result)


class SqliteValidationCache:
    """SQLite-backed validation cache implementing ValidationCacheProtocol.

    One instance serves one project partition; ``project_id`` scopes every
    online read and write.
    """

    def __init__(self, db: aiosqlite.Connection, project_id: str = "default") -> None:
        self._db = db
        self.project_id = project_id

    async def init_db(self) -> None:
        """Create tables and indexes and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_RESULTS_TABLE)
        await self._db.execute(_CREATE_EXPIRES_INDEX)
        await self._db.execute(_CREATE_METADATA_TABLE)
        await self._db.commit()
        await self.ensure_unique_index()

    async def ensure_unique_index(self) -> bool:
        """Build the (project_id, url) unique index.

        Fails while duplicate rows exist; that is logged and the store keeps
        working without the index until a repair removes the duplicates.
        """
        try:
            await self._db.execute(_CREATE_UNIQUE_INDEX)
            await self._db.commit()
            return True
        except aiosqlite.IntegrityError:
            log.warning("unique_index_deferred", reason="duplicate_rows_present")
            return False
        except aiosqlite.Error:
            log.warning("unique_index_error", exc_info=True)
            return False

    # ------------------------------------------------------------------
    # Online lookups and writes
    # ------------------------------------------------------------------

    async def get(self, url: str) -> ValidationResult | None:
        """Read the oldest live row for ``url``. Returns ``None`` on miss or read failure.

        Expired rows for ``url`` are purged on the way; a live duplicate
        behind an expired one is still a hit.
        """
        now = datetime.now(UTC).isoformat()
        try:
            cursor = await self._db.execute(
                "DELETE FROM validated_urls WHERE project_id = ? AND url = ? AND expires_at < ?",
                (self.project_id, url, now),
            )
            if cursor.rowcount > 0:
                await self._db.commit()
                log.debug("cache_entry_expired", url=url, removed=cursor.rowcount)

            cursor = await self._db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM validated_urls "
                "WHERE project_id = ? AND url = ? AND expires_at >= ? ORDER BY id LIMIT 1",
                (self.project_id, url, now),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("cache_read_error", key=f"url:{url}", exc_info=True)
            return None
        if row is None:
            return None
        return _row_to_stored(row).result

    async def put(self, url: str, result: ValidationResult, ttl: timedelta) -> None:
        """Write a result, overwriting the existing row for ``url``. Non-fatal on failure."""
        expires_at = result.expires_at or datetime.now(UTC) + ttl
        params = _result_params(result.model_copy(update={"url": url}), expires_at)
        try:
            cursor = await self._db.execute(
                "SELECT id FROM validated_urls WHERE project_id = ? AND url = ? "
                "ORDER BY id LIMIT 1",
                (self.project_id, url),
            )
            row = await cursor.fetchone()
            if row is None:
                await self._db.execute(_INSERT_SQL, (self.project_id, *params))
            else:
                await self._db.execute(_UPDATE_SQL, (*params, row[0]))
            await self._db.commit()
        except aiosqlite.IntegrityError:
            # Another writer inserted the same url between our SELECT and INSERT.
            log.warning("cache_write_conflict", key=f"url:{url}")
        except aiosqlite.Error:
            log.warning("cache_write_error", key=f"url:{url}", exc_info=True)

    async def stats(self) -> CacheStats:
        try:
            cursor = await self._db.execute(
                "SELECT COUNT(*), COALESCE(SUM(CASE WHEN expires_at < ? THEN 1 ELSE 0 END), 0) "
                "FROM validated_urls WHERE project_id = ?",
                (datetime.now(UTC).isoformat(), self.project_id),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("cache_stats_error", exc_info=True)
            return CacheStats(size=0, expired_count=0)
        if row is None:
            return CacheStats(size=0, expired_count=0)
        return CacheStats(size=row[0], expired_count=row[1])

    async def clear(self) -> int:
        try:
            cursor = await self._db.execute(
                "DELETE FROM validated_urls WHERE project_id = ?", (self.project_id,)
            )
            removed = cursor.rowcount
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_clear_error", exc_info=True)
            return 0
        log.info("cache_cleared", removed=removed, backend="sqlite")
        return removed

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def sweep_if_due(self, interval_hours: int) -> None:
        """Sweep only if interval_hours have elapsed since the last run.

        Reads and writes ``last_sweep_at:<project>`` in ``server_metadata``.
        Falls through to sweep if the metadata row is missing or unreadable.
        Non-fatal on failure.
        """
        key = f"last_sweep_at:{self.project_id}"
        try:
            cursor = await self._db.execute(
                "SELECT value FROM server_metadata WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
            if row is not None:
                last_run = datetime.fromisoformat(row[0])
                if datetime.now(UTC) - last_run < timedelta(hours=interval_hours):
                    log.debug("cache_sweep_skipped", reason="not_due")
                    return
        except aiosqlite.Error:
            log.warning("cache_metadata_read_error", exc_info=True)

        await self.sweep()

        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO server_metadata (key, value) VALUES (?, ?)",
                (key, datetime.now(UTC).isoformat()),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_metadata_write_error", exc_info=True)

    async def sweep(self, max_age_minutes: int | None = None) -> int:
        """Delete expired rows, plus rows older than ``max_age_minutes`` when given."""
        now = datetime.now(UTC)
        try:
            if max_age_minutes is None:
                cursor = await self._db.execute(
                    "DELETE FROM validated_urls WHERE project_id = ? AND expires_at < ?",
                    (self.project_id, now.isoformat()),
                )
            else:
                cutoff = now - timedelta(minutes=max_age_minutes)
                cursor = await self._db.execute(
                    "DELETE FROM validated_urls WHERE project_id = ? "
                    "AND (expires_at < ? OR validated_at < ?)",
                    (self.project_id, now.isoformat(), cutoff.isoformat()),
                )
            removed = cursor.rowcount
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_sweep_error", exc_info=True)
            return 0
        log.info("cache_sweep_complete", removed=removed, backend="sqlite")
        return removed

    # ------------------------------------------------------------------
    # Reconciler support
    # ------------------------------------------------------------------

    async def list_projects(self) -> list[str]:
        try:
            cursor = await self._db.execute(
                "SELECT DISTINCT project_id FROM validated_urls ORDER BY project_id"
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise LinkProbeError(
                code=ErrorCode.STORAGE_ERROR,
                message=f"Could not list projects: {exc}",
                suggestion="Check that the cache database is readable.",
                recoverable=True,
            ) from exc
        return [row[0] for row in rows]

    async def load_rows(self, project_id: str) -> list[StoredResult]:
        """Return every stored row of a project in insertion order, expired or not."""
        try:
            cursor = await self._db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM validated_urls WHERE project_id = ? ORDER BY id",
                (project_id,),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise LinkProbeError(
                code=ErrorCode.STORAGE_ERROR,
                message=f"Could not load stored results for project {project_id!r}: {exc}",
                suggestion="Check that the cache database is readable.",
                recoverable=True,
            ) from exc
        return [_row_to_stored(row) for row in rows]

    async def replace_rows(self, project_id: str, rows: list[StoredResult]) -> None:
        """Replace a project's rows with ``rows`` in one transaction, keeping row ids."""
        try:
            await self._db.execute("DELETE FROM validated_urls WHERE project_id = ?", (project_id,))
            await self._db.executemany(
                _INSERT_WITH_ID_SQL,
                [
                    (
                        stored.row_id,
                        project_id,
                        *_result_params(
                            stored.result,
                            stored.result.expires_at or stored.result.validated_at,
                        ),
                    )
                    for stored in rows
                ],
            )
            await self._db.commit()
        except aiosqlite.Error as exc:
            await self._db.rollback()
            raise LinkProbeError(
                code=ErrorCode.STORAGE_ERROR,
                message=f"Could not persist repaired rows for project {project_id!r}: {exc}",
                suggestion="The original rows were left in place. Retry the repair.",
                recoverable=True,
            ) from exc


async def open_sqlite_cache(
    settings: Settings,
) -> tuple[SqliteValidationCache, aiosqlite.Connection]:
    """Open the durable store at the configured path and create its schema.

    The caller owns the returned connection and must close it.
    """
    db_path = Path(settings.cache.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(db_path))
    store = SqliteValidationCache(db, project_id=settings.cache.project_id)
    await store.init_db()
    return store, db
