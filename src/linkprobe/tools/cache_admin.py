"""Tool handlers for cache inspection and eviction."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from linkprobe.errors import ErrorCode, LinkProbeError
from linkprobe.models.tools import CacheStatsOutput, RemovedCountOutput, SweepCacheInput

if TYPE_CHECKING:
    from linkprobe.protocols import ValidationCacheProtocol
    from linkprobe.state import AppState


def _require_cache(state: AppState) -> ValidationCacheProtocol:
    if state.cache is None:
        raise RuntimeError("Cache not initialized")
    return state.cache


async def handle_stats(state: AppState) -> dict:
    structlog.get_logger().bind(tool="cache_stats").info("handler_called")
    stats = await _require_cache(state).stats()
    output = CacheStatsOutput(
        backend=state.settings.cache.backend,
        size=stats.size,
        expired_count=stats.expired_count,
    )
    return output.model_dump(mode="json")


async def handle_clear(state: AppState) -> dict:
    structlog.get_logger().bind(tool="clear_cache").info("handler_called")
    removed = await _require_cache(state).clear()
    return RemovedCountOutput(removed=removed).model_dump(mode="json")


async def handle_sweep(max_age_minutes: int | None, state: AppState) -> dict:
    """Evict expired entries, or everything older than max_age_minutes when given."""
    log = structlog.get_logger().bind(tool="sweep_cache", max_age_minutes=max_age_minutes)
    log.info("handler_called")

    try:
        validated = SweepCacheInput(max_age_minutes=max_age_minutes)
    except ValueError as exc:
        raise LinkProbeError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Omit max_age_minutes or pass a positive number of minutes.",
            recoverable=False,
        ) from exc

    removed = await _require_cache(state).sweep(validated.max_age_minutes)
    return RemovedCountOutput(removed=removed).model_dump(mode="json")
