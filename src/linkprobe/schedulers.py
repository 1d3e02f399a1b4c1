"""Background scheduler coroutine for cache sweeps."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from linkprobe.state import AppState

log = structlog.get_logger()


async def run_cache_sweep_scheduler(state: AppState) -> None:
    """Sweep expired entries at startup and (HTTP mode) on the configured interval."""
    interval_hours = state.settings.cache.sweep_interval_hours

    # Both transports: run at startup, skipping if it ran recently.
    if state.cache is not None:
        await state.cache.sweep_if_due(interval_hours)

    if state.settings.server.transport != "http":
        return

    # HTTP long-running mode: repeat on the configured interval.
    while True:
        await asyncio.sleep(interval_hours * 3600)
        if state.cache is None:
            continue
        try:
            await state.cache.sweep_if_due(interval_hours)
        except Exception:
            log.warning("cache_sweep_scheduler_error", exc_info=True)
