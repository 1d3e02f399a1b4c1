"""Integration test fixtures.

Provides a fully wired AppState over an in-memory SQLite store and a real
httpx client (mocked per test with respx).
"""

from __future__ import annotations

import os
from datetime import timedelta
from typing import TYPE_CHECKING

import aiosqlite
import httpx
import pytest

from linkprobe.batch import BatchValidator
from linkprobe.cache import SqliteValidationCache
from linkprobe.config import Settings
from linkprobe.reconciler import Reconciler
from linkprobe.state import AppState
from linkprobe.validator import ValidationEngine

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Baseline env dict for subprocess-based MCP integration tests.

    Overrides any local linkprobe.yaml by forcing stdio transport and
    pointing the durable store at an isolated tmp directory.
    """
    env = os.environ.copy()
    env["LINKPROBE__SERVER__TRANSPORT"] = "stdio"
    env["LINKPROBE__CACHE__BACKEND"] = "sqlite"
    env["LINKPROBE__CACHE__DB_PATH"] = str(tmp_path / "validations.db")
    env["LINKPROBE__LOGGING__LEVEL"] = "WARNING"
    return env


@pytest.fixture()
async def app_state() -> AsyncGenerator[AppState, None]:
    """Full AppState wired the way the server lifespan builds it for sqlite."""
    async with aiosqlite.connect(":memory:") as db:
        store = SqliteValidationCache(db, project_id="default")
        await store.init_db()

        async with httpx.AsyncClient() as client:
            engine = ValidationEngine(client, store, cache_ttl=timedelta(days=7))
            batch = BatchValidator(engine, store, max_batch_size=100)

            yield AppState(
                settings=Settings(),
                http_client=client,
                cache=store,
                engine=engine,
                batch=batch,
                reconciler=Reconciler(store),
            )
            await batch.aclose()
