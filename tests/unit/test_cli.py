"""Tests for the linkprobe-repair operator CLI."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import aiosqlite
import pytest
from click.testing import CliRunner
from structlog.testing import capture_logs

from tests.conftest import _make_result
from linkprobe.cache import _INSERT_SQL, SqliteValidationCache, _result_params
from linkprobe.cli import cli

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

DUPLICATED = "https://x.example.com"


def _seed(db_path: Path, project_id: str, urls: list[str]) -> None:
    async def _insert() -> None:
        async with aiosqlite.connect(str(db_path)) as db:
            await SqliteValidationCache(db, project_id=project_id).init_db()
            await db.execute("DROP INDEX IF EXISTS idx_validated_urls_unique")
            expires_at = datetime.now(UTC) + timedelta(days=7)
            for url in urls:
                params = _result_params(_make_result(url), expires_at)
                await db.execute(_INSERT_SQL, (project_id, *params))
            await db.commit()

    asyncio.run(_insert())


def _count_rows(db_path: Path, project_id: str) -> int:
    async def _count() -> int:
        async with aiosqlite.connect(str(db_path)) as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM validated_urls WHERE project_id = ?", (project_id,)
            )
            row = await cursor.fetchone()
            assert row is not None
            return row[0]

    return asyncio.run(_count())


@pytest.fixture(autouse=True)
def _quiet_logs() -> Iterator[None]:
    # Keep structlog's default stdout output out of the CLI output under test.
    with capture_logs():
        yield


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "validations.db"


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


class TestProjects:
    def test_empty_store(self, runner: CliRunner, db_path: Path) -> None:
        result = runner.invoke(cli, ["--db-path", str(db_path), "projects"])

        assert result.exit_code == 0
        assert "[INFO] No projects found." in result.output
        assert db_path.exists()

    def test_lists_projects(self, runner: CliRunner, db_path: Path) -> None:
        _seed(db_path, "survey", [DUPLICATED])
        _seed(db_path, "archive", [DUPLICATED])

        result = runner.invoke(cli, ["--db-path", str(db_path), "projects"])

        assert result.exit_code == 0
        assert result.output.splitlines() == ["archive", "survey"]


class TestAnalyze:
    def test_text_report(self, runner: CliRunner, db_path: Path) -> None:
        _seed(db_path, "default", [DUPLICATED, "https://a.example.com", DUPLICATED])

        result = runner.invoke(cli, ["--db-path", str(db_path), "analyze", "default"])

        assert result.exit_code == 0
        assert "total_urls: 3" in result.output
        assert "total_duplicates: 1" in result.output
        assert f"{DUPLICATED} (2 rows)" in result.output

    def test_json_report(self, runner: CliRunner, db_path: Path) -> None:
        _seed(db_path, "default", [DUPLICATED, DUPLICATED, DUPLICATED])

        result = runner.invoke(
            cli, ["--db-path", str(db_path), "analyze", "default", "--json", "--top", "1"]
        )

        assert result.exit_code == 0
        report = json.loads(result.output)
        assert report["unique_urls"] == 1
        assert report["total_duplicates"] == 2
        assert report["top_duplicates"] == [[DUPLICATED, 3]]

    def test_unknown_project_fails(self, runner: CliRunner, db_path: Path) -> None:
        result = runner.invoke(cli, ["--db-path", str(db_path), "analyze", "missing"])

        assert result.exit_code == 1
        assert "No stored results for project 'missing'" in result.output


class TestRepair:
    def test_repair_with_yes(self, runner: CliRunner, db_path: Path) -> None:
        _seed(db_path, "default", [DUPLICATED, "https://a.example.com", DUPLICATED])

        result = runner.invoke(cli, ["--db-path", str(db_path), "repair", "default", "--yes"])

        assert result.exit_code == 0
        assert "[SUCCESS] Repaired project 'default'" in result.output
        assert "removed: 1" in result.output
        assert _count_rows(db_path, "default") == 2

    def test_declined_confirmation_changes_nothing(
        self, runner: CliRunner, db_path: Path
    ) -> None:
        _seed(db_path, "default", [DUPLICATED, DUPLICATED])

        result = runner.invoke(
            cli, ["--db-path", str(db_path), "repair", "default"], input="n\n"
        )

        assert result.exit_code == 1
        assert "Aborted" in result.output
        assert _count_rows(db_path, "default") == 2

    def test_confirmed_prompt_repairs(self, runner: CliRunner, db_path: Path) -> None:
        _seed(db_path, "default", [DUPLICATED, DUPLICATED])

        result = runner.invoke(
            cli, ["--db-path", str(db_path), "repair", "default"], input="y\n"
        )

        assert result.exit_code == 0
        assert _count_rows(db_path, "default") == 1

    def test_clean_project_needs_no_repair(self, runner: CliRunner, db_path: Path) -> None:
        _seed(db_path, "default", ["https://a.example.com"])

        result = runner.invoke(cli, ["--db-path", str(db_path), "repair", "default", "--yes"])

        assert result.exit_code == 0
        assert "has no duplicate rows" in result.output
