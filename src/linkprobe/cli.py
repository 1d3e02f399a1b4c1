"""Operator CLI for inspecting and repairing duplicate rows in the durable store."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, TypeVar

import click

from linkprobe.cache import open_sqlite_cache
from linkprobe.config import Settings
from linkprobe.errors import LinkProbeError
from linkprobe.log import setup_logging
from linkprobe.reconciler import Reconciler

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from linkprobe.models.repair import DuplicateReport

T = TypeVar("T")


async def _with_reconciler(
    settings: Settings, action: Callable[[Reconciler], Awaitable[T]]
) -> T:
    store, db = await open_sqlite_cache(settings)
    try:
        return await action(Reconciler(store))
    finally:
        await db.close()


def _run(settings: Settings, action: Callable[[Reconciler], Awaitable[T]]) -> T:
    try:
        return asyncio.run(_with_reconciler(settings, action))
    except LinkProbeError as exc:
        raise click.ClickException(f"{exc.message} {exc.suggestion}") from exc


def _print_report(report: DuplicateReport) -> None:
    click.echo(f"\n[INFO] Duplicate analysis for project {report.project_id!r}")
    click.echo(f"  total_urls: {report.total_urls}")
    click.echo(f"  unique_urls: {report.unique_urls}")
    click.echo(f"  total_duplicates: {report.total_duplicates}")
    click.echo(f"  urls_with_duplicates: {report.urls_with_duplicates}")
    if report.top_duplicates:
        click.echo("  Most duplicated:")
        for url, count in report.top_duplicates:
            click.echo(f"    - {url} ({count} rows)")


@click.group()
@click.option(
    "--db-path",
    type=click.Path(dir_okay=False),
    default=None,
    help="SQLite database to operate on (defaults to the configured cache.db_path).",
)
@click.pass_context
def cli(ctx: click.Context, db_path: str | None) -> None:
    """Find and remove duplicate validation results left by concurrent writers."""
    settings: Settings = ctx.obj if isinstance(ctx.obj, Settings) else Settings()
    if db_path is not None:
        settings.cache = settings.cache.model_copy(update={"db_path": db_path})
    ctx.obj = settings


@cli.command()
@click.pass_obj
def projects(settings: Settings) -> None:
    """List the projects present in the store."""
    names = _run(settings, lambda reconciler: reconciler.list_projects())
    if not names:
        click.echo("[INFO] No projects found.")
        return
    for name in names:
        click.echo(name)


@cli.command()
@click.argument("project_id")
@click.option(
    "--top", "top_n", default=5, type=click.IntRange(1, 100), help="Duplicated URLs to list"
)
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.pass_obj
def analyze(settings: Settings, project_id: str, top_n: int, as_json: bool) -> None:
    """Report duplicate rows in PROJECT_ID without changing anything."""
    report = _run(settings, lambda reconciler: reconciler.analyze_duplicates(project_id, top_n))
    if as_json:
        click.echo(json.dumps(report.model_dump(mode="json"), indent=2))
    else:
        _print_report(report)


@cli.command()
@click.argument("project_id")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
@click.pass_obj
def repair(settings: Settings, project_id: str, yes: bool) -> None:
    """Remove duplicate rows from PROJECT_ID, keeping the first-recorded row per URL."""
    report = _run(settings, lambda reconciler: reconciler.analyze_duplicates(project_id))
    if report.total_duplicates == 0:
        click.echo(f"[INFO] Project {project_id!r} has no duplicate rows.")
        return

    if not yes:
        click.confirm(
            f"Remove {report.total_duplicates} duplicate rows from {project_id!r}?",
            abort=True,
        )

    outcome = _run(settings, lambda reconciler: reconciler.repair_dataset(project_id))
    if not outcome.success:
        raise click.ClickException(f"Repair failed: {outcome.error}")

    click.echo(f"\n[SUCCESS] Repaired project {project_id!r}")
    click.echo(f"  rows_before: {outcome.rows_before}")
    click.echo(f"  rows_after: {outcome.rows_after}")
    click.echo(f"  removed: {outcome.removed}")


def main() -> None:
    settings = Settings()
    setup_logging(settings)
    cli(obj=settings)
