"""MCP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the FastMCP lifespan context manager
- Register tools
- Start the correct transport (stdio or HTTP)
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager, suppress
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import aiosqlite
import structlog
from mcp.server.fastmcp import Context, FastMCP
from mcp.types import CallToolResult, TextContent

import linkprobe.tools.cache_admin as t_cache
import linkprobe.tools.repair as t_repair
import linkprobe.tools.validate_batch as t_batch
import linkprobe.tools.validate_url as t_validate
from linkprobe import __version__
from linkprobe.batch import BatchValidator
from linkprobe.cache import open_sqlite_cache
from linkprobe.config import Settings
from linkprobe.errors import LinkProbeError
from linkprobe.log import setup_logging
from linkprobe.memory_cache import InMemoryValidationCache
from linkprobe.reconciler import Reconciler
from linkprobe.schedulers import run_cache_sweep_scheduler
from linkprobe.state import AppState
from linkprobe.transport import run_http_server
from linkprobe.validator import ValidationEngine, build_http_client, build_policy

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable

    from linkprobe.protocols import ValidationCacheProtocol

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncGenerator[AppState, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    settings = Settings()
    setup_logging(settings)

    log.info(
        "server_starting",
        version=__version__,
        transport=settings.server.transport,
        cache_backend=settings.cache.backend,
    )

    http_client = build_http_client(settings)

    db: aiosqlite.Connection | None = None
    reconciler: Reconciler | None = None
    cache: ValidationCacheProtocol
    if settings.cache.backend == "sqlite":
        store, db = await open_sqlite_cache(settings)
        cache = store
        reconciler = Reconciler(store)
        cache_ttl = timedelta(days=settings.cache.result_expiration_days)
    else:
        cache = InMemoryValidationCache()
        cache_ttl = timedelta(minutes=settings.cache.ttl_minutes)

    engine = ValidationEngine(
        http_client,
        cache,
        cache_ttl=cache_ttl,
        policy=build_policy(settings),
        user_agent=settings.validation.user_agent,
    )
    batch = BatchValidator(
        engine,
        cache,
        max_batch_size=settings.validation.max_batch_size,
        max_concurrent_requests=settings.validation.max_concurrent_requests,
    )

    state = AppState(
        settings=settings,
        http_client=http_client,
        cache=cache,
        engine=engine,
        batch=batch,
        reconciler=reconciler,
    )

    sweep_task = asyncio.create_task(run_cache_sweep_scheduler(state))

    log.info("server_started", version=__version__, cache_ttl_seconds=cache_ttl.total_seconds())

    try:
        yield state
    finally:
        sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await sweep_task
        await batch.aclose()
        await http_client.aclose()
        if db is not None:
            await db.close()
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# FastMCP instance and tool registration
# ---------------------------------------------------------------------------

mcp = FastMCP("linkprobe", lifespan=lifespan)
# FastMCP doesn't expose a version kwarg; set it on the underlying Server
# so the MCP initialize handshake reports our version, not the SDK's.
mcp._mcp_server.version = __version__  # pyright: ignore[reportPrivateUsage]


def _serialise_tool_error(error: LinkProbeError) -> CallToolResult:
    """Convert a LinkProbeError to the MCP tool error result envelope."""
    return CallToolResult(
        content=[TextContent(type="text", text=json.dumps(error.to_dict()))],
        isError=True,
    )


async def _dispatch(tool: str, call: Awaitable[dict]) -> object:
    try:
        return await call
    except LinkProbeError as exc:
        log.warning(
            "tool_error",
            tool=tool,
            code=exc.code,
            message=exc.message,
            recoverable=exc.recoverable,
        )
        return _serialise_tool_error(exc)
    except Exception:
        log.error("tool_unexpected_error", tool=tool, exc_info=True)
        raise


def _overrides(**options: Any) -> dict[str, Any]:
    """Drop options the caller left unset so the model defaults apply."""
    return {name: value for name, value in options.items() if value is not None}


@mcp.tool()
async def validate_url(
    url: str,
    ctx: Context,
    connect_timeout_ms: int | None = None,
    socket_timeout_ms: int | None = None,
    follow_redirects: bool | None = None,
    max_redirects: int | None = None,
    validate_content_type: bool | None = None,
) -> object:
    """Check that a URL is well-formed, reachable, and serves an accepted content type.

    Returns the cached result when one is still live. Failures (bad syntax,
    timeouts, non-200 status, rejected content type, oversized content,
    unresolved redirects) come back as a result with valid=false and an
    error/error_type, not as a tool error.
    """
    state: AppState = ctx.request_context.lifespan_context
    overrides = _overrides(
        connect_timeout_ms=connect_timeout_ms,
        socket_timeout_ms=socket_timeout_ms,
        follow_redirects=follow_redirects,
        max_redirects=max_redirects,
        validate_content_type=validate_content_type,
    )
    return await _dispatch("validate_url", t_validate.handle(url, overrides, state))


@mcp.tool()
async def validate_urls(
    urls: list[str],
    ctx: Context,
    parallel: bool | None = None,
    connect_timeout_ms: int | None = None,
    socket_timeout_ms: int | None = None,
    follow_redirects: bool | None = None,
    max_redirects: int | None = None,
    validate_content_type: bool | None = None,
) -> object:
    """Validate a batch of URLs. Results are returned in the same order as the input."""
    state: AppState = ctx.request_context.lifespan_context
    overrides = _overrides(
        parallel=parallel,
        connect_timeout_ms=connect_timeout_ms,
        socket_timeout_ms=socket_timeout_ms,
        follow_redirects=follow_redirects,
        max_redirects=max_redirects,
        validate_content_type=validate_content_type,
    )
    return await _dispatch("validate_urls", t_batch.handle(urls, overrides, state))


@mcp.tool()
async def summarize_urls(
    urls: list[str],
    ctx: Context,
    parallel: bool | None = None,
    connect_timeout_ms: int | None = None,
    socket_timeout_ms: int | None = None,
    follow_redirects: bool | None = None,
    max_redirects: int | None = None,
    validate_content_type: bool | None = None,
) -> object:
    """Validate a batch of URLs and return aggregate counts instead of per-URL results."""
    state: AppState = ctx.request_context.lifespan_context
    overrides = _overrides(
        parallel=parallel,
        connect_timeout_ms=connect_timeout_ms,
        socket_timeout_ms=socket_timeout_ms,
        follow_redirects=follow_redirects,
        max_redirects=max_redirects,
        validate_content_type=validate_content_type,
    )
    return await _dispatch("summarize_urls", t_batch.handle_summary(urls, overrides, state))


@mcp.tool()
async def get_validation_result(url: str, ctx: Context) -> object:
    """Return the cached validation result for a URL without probing it."""
    state: AppState = ctx.request_context.lifespan_context
    return await _dispatch("get_validation_result", t_validate.handle_get_result(url, state))


@mcp.tool()
async def cache_stats(ctx: Context) -> object:
    """Report the cache backend, entry count, and how many entries have expired."""
    state: AppState = ctx.request_context.lifespan_context
    return await _dispatch("cache_stats", t_cache.handle_stats(state))


@mcp.tool()
async def clear_cache(ctx: Context) -> object:
    """Remove every cached validation result."""
    state: AppState = ctx.request_context.lifespan_context
    return await _dispatch("clear_cache", t_cache.handle_clear(state))


@mcp.tool()
async def sweep_cache(ctx: Context, max_age_minutes: int | None = None) -> object:
    """Evict expired results, or all results older than max_age_minutes."""
    state: AppState = ctx.request_context.lifespan_context
    return await _dispatch("sweep_cache", t_cache.handle_sweep(max_age_minutes, state))


@mcp.tool()
async def list_projects(ctx: Context) -> object:
    """List the project partitions present in the durable result store."""
    state: AppState = ctx.request_context.lifespan_context
    return await _dispatch("list_projects", t_repair.handle_list_projects(state))


@mcp.tool()
async def analyze_duplicates(project_id: str, ctx: Context, top_n: int = 5) -> object:
    """Count duplicate stored rows in a project and list the most duplicated URLs."""
    state: AppState = ctx.request_context.lifespan_context
    return await _dispatch(
        "analyze_duplicates", t_repair.handle_analyze(project_id, top_n, state)
    )


@mcp.tool()
async def repair_dataset(project_id: str, ctx: Context) -> object:
    """Delete duplicate stored rows in a project, keeping the first-recorded row per URL."""
    state: AppState = ctx.request_context.lifespan_context
    return await _dispatch("repair_dataset", t_repair.handle_repair(project_id, state))


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()

    if settings.server.transport == "http":
        setup_logging(settings)
        run_http_server(mcp, settings)
        return

    mcp.run()


if __name__ == "__main__":
    main()
