"""Batch orchestration over the validation engine.

Every URL is looked up in the cache first and only probed on a miss. Parallel
batches fan out as asyncio tasks bounded by a shared semaphore; each task
writes into its own pre-sized slot so the output order always matches the
input order, whatever order the probes finish in.

There is no single-flight guard: two concurrent callers asking for the same
uncached URL both probe it, and the later cache write wins.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, cast

import structlog

from linkprobe.classifier import ASSET_TYPES
from linkprobe.errors import ErrorCode, LinkProbeError
from linkprobe.models.summary import SummaryResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from linkprobe.models.validation import ValidationOptions, ValidationResult
    from linkprobe.protocols import ValidationCacheProtocol, ValidatorProtocol

log = structlog.get_logger()


def summarize(results: Sequence[ValidationResult]) -> SummaryResult:
    """Count outcomes by derived classification and tally issue types."""
    summary = SummaryResult()
    for result in results:
        summary.total += 1
        if result.valid:
            summary.success += 1
            if result.content_length_bytes == 0:
                summary.empty_content += 1
                summary.record_issue("empty_content")
            elif result.asset_type in ASSET_TYPES:
                summary.with_assets += 1
            else:
                summary.no_assets += 1
                summary.record_issue("no_assets")
        elif result.redirect:
            summary.redirects += 1
            summary.record_issue(result.error_type or "redirect")
        else:
            summary.errors += 1
            summary.record_issue(result.error_type or "unclassified")
    return summary


class BatchValidator:
    """Runs the validation engine over single URLs and ordered batches."""

    def __init__(
        self,
        engine: ValidatorProtocol,
        cache: ValidationCacheProtocol | None,
        *,
        max_batch_size: int = 100,
        max_concurrent_requests: int = 10,
    ) -> None:
        self._engine = engine
        self._cache = cache
        self.max_batch_size = max_batch_size
        self._semaphore = asyncio.Semaphore(max_concurrent_requests)
        self._background: set[asyncio.Task[ValidationResult]] = set()

    async def validate_one(self, url: str, options: ValidationOptions) -> ValidationResult:
        """Return a live cached result, or probe the URL on a miss."""
        if self._cache is not None:
            cached = await self._cache.get(url)
            if cached is not None:
                log.debug("cache_hit", url=url)
                return cached
        return await self._engine.validate(url, options)

    async def validate_async(
        self, url: str, options: ValidationOptions
    ) -> asyncio.Future[ValidationResult]:
        """Return a handle that resolves to the result for ``url``.

        A live cache hit resolves immediately without touching the network.
        On a miss the probe runs as a background task; cancelling or dropping
        the returned handle does not abort it, and its result is still cached.
        """
        if self._cache is not None:
            cached = await self._cache.get(url)
            if cached is not None:
                log.debug("cache_hit", url=url, mode="async")
                done: asyncio.Future[ValidationResult] = (
                    asyncio.get_running_loop().create_future()
                )
                done.set_result(cached)
                return done

        task = asyncio.create_task(self._engine.validate(url, options))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return asyncio.shield(task)

    async def validate_batch(
        self, urls: Sequence[str], options: ValidationOptions
    ) -> list[ValidationResult]:
        """Validate every URL and return one result per input, in input order.

        Raises LinkProbeError for an empty or oversized batch before any I/O.
        """
        self._check_batch(urls)
        log.info("batch_started", size=len(urls), parallel=options.parallel)

        if options.parallel:
            results = await self._validate_parallel(urls, options)
        else:
            results = [await self.validate_one(url, options) for url in urls]

        log.info(
            "batch_complete",
            size=len(results),
            valid=sum(1 for result in results if result.valid),
        )
        return results

    async def validate_batch_summary(
        self, urls: Sequence[str], options: ValidationOptions
    ) -> SummaryResult:
        return summarize(await self.validate_batch(urls, options))

    async def aclose(self) -> None:
        """Cancel probes still running from validate_async. Called at shutdown."""
        pending = list(self._background)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _check_batch(self, urls: Sequence[str]) -> None:
        if not urls:
            log.warning("batch_rejected", reason="empty")
            raise LinkProbeError(
                code=ErrorCode.EMPTY_BATCH,
                message="The batch contains no URLs.",
                suggestion="Provide at least one URL to validate.",
                recoverable=False,
            )
        if len(urls) > self.max_batch_size:
            log.warning(
                "batch_rejected", reason="too_large", size=len(urls), limit=self.max_batch_size
            )
            raise LinkProbeError(
                code=ErrorCode.BATCH_TOO_LARGE,
                message=f"Batch of {len(urls)} URLs exceeds the maximum of {self.max_batch_size}.",
                suggestion=f"Split the request into batches of at most {self.max_batch_size}.",
                recoverable=False,
            )

    async def _validate_parallel(
        self, urls: Sequence[str], options: ValidationOptions
    ) -> list[ValidationResult]:
        slots: list[ValidationResult | None] = [None] * len(urls)

        async def _worker(index: int, url: str) -> None:
            async with self._semaphore:
                slots[index] = await self.validate_one(url, options)

        async with asyncio.TaskGroup() as tg:
            for index, url in enumerate(urls):
                tg.create_task(_worker(index, url))

        # TaskGroup only exits once every worker has filled its slot.
        return cast("list[ValidationResult]", slots)
