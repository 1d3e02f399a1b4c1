"""Tool handlers for validate_urls and summarize_urls.

Batch size limits are enforced by the BatchValidator, which raises
LinkProbeError before any network access.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from linkprobe.errors import ErrorCode, LinkProbeError
from linkprobe.models.tools import ValidateUrlsOutput
from linkprobe.models.validation import BatchRequest

if TYPE_CHECKING:
    from linkprobe.batch import BatchValidator
    from linkprobe.state import AppState


def _parse(
    urls: list[str], overrides: dict[str, Any], state: AppState
) -> tuple[BatchRequest, BatchValidator]:
    try:
        validated = BatchRequest(urls=urls, **overrides)
    except ValueError as exc:
        raise LinkProbeError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion=(
                "Provide a list of URLs; timeouts must be 1000-30000 ms and max_redirects 0-10."
            ),
            recoverable=False,
        ) from exc

    if state.batch is None:
        raise RuntimeError("Batch validator not initialized")
    return validated, state.batch


async def handle(urls: list[str], overrides: dict[str, Any], state: AppState) -> dict:
    """Handle a validate_urls tool call. Results follow input order."""
    log = structlog.get_logger().bind(tool="validate_urls", size=len(urls))
    log.info("handler_called")

    request, batch = _parse(urls, overrides, state)
    results = await batch.validate_batch(request.urls, request.options())
    return ValidateUrlsOutput(results=results).model_dump(mode="json")


async def handle_summary(urls: list[str], overrides: dict[str, Any], state: AppState) -> dict:
    """Handle a summarize_urls tool call."""
    log = structlog.get_logger().bind(tool="summarize_urls", size=len(urls))
    log.info("handler_called")

    request, batch = _parse(urls, overrides, state)
    summary = await batch.validate_batch_summary(request.urls, request.options())
    log.info("summary_complete", total=summary.total, success=summary.success)
    return summary.model_dump(mode="json")
