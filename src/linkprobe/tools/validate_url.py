"""Tool handlers for single-URL validation and cached-result lookup.

Receive AppState, validate input with pydantic, and return structured
dicts. No MCP or FastMCP imports; server.py handles the MCP wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from linkprobe.errors import ErrorCode, LinkProbeError
from linkprobe.models.tools import GetValidationResultInput
from linkprobe.models.validation import ValidateUrlInput

if TYPE_CHECKING:
    from linkprobe.state import AppState


async def handle(url: str, overrides: dict[str, Any], state: AppState) -> dict:
    """Handle a validate_url tool call."""
    log = structlog.get_logger().bind(tool="validate_url", url=url)
    log.info("handler_called")

    try:
        validated = ValidateUrlInput(url=url, **overrides)
    except ValueError as exc:
        raise LinkProbeError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion=(
                "Provide a non-empty URL (max 2048 chars); timeouts must be 1000-30000 ms "
                "and max_redirects 0-10."
            ),
            recoverable=False,
        ) from exc

    if state.batch is None:
        raise RuntimeError("Batch validator not initialized")

    # The probe keeps running (and is cached) even if this call is cancelled.
    pending = await state.batch.validate_async(validated.url, validated)
    result = await pending
    return result.model_dump(mode="json")


async def handle_get_result(url: str, state: AppState) -> dict:
    """Handle a get_validation_result tool call. Never touches the network."""
    log = structlog.get_logger().bind(tool="get_validation_result", url=url)
    log.info("handler_called")

    try:
        validated = GetValidationResultInput(url=url)
    except ValueError as exc:
        raise LinkProbeError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Provide the exact URL that was validated.",
            recoverable=False,
        ) from exc

    if state.cache is None:
        raise RuntimeError("Cache not initialized")

    result = await state.cache.get(validated.url)
    if result is None:
        raise LinkProbeError(
            code=ErrorCode.RESULT_NOT_FOUND,
            message=f"No live validation result for {validated.url}",
            suggestion="Call validate_url first; results expire after the configured TTL.",
            recoverable=True,
        )
    return result.model_dump(mode="json")
