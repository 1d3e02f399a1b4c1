"""Tool handlers for the Reconciler: list_projects, analyze_duplicates, repair_dataset.

All three require the sqlite cache backend; the in-process cache cannot
accumulate duplicates.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from linkprobe.errors import ErrorCode, LinkProbeError
from linkprobe.models.tools import AnalyzeDuplicatesInput, ListProjectsOutput, ProjectInput

if TYPE_CHECKING:
    from linkprobe.reconciler import Reconciler
    from linkprobe.state import AppState


def _require_reconciler(state: AppState) -> Reconciler:
    if state.reconciler is None:
        raise LinkProbeError(
            code=ErrorCode.INVALID_INPUT,
            message="Duplicate repair is only available with the sqlite cache backend.",
            suggestion="Set LINKPROBE__CACHE__BACKEND=sqlite and restart the server.",
            recoverable=False,
        )
    return state.reconciler


def _invalid_project(exc: ValueError) -> LinkProbeError:
    return LinkProbeError(
        code=ErrorCode.INVALID_INPUT,
        message=str(exc),
        suggestion="Provide a non-empty project_id (max 200 chars); top_n must be 1-100.",
        recoverable=False,
    )


async def handle_list_projects(state: AppState) -> dict:
    structlog.get_logger().bind(tool="list_projects").info("handler_called")
    projects = await _require_reconciler(state).list_projects()
    return ListProjectsOutput(projects=projects).model_dump(mode="json")


async def handle_analyze(project_id: str, top_n: int, state: AppState) -> dict:
    log = structlog.get_logger().bind(tool="analyze_duplicates", project_id=project_id)
    log.info("handler_called")

    try:
        validated = AnalyzeDuplicatesInput(project_id=project_id, top_n=top_n)
    except ValueError as exc:
        raise _invalid_project(exc) from exc

    report = await _require_reconciler(state).analyze_duplicates(
        validated.project_id, top_n=validated.top_n
    )
    return report.model_dump(mode="json")


async def handle_repair(project_id: str, state: AppState) -> dict:
    """Repair never raises for storage faults; check ``success`` in the result."""
    log = structlog.get_logger().bind(tool="repair_dataset", project_id=project_id)
    log.info("handler_called")

    try:
        validated = ProjectInput(project_id=project_id)
    except ValueError as exc:
        raise _invalid_project(exc) from exc

    outcome = await _require_reconciler(state).repair_dataset(validated.project_id)
    return outcome.model_dump(mode="json")
