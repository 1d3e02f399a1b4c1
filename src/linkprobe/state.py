"""Application state container.

AppState is created once at server startup (inside the FastMCP lifespan context
manager) and injected into every tool handler via the MCP Context object.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from linkprobe.batch import BatchValidator
    from linkprobe.config import Settings
    from linkprobe.protocols import ValidationCacheProtocol, ValidatorProtocol
    from linkprobe.reconciler import Reconciler


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every tool handler."""

    settings: Settings

    http_client: httpx.AsyncClient | None = None
    cache: ValidationCacheProtocol | None = None
    engine: ValidatorProtocol | None = None
    batch: BatchValidator | None = None

    # Only set for the sqlite backend; the in-process cache has nothing to repair.
    reconciler: Reconciler | None = None
