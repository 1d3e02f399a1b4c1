"""Streamable HTTP transport and request guard for the MCP server."""

from __future__ import annotations

import re
import secrets
from typing import TYPE_CHECKING

import structlog
import uvicorn
from starlette.datastructures import Headers
from starlette.responses import Response

if TYPE_CHECKING:
    from mcp.server.fastmcp import FastMCP
    from starlette.types import ASGIApp, Receive, Scope, Send

    from linkprobe.config import Settings

log = structlog.get_logger()

SUPPORTED_PROTOCOL_VERSIONS: frozenset[str] = frozenset({"2025-11-25", "2025-03-26"})
_LOCALHOST_ORIGIN = re.compile(r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$")


class MCPSecurityMiddleware:
    """Pure ASGI guard in front of the Streamable HTTP app.

    Rejects a request when bearer auth is enabled and the key does not match
    (401), when the Origin header is not localhost (403), or when the client
    announces an MCP protocol version this server does not speak (400).
    Non-HTTP scopes (lifespan) pass straight through. Pure ASGI keeps SSE
    streams unbuffered.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        auth_enabled: bool,
        auth_key: str | None = None,
    ) -> None:
        self.app = app
        self.auth_enabled = auth_enabled
        self.auth_key = auth_key

    def _rejection(self, headers: Headers) -> Response | None:
        if self.auth_enabled:
            auth_header = headers.get("authorization", "")
            scheme, _, token = auth_header.partition(" ")
            if scheme != "Bearer" or not self.auth_key or token != self.auth_key:
                return Response("Unauthorized", status_code=401)

        origin = headers.get("origin", "")
        if origin and not _LOCALHOST_ORIGIN.match(origin):
            return Response("Forbidden", status_code=403)

        proto_version = headers.get("mcp-protocol-version", "")
        if proto_version and proto_version not in SUPPORTED_PROTOCOL_VERSIONS:
            return Response(f"Unsupported protocol version: {proto_version}", status_code=400)
        return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            rejection = self._rejection(Headers(scope=scope))
            if rejection is not None:
                log.debug(
                    "http_request_rejected",
                    path=scope.get("path"),
                    status_code=rejection.status_code,
                )
                await rejection(scope, receive, send)
                return
        await self.app(scope, receive, send)


def run_http_server(mcp: FastMCP, settings: Settings) -> None:
    """Serve the validation tools over Streamable HTTP with uvicorn."""
    http_log = log.bind(transport="http")

    auth_key: str | None = settings.server.auth_key or None
    if settings.server.auth_enabled and not auth_key:
        auth_key = secrets.token_urlsafe(32)
        http_log.warning("http_auth_key_auto_generated", auth_key=auth_key)
    if not settings.server.auth_enabled:
        http_log.warning("http_auth_disabled")

    secured_app = MCPSecurityMiddleware(
        mcp.streamable_http_app(),
        auth_enabled=settings.server.auth_enabled,
        auth_key=auth_key,
    )

    http_log.info("http_server_starting", host=settings.server.host, port=settings.server.port)
    uvicorn.run(
        secured_app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # structlog owns logging
    )
