"""Single-URL validation engine.

All outbound probes go through a single ValidationEngine instance. The engine
receives an httpx.AsyncClient via constructor injection and the lifespan owns
the client lifecycle. Network and classification failures are recorded on
the returned ValidationResult; nothing raised by httpx crosses this module.
"""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta
from typing import TYPE_CHECKING
from urllib.parse import urljoin

import httpx
import structlog

from linkprobe.classifier import (
    DEFAULT_POLICY,
    ClassifierPolicy,
    classify,
    classify_issue,
    detect_asset_type,
)
from linkprobe.models.validation import ValidationResult, ValidationStatus
from linkprobe.syntax import has_valid_syntax

if TYPE_CHECKING:
    from linkprobe.config import Settings
    from linkprobe.models.validation import ValidationOptions
    from linkprobe.protocols import ValidationCacheProtocol

log = structlog.get_logger()

DEFAULT_USER_AGENT = "linkprobe-validator/1.0"

# Servers that refuse HEAD answer with one of these; the probe retries with GET.
_HEAD_REJECTED_STATUSES = frozenset({405, 501})


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    return httpx.AsyncClient(
        follow_redirects=False,
        timeout=httpx.Timeout(10.0, connect=5.0),
        headers={"User-Agent": settings.validation.user_agent},
        limits=httpx.Limits(
            max_connections=settings.validation.max_concurrent_requests,
            max_keepalive_connections=max(1, settings.validation.max_concurrent_requests // 2),
        ),
    )


def build_policy(settings: Settings) -> ClassifierPolicy:
    return ClassifierPolicy(
        content_types=frozenset(t.lower() for t in settings.validation.content_types),
        max_content_bytes=settings.validation.max_content_bytes,
    )


def _parse_content_length(value: str | None) -> int:
    if value is None:
        return -1
    try:
        length = int(value.strip())
    except ValueError:
        return -1
    return length if length >= 0 else -1


def _request_timeout(options: ValidationOptions) -> httpx.Timeout:
    connect = options.connect_timeout_ms / 1000
    socket = options.socket_timeout_ms / 1000
    return httpx.Timeout(connect=connect, read=socket, write=socket, pool=connect)


def _resolve_location(base: str, location: str) -> str:
    """Resolve a ``Location`` header against ``base``.

    Raises ``ValueError`` or ``httpx.InvalidURL`` when the target is malformed.
    """
    target = urljoin(base, location)
    httpx.URL(target)
    return target


class ValidationEngine:
    """Runs one URL through syntax check → probe → classification → cache write."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: ValidationCacheProtocol | None,
        *,
        cache_ttl: timedelta = timedelta(minutes=60),
        policy: ClassifierPolicy = DEFAULT_POLICY,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._client = client
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._policy = policy
        self._user_agent = user_agent

    async def validate(self, url: str, options: ValidationOptions) -> ValidationResult:
        """Validate ``url`` and cache the outcome under the original input URL.

        Always returns a terminal result. Cancellation marks the result
        CANCELLED and propagates without a cache write.
        """
        result = ValidationResult(url=url)
        try:
            await self._run(result, options)
        except asyncio.CancelledError:
            result.fail("validation cancelled", "cancelled", ValidationStatus.CANCELLED)
            log.info("validation_cancelled", url=url)
            raise

        log.info(
            "validation_complete",
            url=url,
            status=result.status,
            valid=result.valid,
            status_code=result.status_code,
            response_time_ms=result.response_time_ms,
            error_type=result.error_type,
        )

        if self._cache is not None:
            result.expires_at = result.validated_at + self._cache_ttl
            # Cache implementations swallow their own storage errors.
            await self._cache.put(url, result, self._cache_ttl)
        return result

    async def _run(self, result: ValidationResult, options: ValidationOptions) -> None:
        if not has_valid_syntax(result.url):
            result.fail("invalid syntax", "invalid_syntax")
            return

        result.start()
        started = time.monotonic()
        try:
            response = await self._probe(result.url, options)
        except httpx.TimeoutException as exc:
            result.response_time_ms = int((time.monotonic() - started) * 1000)
            result.fail(
                f"timed out: {exc}" if str(exc) else "timed out",
                "timeout",
                ValidationStatus.TIMEOUT,
            )
            return
        except httpx.HTTPError as exc:
            result.response_time_ms = int((time.monotonic() - started) * 1000)
            result.fail(str(exc) or type(exc).__name__, "connection_error")
            return
        except (httpx.InvalidURL, ValueError) as exc:
            # Malformed request URL or redirect Location.
            result.response_time_ms = int((time.monotonic() - started) * 1000)
            result.fail(f"invalid URL: {exc}", "invalid_url")
            return

        result.response_time_ms = int((time.monotonic() - started) * 1000)
        result.status_code = response.status_code
        result.final_url = str(response.url)
        result.content_type = response.headers.get("content-type")
        result.content_length_bytes = _parse_content_length(
            response.headers.get("content-length")
        )
        result.asset_type = detect_asset_type(result.final_url, result.content_type)

        location = response.headers.get("location")
        if 300 <= response.status_code < 400 and location:
            result.redirect = True
            try:
                result.redirect_url = _resolve_location(result.final_url, location)
            except (httpx.InvalidURL, ValueError) as exc:
                result.fail(f"invalid URL: {exc}", "invalid_url")
                return
            result.fail(f"redirect to {result.redirect_url}", "redirect")
            return

        reason = classify(
            result.status_code,
            result.content_type,
            result.content_length_bytes,
            self._policy,
            check_content_type=options.validate_content_type,
        )
        if reason is not None:
            result.fail(reason, classify_issue(reason))
            return
        result.succeed()

    async def _probe(self, url: str, options: ValidationOptions) -> httpx.Response:
        """Issue HEAD (GET if HEAD is refused), following redirects hop by hop.

        When ``max_redirects`` is exhausted the last 3xx response is returned
        as the final answer rather than raising.
        """
        timeout = _request_timeout(options)
        current_url = url

        for hop in range(options.max_redirects + 1):
            response = await self._send("HEAD", current_url, timeout)
            if response.status_code in _HEAD_REJECTED_STATUSES:
                log.debug("head_rejected", url=current_url, status_code=response.status_code)
                response = await self._send("GET", current_url, timeout)

            if not (options.follow_redirects and response.is_redirect):
                return response
            if hop == options.max_redirects:
                log.info("redirect_limit_reached", url=url, max_redirects=options.max_redirects)
                return response
            current_url = _resolve_location(str(response.url), response.headers["location"])

        # Unreachable but satisfies the type checker
        return response

    async def _send(self, method: str, url: str, timeout: httpx.Timeout) -> httpx.Response:
        request = self._client.build_request(
            method,
            url,
            headers={"User-Agent": self._user_agent},
            timeout=timeout,
        )
        # Only headers matter; the body of a GET fallback is never read.
        response = await self._client.send(request, stream=True, follow_redirects=False)
        await response.aclose()
        return response
