"""Unit tests for linkprobe.validator."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING

import httpx
import pytest
import respx

from linkprobe.config import Settings
from linkprobe.models.validation import ValidationOptions, ValidationStatus
from linkprobe.validator import (
    DEFAULT_USER_AGENT,
    ValidationEngine,
    _parse_content_length,
    build_http_client,
    build_policy,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from linkprobe.memory_cache import InMemoryValidationCache

URL = "https://example.com/report.pdf"
PDF_HEADERS = {"content-type": "application/pdf", "content-length": "1000"}


@pytest.fixture()
async def client() -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient() as c:
        yield c


@pytest.fixture()
def engine(client: httpx.AsyncClient, memory_cache: InMemoryValidationCache) -> ValidationEngine:
    return ValidationEngine(client, memory_cache, cache_ttl=timedelta(minutes=60))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestParseContentLength:
    def test_numeric(self) -> None:
        assert _parse_content_length("1000") == 1000

    def test_missing(self) -> None:
        assert _parse_content_length(None) == -1

    def test_garbage(self) -> None:
        assert _parse_content_length("lots") == -1

    def test_negative(self) -> None:
        assert _parse_content_length("-5") == -1


class TestBuilders:
    def test_http_client_does_not_follow_redirects(self) -> None:
        client = build_http_client(Settings())
        assert client.follow_redirects is False
        assert client.headers["user-agent"] == "linkprobe-validator/1.0"

    def test_policy_from_settings(self) -> None:
        settings = Settings(validation={"content_types": ["Text/CSS"], "max_content_bytes": 10})
        policy = build_policy(settings)
        assert policy.content_types == frozenset({"text/css"})
        assert policy.max_content_bytes == 10


# ---------------------------------------------------------------------------
# Successful probes
# ---------------------------------------------------------------------------


class TestValidateSuccess:
    @respx.mock
    async def test_valid_pdf(
        self, engine: ValidationEngine, options: ValidationOptions
    ) -> None:
        respx.head(URL).mock(return_value=httpx.Response(200, headers=PDF_HEADERS))

        result = await engine.validate(URL, options)

        assert result.valid is True
        assert result.status == ValidationStatus.SUCCESS
        assert result.status_code == 200
        assert result.content_type == "application/pdf"
        assert result.content_length_bytes == 1000
        assert result.asset_type == "document"
        assert result.final_url == URL
        assert result.error is None
        assert result.error_type is None
        assert result.redirect is False

    @respx.mock
    async def test_result_is_cached_with_expiry(
        self,
        engine: ValidationEngine,
        memory_cache: InMemoryValidationCache,
        options: ValidationOptions,
    ) -> None:
        respx.head(URL).mock(return_value=httpx.Response(200, headers=PDF_HEADERS))

        result = await engine.validate(URL, options)

        assert await memory_cache.get(URL) == result
        assert result.expires_at == result.validated_at + timedelta(minutes=60)

    @respx.mock
    async def test_missing_content_length_is_unknown(
        self, engine: ValidationEngine, options: ValidationOptions
    ) -> None:
        respx.head(URL).mock(
            return_value=httpx.Response(200, headers={"content-type": "application/pdf"})
        )

        result = await engine.validate(URL, options)

        assert result.valid is True
        assert result.content_length_bytes == -1

    @respx.mock
    async def test_sends_user_agent_and_per_request_timeouts(
        self, engine: ValidationEngine
    ) -> None:
        route = respx.head(URL).mock(return_value=httpx.Response(200, headers=PDF_HEADERS))
        options = ValidationOptions(connect_timeout_ms=2000, socket_timeout_ms=3000)

        await engine.validate(URL, options)

        request = route.calls.last.request
        assert request.headers["user-agent"] == DEFAULT_USER_AGENT
        assert request.extensions["timeout"]["connect"] == 2.0
        assert request.extensions["timeout"]["read"] == 3.0

    @respx.mock
    async def test_head_rejected_falls_back_to_get(
        self, engine: ValidationEngine, options: ValidationOptions
    ) -> None:
        head_route = respx.head(URL).mock(return_value=httpx.Response(405))
        get_route = respx.get(URL).mock(
            return_value=httpx.Response(200, headers=PDF_HEADERS, content=b"%PDF")
        )

        result = await engine.validate(URL, options)

        assert head_route.called
        assert get_route.called
        assert result.valid is True

    async def test_works_without_cache(
        self, client: httpx.AsyncClient, options: ValidationOptions
    ) -> None:
        engine = ValidationEngine(client, None)
        with respx.mock:
            respx.head(URL).mock(return_value=httpx.Response(200, headers=PDF_HEADERS))
            result = await engine.validate(URL, options)
        assert result.valid is True
        assert result.expires_at is None


# ---------------------------------------------------------------------------
# Failures recorded on the result
# ---------------------------------------------------------------------------


class TestValidateFailures:
    @respx.mock
    async def test_invalid_syntax_makes_no_request(
        self, engine: ValidationEngine, options: ValidationOptions
    ) -> None:
        result = await engine.validate("not a url", options)

        assert respx.calls.call_count == 0
        assert result.valid is False
        assert result.status == ValidationStatus.ERROR
        assert result.error == "invalid syntax"
        assert result.error_type == "invalid_syntax"
        assert result.status_code == 0

    @respx.mock
    async def test_not_found(self, engine: ValidationEngine, options: ValidationOptions) -> None:
        respx.head(URL).mock(return_value=httpx.Response(404, headers=PDF_HEADERS))

        result = await engine.validate(URL, options)

        assert result.valid is False
        assert result.status == ValidationStatus.ERROR
        assert result.error == "invalid response code: 404"
        assert result.error_type == "invalid_response_code"

    @respx.mock
    async def test_disallowed_content_type(
        self, engine: ValidationEngine, options: ValidationOptions
    ) -> None:
        respx.head(URL).mock(
            return_value=httpx.Response(200, headers={"content-type": "text/css"})
        )

        result = await engine.validate(URL, options)

        assert result.valid is False
        assert result.error == "invalid content type: text/css"
        assert result.error_type == "invalid_content_type"

    @respx.mock
    async def test_content_type_check_disabled(self, engine: ValidationEngine) -> None:
        respx.head(URL).mock(
            return_value=httpx.Response(200, headers={"content-type": "text/css"})
        )

        result = await engine.validate(URL, ValidationOptions(validate_content_type=False))

        assert result.valid is True

    @respx.mock
    async def test_oversized_content(
        self, engine: ValidationEngine, options: ValidationOptions
    ) -> None:
        headers = {"content-type": "application/pdf", "content-length": str(6 * 1024 * 1024)}
        respx.head(URL).mock(return_value=httpx.Response(200, headers=headers))

        result = await engine.validate(URL, options)

        assert result.valid is False
        assert result.error_type == "content_too_large"
        assert "too large" in (result.error or "")

    @respx.mock
    async def test_timeout(self, engine: ValidationEngine, options: ValidationOptions) -> None:
        respx.head(URL).mock(side_effect=httpx.ConnectTimeout("connect timed out"))

        result = await engine.validate(URL, options)

        assert result.valid is False
        assert result.status == ValidationStatus.TIMEOUT
        assert result.error_type == "timeout"
        assert result.error == "timed out: connect timed out"

    @respx.mock
    async def test_connection_error(
        self, engine: ValidationEngine, options: ValidationOptions
    ) -> None:
        respx.head(URL).mock(side_effect=httpx.ConnectError("connection refused"))

        result = await engine.validate(URL, options)

        assert result.valid is False
        assert result.status == ValidationStatus.ERROR
        assert result.error_type == "connection_error"
        assert result.error == "connection refused"

    @respx.mock
    async def test_failures_are_cached_too(
        self,
        engine: ValidationEngine,
        memory_cache: InMemoryValidationCache,
        options: ValidationOptions,
    ) -> None:
        respx.head(URL).mock(return_value=httpx.Response(500))

        result = await engine.validate(URL, options)

        assert await memory_cache.get(URL) == result

    async def test_cancellation_marks_result_and_propagates(
        self,
        engine: ValidationEngine,
        memory_cache: InMemoryValidationCache,
        options: ValidationOptions,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        started = asyncio.Event()

        async def hang(url: str, opts: ValidationOptions) -> httpx.Response:
            started.set()
            await asyncio.Event().wait()
            raise AssertionError("unreachable")

        monkeypatch.setattr(engine, "_probe", hang)

        task = asyncio.create_task(engine.validate(URL, options))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert await memory_cache.get(URL) is None


# ---------------------------------------------------------------------------
# Redirects
# ---------------------------------------------------------------------------


class TestRedirects:
    OLD = "https://example.com/old"
    NEW = "https://example.com/new"

    @respx.mock
    async def test_redirect_followed_to_final_response(
        self,
        engine: ValidationEngine,
        memory_cache: InMemoryValidationCache,
        options: ValidationOptions,
    ) -> None:
        respx.head(self.OLD).mock(return_value=httpx.Response(301, headers={"location": "/new"}))
        respx.head(self.NEW).mock(
            return_value=httpx.Response(200, headers={"content-type": "text/html"})
        )

        result = await engine.validate(self.OLD, options)

        assert result.valid is True
        assert result.redirect is False
        assert result.final_url == self.NEW
        assert result.url == self.OLD
        # Cached under the input URL, not the one the redirect landed on.
        assert await memory_cache.get(self.OLD) == result
        assert await memory_cache.get(self.NEW) is None

    @respx.mock
    async def test_redirect_not_followed_is_reported(self, engine: ValidationEngine) -> None:
        respx.head(self.OLD).mock(return_value=httpx.Response(302, headers={"location": "/new"}))

        result = await engine.validate(self.OLD, ValidationOptions(follow_redirects=False))

        assert result.valid is False
        assert result.status == ValidationStatus.ERROR
        assert result.status_code == 302
        assert result.redirect is True
        assert result.redirect_url == self.NEW
        assert result.error == f"redirect to {self.NEW}"
        assert result.error_type == "redirect"

    @respx.mock
    async def test_redirect_limit_returns_last_redirect(self, engine: ValidationEngine) -> None:
        first = respx.head("https://example.com/a").mock(
            return_value=httpx.Response(302, headers={"location": "https://example.com/b"})
        )
        second = respx.head("https://example.com/b").mock(
            return_value=httpx.Response(302, headers={"location": "https://example.com/c"})
        )

        result = await engine.validate(
            "https://example.com/a", ValidationOptions(max_redirects=1)
        )

        assert first.call_count == 1
        assert second.call_count == 1
        assert result.redirect is True
        assert result.redirect_url == "https://example.com/c"
        assert result.final_url == "https://example.com/b"
        assert result.valid is False

    @respx.mock
    async def test_malformed_location_while_following_is_a_result(
        self, engine: ValidationEngine, memory_cache: InMemoryValidationCache
    ) -> None:
        respx.head(self.OLD).mock(
            return_value=httpx.Response(302, headers={"location": "http://[bad/"})
        )

        result = await engine.validate(self.OLD, ValidationOptions())

        assert result.valid is False
        assert result.status == ValidationStatus.ERROR
        assert result.error_type == "invalid_url"
        assert result.error is not None
        assert result.error.startswith("invalid URL")
        assert await memory_cache.get(self.OLD) == result

    @respx.mock
    async def test_malformed_location_not_followed_is_a_result(
        self, engine: ValidationEngine
    ) -> None:
        respx.head(self.OLD).mock(
            return_value=httpx.Response(302, headers={"location": "http://[bad/"})
        )

        result = await engine.validate(self.OLD, ValidationOptions(follow_redirects=False))

        assert result.status_code == 302
        assert result.redirect is True
        assert result.redirect_url is None
        assert result.error_type == "invalid_url"
