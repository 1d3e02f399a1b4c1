from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

TERMINAL_STATUSES: frozenset[str] = frozenset(
    {"SUCCESS", "ERROR", "TIMEOUT", "SKIPPED", "CANCELLED"}
)


class ValidationStatus(StrEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    TIMEOUT = "TIMEOUT"
    SKIPPED = "SKIPPED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self.value in TERMINAL_STATUSES


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ValidationResult(BaseModel):
    """Outcome of one probe, mutated in place from PENDING to a terminal status."""

    url: str  # Original input URL, the cache key
    valid: bool = False
    status_code: int = 0  # 0 when no response was received
    content_type: str | None = None
    content_length_bytes: int = -1  # -1 when unknown
    response_time_ms: int = 0
    redirect: bool = False
    redirect_url: str | None = None
    final_url: str | None = None
    asset_type: str | None = None
    error: str | None = None
    error_type: str | None = None
    status: ValidationStatus = ValidationStatus.PENDING
    validated_at: datetime = Field(default_factory=_utcnow)
    expires_at: datetime | None = None

    def start(self) -> None:
        self.status = ValidationStatus.IN_PROGRESS

    def succeed(self) -> None:
        self.valid = True
        self.error = None
        self.error_type = None
        self.status = ValidationStatus.SUCCESS

    def fail(
        self,
        reason: str,
        error_type: str,
        status: ValidationStatus = ValidationStatus.ERROR,
    ) -> None:
        self.valid = False
        self.error = reason
        self.error_type = error_type
        self.status = status

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or _utcnow()) > self.expires_at


class ValidationOptions(BaseModel):
    """Per-request overrides for a single probe or a batch."""

    connect_timeout_ms: int = Field(default=5000, ge=1000, le=30000)
    socket_timeout_ms: int = Field(default=10000, ge=1000, le=30000)
    follow_redirects: bool = True
    max_redirects: int = Field(default=5, ge=0, le=10)
    validate_content_type: bool = True
    parallel: bool = False


class ValidateUrlInput(ValidationOptions):
    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("url must not be empty")
        if len(v) > 2048:
            raise ValueError("url must not exceed 2048 characters")
        return v


class BatchRequest(ValidationOptions):
    """Ordered URL list plus overrides. The size bound is enforced by the orchestrator."""

    urls: list[str]

    def options(self) -> ValidationOptions:
        return ValidationOptions.model_validate(self.model_dump(exclude={"urls"}))
