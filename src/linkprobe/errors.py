from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    INVALID_INPUT = "INVALID_INPUT"
    EMPTY_BATCH = "EMPTY_BATCH"
    BATCH_TOO_LARGE = "BATCH_TOO_LARGE"
    RESULT_NOT_FOUND = "RESULT_NOT_FOUND"
    PROJECT_NOT_FOUND = "PROJECT_NOT_FOUND"
    STORAGE_ERROR = "STORAGE_ERROR"


class LinkProbeError(Exception):
    """Raised for request-level failures: bad input, oversized batches, storage faults.

    Caught by server.py and serialised into the MCP error response.
    A bad *target* URL is never a LinkProbeError; the validation engine
    records those as ERROR/TIMEOUT results instead.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }
