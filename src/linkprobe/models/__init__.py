from __future__ import annotations

from linkprobe.models.cache import CacheEntry, CacheStats, StoredResult
from linkprobe.models.repair import DuplicateReport, RepairOutcome
from linkprobe.models.summary import SummaryResult
from linkprobe.models.tools import (
    AnalyzeDuplicatesInput,
    CacheStatsOutput,
    GetValidationResultInput,
    ListProjectsOutput,
    ProjectInput,
    RemovedCountOutput,
    SweepCacheInput,
    ValidateUrlsOutput,
)
from linkprobe.models.validation import (
    BatchRequest,
    ValidateUrlInput,
    ValidationOptions,
    ValidationResult,
    ValidationStatus,
)

__all__ = [
    # validation
    "ValidationStatus",
    "ValidationResult",
    "ValidationOptions",
    "ValidateUrlInput",
    "BatchRequest",
    # cache
    "CacheEntry",
    "CacheStats",
    "StoredResult",
    # summary
    "SummaryResult",
    # repair
    "DuplicateReport",
    "RepairOutcome",
    # tools
    "GetValidationResultInput",
    "ValidateUrlsOutput",
    "CacheStatsOutput",
    "SweepCacheInput",
    "RemovedCountOutput",
    "ProjectInput",
    "AnalyzeDuplicatesInput",
    "ListProjectsOutput",
]
