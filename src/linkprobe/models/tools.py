"""Input and output models for the MCP tool handlers."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from linkprobe.models.cache import CacheStats
from linkprobe.models.validation import ValidationResult


class GetValidationResultInput(BaseModel):
    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("url must not be empty")
        return v


class ValidateUrlsOutput(BaseModel):
    results: list[ValidationResult]


class CacheStatsOutput(CacheStats):
    backend: Literal["memory", "sqlite"]


class SweepCacheInput(BaseModel):
    max_age_minutes: int | None = Field(default=None, ge=1)


class RemovedCountOutput(BaseModel):
    removed: int


class ProjectInput(BaseModel):
    project_id: str

    @field_validator("project_id")
    @classmethod
    def validate_project_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("project_id must not be empty")
        if len(v) > 200:
            raise ValueError("project_id must not exceed 200 characters")
        return v


class AnalyzeDuplicatesInput(ProjectInput):
    top_n: int = Field(default=5, ge=1, le=100)


class ListProjectsOutput(BaseModel):
    projects: list[str]
