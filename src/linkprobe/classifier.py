"""Response classification: does a probed URL count as a usable asset?

Pure functions over (status code, content type, content length). The
allow-list and size ceiling live in a single ``ClassifierPolicy`` rather than
being scattered across call sites.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import urlparse

DEFAULT_MAX_CONTENT_BYTES = 5 * 1024 * 1024

DEFAULT_CONTENT_TYPES: frozenset[str] = frozenset(
    {
        # documents
        "text/html",
        "text/plain",
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        # images
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/tiff",
        "image/svg+xml",
        # media
        "audio/mpeg",
        "video/mp4",
        # structured data and scientific formats
        "application/json",
        "application/xml",
        "text/xml",
        "application/geo+json",
        "application/x-hdf",
        "application/x-hdf5",
        "application/x-netcdf",
        "application/x-fits",
        "application/fits",
        # archives and opaque binaries
        "application/zip",
        "application/octet-stream",
    }
)

# Asset types that count as "has assets" in batch summaries.
ASSET_TYPES: frozenset[str] = frozenset({"image", "video", "audio", "document", "data"})

_DOCUMENT_MARKERS = (
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml",
)
_DATA_MARKERS = ("application/json", "application/xml", "text/csv")

_EXTENSION_ASSET_TYPES: dict[str, str] = {
    **dict.fromkeys((".html", ".htm", ".php", ".aspx", ".jsp"), "webpage"),
    **dict.fromkeys((".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp"), "image"),
    **dict.fromkeys((".mp4", ".avi", ".mov", ".webm", ".mkv"), "video"),
    **dict.fromkeys((".mp3", ".wav", ".ogg", ".flac"), "audio"),
    **dict.fromkeys((".pdf", ".doc", ".docx", ".ppt", ".pptx", ".xls", ".xlsx"), "document"),
    **dict.fromkeys((".json", ".xml", ".csv", ".sql", ".db"), "data"),
}

_REASON_PREFIXES: dict[str, str] = {
    "invalid response code": "invalid_response_code",
    "invalid content type": "invalid_content_type",
    "content too large": "content_too_large",
}


@dataclass(frozen=True)
class ClassifierPolicy:
    content_types: frozenset[str] = field(default=DEFAULT_CONTENT_TYPES)
    max_content_bytes: int = DEFAULT_MAX_CONTENT_BYTES


DEFAULT_POLICY = ClassifierPolicy()


def normalize_content_type(content_type: str | None) -> str | None:
    """Strip parameters and lower-case: ``'Text/HTML; charset=utf-8'`` → ``'text/html'``."""
    if content_type is None:
        return None
    main = content_type.split(";", 1)[0].strip().lower()
    return main or None


def classify(
    status_code: int,
    content_type: str | None,
    content_length_bytes: int,
    policy: ClassifierPolicy = DEFAULT_POLICY,
    *,
    check_content_type: bool = True,
) -> str | None:
    """Return ``None`` if the response is a valid asset, else a human-readable reason.

    Rules are evaluated in order and the first failure wins:
    status must be 200, the content type must be allow-listed, and a known
    length must not exceed the policy ceiling. Unknown length (-1) passes.
    """
    if status_code != 200:
        return f"invalid response code: {status_code}"

    if check_content_type:
        main_type = normalize_content_type(content_type)
        if main_type is None or main_type not in policy.content_types:
            return f"invalid content type: {content_type}"

    if content_length_bytes > policy.max_content_bytes:
        return f"content too large: {content_length_bytes} bytes"

    return None


def classify_issue(reason: str) -> str:
    """Map a classifier reason string to its issue-type key."""
    for prefix, issue in _REASON_PREFIXES.items():
        if reason.startswith(prefix):
            return issue
    return "unclassified"


def detect_asset_type(url: str, content_type: str | None) -> str:
    """Guess what kind of asset a URL points at.

    The content type wins when it is recognised; otherwise the URL path
    extension decides. Extension-less paths are assumed to be web pages.
    """
    main_type = normalize_content_type(content_type)
    if main_type is not None:
        if main_type in ("text/html", "application/xhtml+xml"):
            return "webpage"
        if main_type.startswith("image/"):
            return "image"
        if main_type.startswith("video/"):
            return "video"
        if main_type.startswith("audio/"):
            return "audio"
        if main_type.startswith(_DOCUMENT_MARKERS):
            return "document"
        if main_type.startswith(_DATA_MARKERS):
            return "data"

    path = urlparse(url).path.lower()
    for extension, asset_type in _EXTENSION_ASSET_TYPES.items():
        if path.endswith(extension):
            return asset_type

    last_segment = path.rstrip("/").rsplit("/", 1)[-1]
    if "." not in last_segment:
        return "webpage"
    return "unknown"
