"""Cheap, offline URL well-formedness check.

Runs before any network access so that garbage input is rejected without
opening a connection.
"""

from __future__ import annotations

import re

_URL_RE = re.compile(
    r"https?://"  # scheme
    r"([a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]{2,6}"  # labels + TLD
    r"(:[0-9]{1,5})?"  # port
    r"(/[a-zA-Z0-9\-._~:/?#\[\]@!$&'()*+,;=]*)?"  # path, query, fragment
)


def has_valid_syntax(url: str | None) -> bool:
    """Return True if *url* is an http(s) URL with a dotted domain and a 2 to 6 letter TLD."""
    if url is None or not url.strip():
        return False
    return _URL_RE.fullmatch(url) is not None
