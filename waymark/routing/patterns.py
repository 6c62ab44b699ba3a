"""Glob-style URL pattern matching for user routing rules.

Patterns are written without caring about the scheme: both the candidate URL
and the pattern have any leading ``scheme://`` removed before comparison.

Wildcards
---------
``**``
    Any run of characters, including ``/``.
``*``
    Any run of characters except ``/``: one subdomain label or one path
    segment.

Everything else matches literally and the pattern must cover the whole
scheme-stripped URL.

Examples
--------
>>> match_url_pattern("https://api.coco.xyz/clawmark", "*.coco.xyz/**")
True
>>> match_url_pattern("https://coco.xyz/hub", "*.coco.xyz/**")
False

"""

from __future__ import annotations

import functools
import re

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")
_TOKEN_RE = re.compile(r"\*\*|\*|[^*]+")


def strip_scheme(value: str) -> str:
    """Remove a leading ``scheme://`` prefix from ``value``."""
    return _SCHEME_RE.sub("", value, count=1)


@functools.lru_cache(maxsize=512)
def compile_url_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a scheme-stripped glob pattern into an anchored regex.

    Parameters
    ----------
    pattern
        Glob pattern, with or without a scheme.

    Returns
    -------
    re.Pattern[str]
        Case-insensitive regex matching the full scheme-stripped URL.

    """
    parts: list[str] = []
    for token in _TOKEN_RE.findall(strip_scheme(pattern)):
        if token == "**":
            parts.append(".*")
        elif token == "*":
            parts.append("[^/]*")
        else:
            parts.append(re.escape(token))
    return re.compile("".join(parts), re.IGNORECASE)


def match_url_pattern(url: str | None, pattern: str | None) -> bool:
    """Return whether ``url`` matches the glob ``pattern``.

    Missing, empty, or non-string inputs never match.
    """
    if not isinstance(url, str) or not isinstance(pattern, str):
        return False
    if not url or not pattern:
        return False
    return compile_url_pattern(pattern).fullmatch(strip_scheme(url)) is not None
