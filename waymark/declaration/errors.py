"""Errors raised while fetching site target declarations.

These never escape ``TargetDeclarationFetcher.resolve``; they exist so the
fetch path can report why a lookup was cached negatively.
"""

from __future__ import annotations


class DeclarationError(Exception):
    """Base class for declaration lookup errors."""


class DeclarationFetchError(DeclarationError):
    """Raised when a declaration document cannot be retrieved."""

    def __init__(self, message: str, *, url: str) -> None:
        """Initialise with a message and the URL that failed."""
        self.url = url
        super().__init__(message)

    @classmethod
    def unsafe_url(cls, url: str) -> DeclarationFetchError:
        """Return an error for non-HTTPS or private-network URLs."""
        return cls(f"refusing to fetch unsafe URL: {url}", url=url)

    @classmethod
    def http_status(cls, url: str, status_code: int) -> DeclarationFetchError:
        """Return an error for a non-200 response."""
        return cls(f"declaration fetch returned HTTP {status_code}: {url}", url=url)

    @classmethod
    def too_large(cls, url: str, limit: int) -> DeclarationFetchError:
        """Return an error for bodies exceeding ``limit`` bytes."""
        return cls(f"declaration body exceeds {limit} bytes: {url}", url=url)

    @classmethod
    def too_many_redirects(cls, url: str) -> DeclarationFetchError:
        """Return an error when the redirect limit is exceeded."""
        return cls(f"too many redirects fetching declaration: {url}", url=url)

    @classmethod
    def transport(cls, url: str, detail: str) -> DeclarationFetchError:
        """Return an error for network failures and timeouts."""
        return cls(f"declaration fetch failed for {url}: {detail}", url=url)
