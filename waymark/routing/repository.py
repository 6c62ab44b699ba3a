"""Extract ``owner/repo`` identifiers from issue-tracker URLs.

Only GitHub URLs are recognised. The first two path segments name the
repository unless the first one is a GitHub product route (``settings``,
``marketplace`` and so on) that never names an owner.
"""

from __future__ import annotations

import urllib.parse

import msgspec

GITHUB_HOSTS: frozenset[str] = frozenset({"github.com", "www.github.com"})

RESERVED_OWNERS: frozenset[str] = frozenset({
    "settings",
    "orgs",
    "marketplace",
    "explore",
    "topics",
    "trending",
    "collections",
    "events",
    "sponsors",
    "notifications",
    "new",
    "login",
    "signup",
    "features",
    "security",
    "pricing",
    "enterprise",
})

_GIT_SUFFIX = ".git"


class RepositoryRef(msgspec.Struct, frozen=True, kw_only=True):
    """A GitHub repository identified by owner and name."""

    owner: str
    repo: str

    @property
    def slug(self) -> str:
        """Return the ``owner/repo`` form."""
        return f"{self.owner}/{self.repo}"


def _split(url: str) -> urllib.parse.SplitResult | None:
    text = url.strip()
    if "://" not in text:
        text = f"//{text}"
    try:
        return urllib.parse.urlsplit(text)
    except ValueError:
        return None


def extract_repository(url: str | None) -> RepositoryRef | None:
    """Return the repository a GitHub URL points into, if any.

    Parameters
    ----------
    url
        Any URL; scheme-less ``github.com/owner/repo`` input is accepted.

    Returns
    -------
    RepositoryRef | None
        ``None`` for other hosts, fewer than two path segments, reserved
        top-level routes, or unparseable input.

    Examples
    --------
    >>> extract_repository("https://github.com/coco-xyz/clawmark/issues/38")
    RepositoryRef(owner='coco-xyz', repo='clawmark')
    >>> extract_repository("https://github.com/settings/profile") is None
    True

    """
    if not isinstance(url, str) or not url.strip():
        return None

    parts = _split(url)
    if parts is None:
        return None

    try:
        host = (parts.hostname or "").lower()
    except ValueError:
        return None
    if host not in GITHUB_HOSTS:
        return None

    segments = [segment for segment in parts.path.split("/") if segment]
    if len(segments) < 2:  # noqa: PLR2004
        return None

    owner, repo = segments[0], segments[1]
    if owner.lower() in RESERVED_OWNERS:
        return None

    repo = repo.removesuffix(_GIT_SUFFIX)
    if not repo:
        return None

    return RepositoryRef(owner=owner, repo=repo)
