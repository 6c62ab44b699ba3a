"""Configuration for the system default routing target."""

from __future__ import annotations

import dataclasses as dc
import os
import typing as typ

from waymark.routing.models import DEFAULT_LABELS

_DEFAULT_REPO = "coco-xyz/feedback"


def _split_csv(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dc.dataclass(frozen=True, slots=True)
class RoutingConfig:
    """Where items go when nothing else claims them.

    Attributes
    ----------
    default_repo
        ``owner/name`` of the repository receiving unrouted items.
    default_labels
        Labels applied to issues opened by the default target and by the
        GitHub URL heuristic.
    default_assignees
        Assignees applied alongside ``default_labels``.

    """

    default_repo: str = _DEFAULT_REPO
    default_labels: tuple[str, ...] = DEFAULT_LABELS
    default_assignees: tuple[str, ...] = ()

    @property
    def default_target(self) -> dict[str, typ.Any]:
        """Return the system default ``github-issue`` configuration."""
        return {
            "repo": self.default_repo,
            "labels": list(self.default_labels),
            "assignees": list(self.default_assignees),
        }

    @classmethod
    def from_env(cls) -> RoutingConfig:
        """Build configuration from ``WAYMARK_DEFAULT_*`` variables.

        ``WAYMARK_DEFAULT_LABELS`` and ``WAYMARK_DEFAULT_ASSIGNEES`` are
        comma separated.

        Raises
        ------
        ValueError
            If ``WAYMARK_DEFAULT_REPO`` is not of the form ``owner/name``.

        """
        repo = os.environ.get("WAYMARK_DEFAULT_REPO", "").strip() or _DEFAULT_REPO
        owner, _, name = repo.partition("/")
        if not owner or not name or "/" in name:
            msg = f"WAYMARK_DEFAULT_REPO must be owner/name, got: {repo!r}"
            raise ValueError(msg)
        labels = _split_csv(os.environ.get("WAYMARK_DEFAULT_LABELS", ""))
        assignees = _split_csv(os.environ.get("WAYMARK_DEFAULT_ASSIGNEES", ""))
        return cls(
            default_repo=repo,
            default_labels=labels or DEFAULT_LABELS,
            default_assignees=assignees,
        )
