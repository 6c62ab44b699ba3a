"""Unit tests for RoutingConfig."""

from __future__ import annotations

import pytest

from waymark.routing.config import RoutingConfig

_VARS = ("WAYMARK_DEFAULT_REPO", "WAYMARK_DEFAULT_LABELS", "WAYMARK_DEFAULT_ASSIGNEES")


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove default target variables from the environment."""
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestRoutingConfig:
    """Tests for the system default target configuration."""

    def test_defaults(self, clean_env: pytest.MonkeyPatch) -> None:
        """Without overrides items go to the feedback repository."""
        assert RoutingConfig.from_env().default_target == {
            "repo": "coco-xyz/feedback",
            "labels": ["waymark"],
            "assignees": [],
        }, "Default target expected"

    def test_overrides(self, clean_env: pytest.MonkeyPatch) -> None:
        """Repository, labels and assignees are read from the environment."""
        clean_env.setenv("WAYMARK_DEFAULT_REPO", " acme/inbox ")
        clean_env.setenv("WAYMARK_DEFAULT_LABELS", "feedback, triage,,")
        clean_env.setenv("WAYMARK_DEFAULT_ASSIGNEES", "octocat")

        config = RoutingConfig.from_env()

        assert config.default_target == {
            "repo": "acme/inbox",
            "labels": ["feedback", "triage"],
            "assignees": ["octocat"],
        }, "Overrides expected"

    @pytest.mark.parametrize("repo", ["acme", "acme/", "/inbox", "a/b/c"])
    def test_invalid_repo(self, clean_env: pytest.MonkeyPatch, repo: str) -> None:
        """Repositories must be owner/name."""
        clean_env.setenv("WAYMARK_DEFAULT_REPO", repo)
        with pytest.raises(ValueError, match="WAYMARK_DEFAULT_REPO"):
            RoutingConfig.from_env()
