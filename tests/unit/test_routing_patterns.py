"""Unit tests for URL glob matching and repository extraction."""

from __future__ import annotations

import pytest

from waymark.routing.patterns import match_url_pattern, strip_scheme
from waymark.routing.repository import RepositoryRef, extract_repository


class TestStripScheme:
    """Tests for strip_scheme."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("https://github.com/a/b", "github.com/a/b"),
            ("http://coco.xyz", "coco.xyz"),
            ("github.com/a/b", "github.com/a/b"),
            ("git+ssh://host/path", "host/path"),
        ],
    )
    def test_strips_leading_scheme(self, value: str, expected: str) -> None:
        """Only a leading scheme:// prefix is removed."""
        assert strip_scheme(value) == expected, f"Unexpected result for {value!r}"


class TestMatchUrlPattern:
    """Tests for match_url_pattern."""

    @pytest.mark.parametrize(
        ("url", "pattern"),
        [
            pytest.param(
                "https://github.com/coco-xyz/clawmark/issues/38",
                "github.com/coco-xyz/**",
                id="double-star-spans-segments",
            ),
            pytest.param(
                "https://api.coco.xyz/clawmark",
                "*.coco.xyz/**",
                id="single-star-subdomain",
            ),
            pytest.param(
                "http://github.com/coco-xyz/clawmark",
                "https://github.com/*/clawmark",
                id="scheme-ignored-on-both-sides",
            ),
            pytest.param(
                "https://GitHub.com/Coco-XYZ/Clawmark",
                "github.com/coco-xyz/clawmark",
                id="case-insensitive",
            ),
            pytest.param(
                "https://docs.example.com/a+b/(c)",
                "docs.example.com/a+b/(c)",
                id="regex-metacharacters-literal",
            ),
        ],
    )
    def test_matches(self, url: str, pattern: str) -> None:
        """Patterns matching the whole scheme-stripped URL succeed."""
        assert match_url_pattern(url, pattern), f"{pattern!r} should match {url!r}"

    @pytest.mark.parametrize(
        ("url", "pattern"),
        [
            pytest.param(
                "https://coco.xyz/hub", "*.coco.xyz/**", id="missing-subdomain"
            ),
            pytest.param(
                "https://github.com/coco-xyz/clawmark/issues",
                "github.com/*/clawmark",
                id="single-star-not-crossing-slash",
            ),
            pytest.param(
                "https://github.com/coco-xyz/clawmark",
                "github.com/coco-xyz",
                id="must-cover-whole-url",
            ),
            pytest.param(
                "https://evil.com/github.com/a", "github.com/**", id="anchored-start"
            ),
        ],
    )
    def test_rejects(self, url: str, pattern: str) -> None:
        """Partial or cross-segment matches fail."""
        assert not match_url_pattern(url, pattern), (
            f"{pattern!r} should not match {url!r}"
        )

    @pytest.mark.parametrize(
        ("url", "pattern"),
        [(None, "**"), ("https://a.b", None), ("", "**"), ("https://a.b", "")],
    )
    def test_missing_inputs_never_match(
        self, url: str | None, pattern: str | None
    ) -> None:
        """Empty or missing URL and pattern never match."""
        assert not match_url_pattern(url, pattern), "Missing input should not match"


class TestExtractRepository:
    """Tests for extract_repository."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            (
                "https://github.com/coco-xyz/clawmark/issues/38",
                RepositoryRef(owner="coco-xyz", repo="clawmark"),
            ),
            (
                "https://www.github.com/octo/hello.git",
                RepositoryRef(owner="octo", repo="hello"),
            ),
            ("github.com/octo/hello", RepositoryRef(owner="octo", repo="hello")),
        ],
    )
    def test_extracts_owner_and_repo(self, url: str, expected: RepositoryRef) -> None:
        """The first two path segments name the repository."""
        assert extract_repository(url) == expected, f"Unexpected ref for {url!r}"

    @pytest.mark.parametrize(
        "url",
        [
            None,
            "",
            "https://gitlab.com/octo/hello",
            "https://github.com/octo",
            "https://github.com/settings/profile",
            "https://github.com/Marketplace/actions",
            "https://github.com/octo/.git",
            "https://[::1/broken",
        ],
    )
    def test_returns_none_for_non_repository_urls(self, url: str | None) -> None:
        """Other hosts, short paths, and reserved routes yield no repository."""
        assert extract_repository(url) is None, f"Expected no repository for {url!r}"

    def test_slug_joins_owner_and_repo(self) -> None:
        """The slug property returns owner/repo."""
        ref = RepositoryRef(owner="octo", repo="hello")
        assert ref.slug == "octo/hello", "Slug should be owner/repo"
