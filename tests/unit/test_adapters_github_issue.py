"""Unit tests for the GitHub Issues adapter."""

from __future__ import annotations

import httpx
import pytest

from waymark.adapters.errors import AdapterDeliveryError, DeliveryFailure
from waymark.adapters.github_issue import (
    GitHubIssueAdapter,
    build_body,
    build_title,
)
from waymark.adapters.protocol import AdapterSettings
from waymark.dispatch.models import AdapterMapping
from tests.helpers.fakes import (
    InMemoryDispatchStore,
    RecordingTransport,
    make_item,
)

CHANNEL = "dynamic:github-issue:repo=coco-xyz/clawmark"
CONFIG = {"token": "ghp_test", "repo": "coco-xyz/clawmark", "labels": ["waymark"]}


def _adapter(
    transport: RecordingTransport,
    *,
    config: dict[str, object] | None = None,
    mappings: InMemoryDispatchStore | None = None,
) -> GitHubIssueAdapter:
    return GitHubIssueAdapter(
        AdapterSettings(
            channel=CHANNEL,
            config=config or CONFIG,
            mappings=mappings,
            http_client=transport.client(),
        )
    )


class TestValidate:
    """Tests for configuration validation."""

    @pytest.mark.parametrize(
        ("config", "error"),
        [
            ({"repo": "a/b"}, "Missing token"),
            ({"token": "t"}, "Missing repo"),
            ({"token": "t", "repo": "just-a-name"}, "owner/repo"),
            ({"token": "t", "repo": "a/b", "labels": 5}, "labels must be a list"),
            (
                {"token": "t", "repo": "a/b", "assignees": "octocat"},
                "assignees must be a list",
            ),
        ],
    )
    def test_rejects_incomplete_config(
        self, config: dict[str, object], error: str
    ) -> None:
        """Token and owner/repo are required."""
        adapter = GitHubIssueAdapter(AdapterSettings(channel="gh", config=config))
        result = adapter.validate()
        assert not result.ok, "Validation should fail"
        assert error in (result.error or ""), f"Expected {error!r} in {result.error!r}"

    def test_accepts_complete_config(self) -> None:
        """A token and owner/repo validate."""
        adapter = GitHubIssueAdapter(AdapterSettings(channel="gh", config=CONFIG))
        assert adapter.validate().ok, "Complete config should validate"


class TestFormatting:
    """Tests for issue title, body, and labels."""

    def test_title_prefers_item_title(self) -> None:
        """The item title is prefixed."""
        assert build_title(make_item(title="Broken")) == "[Waymark] Broken", (
            "Title should be prefixed"
        )

    def test_title_falls_back_to_content(self) -> None:
        """Untitled items use the first 80 characters of their content."""
        item = make_item(title=None, quote="q" * 100, message="ignored")
        assert build_title(item) == "[Waymark] " + "q" * 80, (
            "Quote should be truncated to 80 characters"
        )
        assert build_title(make_item(title=None, message=None)) == (
            "[Waymark] New item"
        ), "Empty items should use a placeholder"

    def test_body_lists_item_details(self) -> None:
        """The body carries metadata, quote, description, and screenshots."""
        body = build_body(
            make_item(
                quote="selected",
                tags=["ui", "bug"],
                screenshots=["https://img.example.com/1.png"],
            )
        )
        assert "**Reported by:** alice" in body, "Reporter should be listed"
        assert "> selected" in body, "Quote should be block-quoted"
        assert "**Tags:** ui, bug" in body, "Tags should be listed"
        assert "![screenshot](https://img.example.com/1.png)" in body, (
            "Screenshots should be embedded"
        )
        assert body.endswith("*Created by Waymark*"), "Footer expected"

    def test_labels_include_priority_type_and_tags(self) -> None:
        """Non-normal priority, type, and sanitised tags become labels."""
        adapter = GitHubIssueAdapter(AdapterSettings(channel="gh", config=CONFIG))
        labels = adapter.labels_for(
            make_item(priority="high", tags=["ui\x00", "  ", "x" * 60])
        )
        assert labels == [
            "waymark",
            "priority:high",
            "type:issue",
            "ui",
            "x" * 50,
        ], f"Unexpected labels: {labels}"

    def test_numeric_labels_are_kept_as_text(self) -> None:
        """Configured labels that are numbers are sent as strings."""
        adapter = GitHubIssueAdapter(
            AdapterSettings(channel="gh", config={**CONFIG, "labels": [123, "ui"]})
        )
        assert adapter.labels_for(make_item())[:2] == ["123", "ui"], (
            "Numeric label should be converted"
        )


class TestSend:
    """Tests for event handling."""

    @pytest.mark.asyncio
    async def test_created_opens_issue(self) -> None:
        """item.created POSTs a new issue and returns its number and URL."""
        transport = RecordingTransport(
            httpx.Response(
                201,
                json={"number": 42, "html_url": "https://github.com/a/b/issues/42"},
            )
        )
        adapter = _adapter(transport)

        result = await adapter.send("item.created", make_item(), {})

        assert result is not None, "A result should be returned"
        assert result.external_id == "42", "Issue number should be the external id"
        request = transport.requests[0]
        assert request.url.path == "/repos/coco-xyz/clawmark/issues", (
            "Issue should be created in the configured repo"
        )
        assert request.headers["Authorization"] == "Bearer ghp_test", (
            "Token should be sent as bearer auth"
        )
        assert transport.json()["title"] == "[Waymark] Button misaligned", (
            "Title should be built from the item"
        )

    @pytest.mark.asyncio
    async def test_created_is_idempotent_via_mapping(
        self, store: InMemoryDispatchStore
    ) -> None:
        """An existing mapping suppresses a second issue."""
        await store.set_adapter_mapping(
            AdapterMapping(
                item_id="item-1",
                adapter_type="github-issue",
                channel=CHANNEL,
                external_id="7",
                external_url="https://github.com/a/b/issues/7",
            )
        )
        transport = RecordingTransport()
        adapter = _adapter(transport, mappings=store)

        result = await adapter.send("item.created", make_item(), {})

        assert result is not None, "Existing issue should be returned"
        assert result.external_id == "7", "Mapped issue number expected"
        assert transport.requests == [], "No issue should be created"

    @pytest.mark.asyncio
    async def test_closed_patches_mapped_issue(self) -> None:
        """item.closed closes the issue created earlier by this adapter."""
        transport = RecordingTransport(
            httpx.Response(201, json={"number": 5, "html_url": "u"}),
            httpx.Response(200, json={"number": 5}),
        )
        adapter = _adapter(transport)
        await adapter.send("item.created", make_item(), {})

        await adapter.send("item.closed", make_item(), {})

        patch = transport.requests[1]
        assert patch.method == "PATCH", "Close should PATCH the issue"
        assert patch.url.path.endswith("/issues/5"), "Mapped issue should be patched"
        assert transport.json(1) == {"state": "closed", "state_reason": "completed"}, (
            "Issue should be closed as completed"
        )

    @pytest.mark.asyncio
    async def test_state_change_without_issue_is_skipped(self) -> None:
        """Events for untracked items do nothing."""
        transport = RecordingTransport()
        adapter = _adapter(transport)

        assert await adapter.send("item.reopened", make_item(), {}) is None, (
            "No result expected"
        )
        assert transport.requests == [], "No request should be made"

    @pytest.mark.asyncio
    async def test_unknown_event_is_ignored(self) -> None:
        """Unhandled events return None without I/O."""
        transport = RecordingTransport()
        adapter = _adapter(transport)

        assert await adapter.send("discussion.message", make_item(), {}) is None, (
            "Unhandled events should be ignored"
        )
        assert transport.requests == [], "No request should be made"

    @pytest.mark.asyncio
    async def test_http_error_is_raised(self) -> None:
        """Non-2xx responses raise AdapterDeliveryError with the status."""
        transport = RecordingTransport(httpx.Response(422, text="Validation Failed"))
        adapter = _adapter(transport)

        with pytest.raises(AdapterDeliveryError) as excinfo:
            await adapter.send("item.created", make_item(), {})

        assert excinfo.value.status_code == 422, "Status should be carried"
        assert excinfo.value.failure == DeliveryFailure.HTTP_STATUS, (
            "Failure kind should be http_status"
        )
        assert "Validation Failed" in str(excinfo.value), "Body preview expected"

    @pytest.mark.asyncio
    async def test_missing_issue_number_is_malformed(self) -> None:
        """A creation response without a number is malformed."""
        transport = RecordingTransport(httpx.Response(201, json={"id": 1}))
        adapter = _adapter(transport)

        with pytest.raises(AdapterDeliveryError) as excinfo:
            await adapter.send("item.created", make_item(), {})

        assert excinfo.value.failure == DeliveryFailure.MALFORMED_RESPONSE, (
            "Missing number should be a malformed response"
        )
