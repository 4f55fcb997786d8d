"""Tests for Pydantic schemas.

These tests verify that the schemas:
- Map GitHub pull request payloads correctly
- Render changelog lines in the exact published format
- Reject invalid data

Run with: pytest tests/test_schemas.py -v
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from release_channel.schemas import (
    NO_HISTORY_PLACEHOLDER,
    ChangeRequest,
    Changelog,
    ChangelogEntry,
    ChannelState,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_pull() -> dict:
    """A closed, merged pull request as returned by the GitHub API."""
    return {
        "number": 812,
        "title": "Fix token refresh race",
        "html_url": "https://github.com/myorg/app/pull/812",
        "merge_commit_sha": "9fceb02d0ae598e95dc970b74767f19372d61af8",
        "merged_at": "2024-05-02T23:59:59Z",
        "updated_at": "2024-05-03T08:00:00Z",
        "user": {"login": "dev1"},
    }


# ---------------------------------------------------------------------------
# ChangeRequest Tests
# ---------------------------------------------------------------------------


class TestChangeRequest:
    """Tests for the ChangeRequest schema."""

    def test_from_api(self, sample_pull: dict) -> None:
        change = ChangeRequest.from_api(sample_pull)
        assert change.id == 812
        assert change.merge_point == "9fceb02d0ae598e95dc970b74767f19372d61af8"
        assert change.merged_at == datetime(2024, 5, 2, 23, 59, 59, tzinfo=timezone.utc)
        assert change.merged

    def test_unmerged(self, sample_pull: dict) -> None:
        sample_pull["merged_at"] = None
        assert not ChangeRequest.from_api(sample_pull).merged

    def test_missing_merge_commit(self, sample_pull: dict) -> None:
        del sample_pull["merge_commit_sha"]
        assert not ChangeRequest.from_api(sample_pull).merged

    def test_missing_title_fails(self, sample_pull: dict) -> None:
        del sample_pull["title"]
        with pytest.raises(KeyError):
            ChangeRequest.from_api(sample_pull)

    def test_frozen(self, sample_pull: dict) -> None:
        change = ChangeRequest.from_api(sample_pull)
        with pytest.raises(ValidationError):
            change.title = "changed"

    def test_number_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ChangeRequest(id=0, title="x", url="https://example.com")


# ---------------------------------------------------------------------------
# Changelog Tests
# ---------------------------------------------------------------------------


class TestChangelog:
    """Tests for ChangelogEntry and Changelog rendering."""

    def test_entry_render(self, sample_pull: dict) -> None:
        entry = ChangelogEntry.from_change_request(ChangeRequest.from_api(sample_pull))
        assert entry.date == date(2024, 5, 2)
        assert entry.render() == (
            "* 2024-05-02: Fix token refresh race ([#812](https://github.com/myorg/app/pull/812))"
        )

    def test_entry_requires_merge(self, sample_pull: dict) -> None:
        sample_pull["merged_at"] = None
        with pytest.raises(ValueError):
            ChangelogEntry.from_change_request(ChangeRequest.from_api(sample_pull))

    def test_render_lines(self) -> None:
        entries = [
            ChangelogEntry(date=date(2024, 5, 3), title="Second", number=2, url="u2"),
            ChangelogEntry(date=date(2024, 5, 1), title="First", number=1, url="u1"),
        ]
        assert Changelog(entries=entries).render() == (
            "* 2024-05-03: Second ([#2](u2))\n* 2024-05-01: First ([#1](u1))\n"
        )

    def test_placeholder(self) -> None:
        changelog = Changelog.no_history()
        assert changelog.render() == NO_HISTORY_PLACEHOLDER + "\n"
        assert not changelog.is_empty

    def test_empty(self) -> None:
        changelog = Changelog()
        assert changelog.is_empty
        assert changelog.render() == ""


class TestChannelState:
    """Tests for ChannelState."""

    def test_current_version_optional(self) -> None:
        state = ChannelState(channel="stable", target_version="v2")
        assert state.current_version is None

    def test_channel_required(self) -> None:
        with pytest.raises(ValidationError):
            ChannelState(channel="", target_version="v2")

    @pytest.mark.parametrize("name", ["../stable", "stable/x", ".stable", "-v2", "v2 ", "v2\n"])
    def test_names_must_be_plain_file_names(self, name: str) -> None:
        with pytest.raises(ValidationError):
            ChannelState(channel=name, target_version="v2")
        with pytest.raises(ValidationError):
            ChannelState(channel="stable", target_version=name)

    def test_release_style_names_accepted(self) -> None:
        state = ChannelState(channel="nightly_2", target_version="v1.5.0-rc.1")
        assert state.target_version == "v1.5.0-rc.1"
