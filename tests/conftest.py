"""Shared fixtures and builders for the test suite."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest

from release_channel.context.ancestry import MockAncestryOracle
from release_channel.schemas import ChangeRequest


def make_change(number: int, sha: str | None = None, merged: bool = True, day: int = 1) -> ChangeRequest:
    """Build a ChangeRequest whose merge commit is `sha` (defaults to "sha<number>")."""
    return ChangeRequest(
        id=number,
        merge_point=sha or f"sha{number}",
        merged_at=datetime(2024, 5, day, 12, 30, tzinfo=timezone.utc) if merged else None,
        title=f"Change {number}",
        url=f"https://github.com/myorg/app/pull/{number}",
    )


def api_pull(number: int, sha: str, merged_at: str | None = "2024-05-02T09:15:00Z") -> dict:
    """A pull request object as the GitHub pulls API returns it."""
    return {
        "number": number,
        "title": f"Change {number}",
        "html_url": f"https://github.com/myorg/app/pull/{number}",
        "merge_commit_sha": sha,
        "merged_at": merged_at,
        "state": "closed",
    }


def oracle_context(oracle: MockAncestryOracle):
    """Wrap a mock oracle in the async context manager shape the orchestrator expects."""

    @asynccontextmanager
    async def factory() -> AsyncIterator[MockAncestryOracle]:
        yield oracle

    return factory


@pytest.fixture
def oracle() -> MockAncestryOracle:
    """v1 contains A; v2 contains A, B, C."""
    return MockAncestryOracle({"v1": {"A"}, "v2": {"A", "B", "C"}})
