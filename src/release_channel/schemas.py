"""Pydantic models for the data that flows through a channel update.

These schemas are the contract between the context builders (GitHub,
git, metadata store), the changelog assembler and the orchestrator:
- ChangeRequest: a closed pull request as fetched from the API
- ChangelogEntry / Changelog: the rendered result
- ChannelState: which version the channel points at, and where it goes next

Key design decisions:
- ChangeRequest and ChangelogEntry are frozen; nothing downstream mutates them
- Rendering lives on the models so the line format is defined in one place
"""

from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Rendered in place of a changelog when the channel has no published version.
NO_HISTORY_PLACEHOLDER = "n/a"

# Channel names and versions become file names under staged/targets/channels.
NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]*$"


# ---------------------------------------------------------------------------
# Input Schemas
# ---------------------------------------------------------------------------


class ChangeRequest(BaseModel):
    """A closed change request (pull request).

    Attributes:
        id: Change request number
        merge_point: Merge commit SHA (None if the API did not report one)
        merged_at: When it was merged (None for requests closed without merging)
        title: Change request title
        url: Link to the change request
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., gt=0, description="Change request number")
    merge_point: str | None = Field(None, description="Merge commit SHA")
    merged_at: dt.datetime | None = Field(None, description="Merge timestamp")
    title: str = Field(..., description="Change request title")
    url: str = Field(..., description="Link to the change request")

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> ChangeRequest:
        """Build a ChangeRequest from a pulls API object."""
        return cls(
            id=payload["number"],
            merge_point=payload.get("merge_commit_sha"),
            merged_at=payload.get("merged_at"),
            title=payload["title"],
            url=payload["html_url"],
        )

    @property
    def merged(self) -> bool:
        return self.merged_at is not None and bool(self.merge_point)


# ---------------------------------------------------------------------------
# Output Schemas
# ---------------------------------------------------------------------------


class ChangelogEntry(BaseModel):
    """One line of the changelog.

    Attributes:
        date: Calendar date the change request was merged
        title: Change request title
        number: Change request number
        url: Link to the change request
    """

    model_config = ConfigDict(frozen=True)

    date: dt.date
    title: str
    number: int
    url: str

    @classmethod
    def from_change_request(cls, change: ChangeRequest) -> ChangelogEntry:
        if change.merged_at is None:
            raise ValueError(f"Change request #{change.id} was never merged")
        return cls(
            date=change.merged_at.date(),
            title=change.title,
            number=change.id,
            url=change.url,
        )

    def render(self) -> str:
        return f"* {self.date.isoformat()}: {self.title} ([#{self.number}]({self.url}))"


class Changelog(BaseModel):
    """An ordered changelog, newest-relevant first.

    A placeholder changelog stands in when the channel has never been
    published. An empty, non-placeholder changelog is valid: the target
    version introduced no merged change requests.
    """

    entries: list[ChangelogEntry] = Field(default_factory=list)
    placeholder: bool = False

    @classmethod
    def no_history(cls) -> Changelog:
        return cls(placeholder=True)

    @property
    def is_empty(self) -> bool:
        return not self.placeholder and not self.entries

    def render(self) -> str:
        if self.placeholder:
            return NO_HISTORY_PLACEHOLDER + "\n"
        return "".join(entry.render() + "\n" for entry in self.entries)


class ChannelState(BaseModel):
    """Where a channel is and where it is going.

    Attributes:
        channel: Channel name (e.g. "stable", "nightly")
        current_version: Currently published version (None if never set)
        target_version: Version being released to the channel
    """

    channel: str = Field(..., pattern=NAME_PATTERN)
    current_version: str | None = None
    target_version: str = Field(..., pattern=NAME_PATTERN)
