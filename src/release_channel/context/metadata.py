"""Readers for the version a channel currently points at.

A channel file is a tiny text target in the update-metadata repository,
channels/<channel>, holding one version string. It can be read from
where the repository is served, or from a local copy after the
metadata tree has been synced down.

Both readers return None when the channel has never been set, which
the changelog assembler turns into the "n/a" placeholder.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from release_channel.errors import SourceUnavailable
from release_channel.logging_config import get_logger

logger = get_logger(__name__)

CHANNELS_DIR = "channels"


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ChannelReader(Protocol):
    """Reads the currently published version of a channel."""

    async def current_version(self, channel: str) -> str | None:
        """Return the published version, or None if the channel was never set."""
        ...


def _parse_version(text: str) -> str | None:
    version = text.strip()
    return version or None


# ---------------------------------------------------------------------------
# HTTP Implementation
# ---------------------------------------------------------------------------


class HttpChannelReader:
    """Reads channels/<channel> from the public metadata endpoint.

    Usage:
        reader = HttpChannelReader("https://updates.example.com")
        version = await reader.current_version("stable")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _fetch(self, channel: str) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            return await client.get(f"/{CHANNELS_DIR}/{channel}")

    async def current_version(self, channel: str) -> str | None:
        """Fetch the channel file.

        Raises:
            SourceUnavailable: If the endpoint can't be reached or answers
                with anything other than 200 or 404
        """
        try:
            resp = await self._fetch(channel)
        except httpx.HTTPError as exc:
            raise SourceUnavailable(f"Could not read channel {channel}: {exc!r}") from exc

        if resp.status_code == 404:
            logger.info("channel_unset", channel=channel, source=self._base_url)
            return None
        if resp.status_code != 200:
            raise SourceUnavailable(f"Metadata store returned {resp.status_code} for channel {channel}")
        return _parse_version(resp.text)


# ---------------------------------------------------------------------------
# Local Implementation
# ---------------------------------------------------------------------------


class LocalChannelReader:
    """Reads channels/<channel> from a synced copy of the metadata repository.

    Args:
        targets_dir: The repository's targets directory
                     (e.g. <metadata_dir>/repository/targets)
    """

    def __init__(self, targets_dir: str | Path) -> None:
        self.targets_dir = Path(targets_dir)

    async def current_version(self, channel: str) -> str | None:
        path = self.targets_dir / CHANNELS_DIR / channel
        if not path.is_file():
            logger.info("channel_unset", channel=channel, source=str(path))
            return None
        return _parse_version(path.read_text())


# ---------------------------------------------------------------------------
# Mock Implementation
# ---------------------------------------------------------------------------


class MockChannelReader:
    """Mock reader backed by a dict of channel -> version."""

    def __init__(self, versions: dict[str, str] | None = None) -> None:
        self._versions = versions or {}

    async def current_version(self, channel: str) -> str | None:
        return self._versions.get(channel)
