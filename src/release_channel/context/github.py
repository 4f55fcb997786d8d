"""GitHub API clients for closed change requests and published releases.

This module gathers the two things the channel update needs from GitHub:
- Closed pull requests, newest-updated first, one page at a time
- Whether a version has been published as a release

Design notes:
- Uses httpx for async HTTP requests
- Pages are fetched one at a time by number; the caller decides when to
  stop, so nothing is prefetched past the point the changelog scan ends
- Uses a Protocol so the assembler doesn't depend on the concrete
  implementation (makes testing with mocks easy)
- Change request pages are never retried here. A failed page fails the
  changelog. Release lookups are idempotent and retry transient
  transport errors with tenacity.

GitHub API docs: https://docs.github.com/en/rest/pulls/pulls
"""

from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from types import TracebackType
from typing import Any, Protocol

import httpx
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from release_channel.errors import SourceUnavailable
from release_channel.logging_config import get_logger
from release_channel.schemas import ChangeRequest

logger = get_logger(__name__)

DEFAULT_API_URL = "https://api.github.com"

# ---------------------------------------------------------------------------
# Protocol (Interface)
# ---------------------------------------------------------------------------


class ChangeRequestSource(Protocol):
    """Paged producer of closed change requests, newest-updated first."""

    async def fetch_page(self, page: int) -> list[ChangeRequest]:
        """Fetch one page of closed change requests.

        Args:
            page: 1-based page number

        Returns:
            The change requests on that page. An empty list marks the end
            of the stream.

        Raises:
            SourceUnavailable: If the API is unreachable or returns an error
        """
        ...


class ReleaseChecker(Protocol):
    """Answers whether a version has been published as a release."""

    async def is_released(self, version: str) -> bool:
        ...


# ---------------------------------------------------------------------------
# Concrete Implementation
# ---------------------------------------------------------------------------


def _github_headers(token: str | None) -> dict[str, str]:
    headers = {
        "Accept": "application/vnd.github.v3+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


class _GitHubClientBase:
    """Shared client lifecycle for the GitHub API wrappers.

    Used as an async context manager, one httpx client serves every
    request. Used bare, each request opens and closes its own client.
    """

    def __init__(
        self,
        repo: str,
        token: str | None = None,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not repo or "/" not in repo:
            raise ValueError(f"Repository must be in 'owner/name' format, got {repo!r}")
        self.repo = repo
        self._token = token or os.environ.get("GITHUB_TOKEN", "")
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=_github_headers(self._token),
            timeout=self._timeout,
            transport=self._transport,
        )

    async def __aenter__(self) -> _GitHubClientBase:
        self._client = self._new_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, params=params)
        async with self._new_client() as client:
            return await client.get(url, params=params)


class GitHubChangeRequestSource(_GitHubClientBase):
    """Closed pull requests from GitHub, sorted by last update.

    Usage:
        async with GitHubChangeRequestSource("myorg/app") as source:
            first_page = await source.fetch_page(1)
    """

    def __init__(
        self,
        repo: str,
        token: str | None = None,
        base_url: str = DEFAULT_API_URL,
        per_page: int = 100,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(repo, token=token, base_url=base_url, timeout=timeout, transport=transport)
        self.per_page = per_page

    async def fetch_page(self, page: int) -> list[ChangeRequest]:
        """Fetch one page of closed pull requests.

        Calls GET /repos/{repo}/pulls?state=closed&sort=updated&direction=desc

        Args:
            page: 1-based page number

        Returns:
            Change requests in the order GitHub returned them

        Raises:
            ValueError: If page is less than 1
            SourceUnavailable: On transport errors, timeouts, non-2xx
                responses, or a payload that is not a list of pull requests
        """
        if page < 1:
            raise ValueError(f"Pages start at 1, got {page}")

        params = {
            "state": "closed",
            "sort": "updated",
            "direction": "desc",
            "per_page": self.per_page,
            "page": page,
        }
        try:
            resp = await self._get(f"/repos/{self.repo}/pulls", params=params)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as exc:
            raise SourceUnavailable(
                f"GitHub returned {exc.response.status_code} for {self.repo} pulls page {page}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceUnavailable(
                f"Could not fetch {self.repo} pulls page {page}: {exc!r}"
            ) from exc
        except ValueError as exc:
            raise SourceUnavailable(f"Invalid JSON on {self.repo} pulls page {page}") from exc

        if not isinstance(payload, list):
            raise SourceUnavailable(f"Expected a list on {self.repo} pulls page {page}")

        try:
            changes = [ChangeRequest.from_api(item) for item in payload]
        except (KeyError, TypeError, ValidationError) as exc:
            raise SourceUnavailable(
                f"Malformed pull request on {self.repo} pulls page {page}: {exc}"
            ) from exc

        logger.debug("change_request_page_fetched", repo=self.repo, page=page, count=len(changes))
        return changes


class GitHubReleaseChecker(_GitHubClientBase):
    """Checks that a version exists as a published (non-draft) GitHub release."""

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _get_release(self, version: str) -> httpx.Response:
        return await self._get(f"/repos/{self.repo}/releases/tags/{version}")

    async def is_released(self, version: str) -> bool:
        """Return True if GitHub has a published release for the version tag.

        Raises:
            SourceUnavailable: If GitHub can't be reached or answers with
                anything other than 200 or 404
        """
        try:
            resp = await self._get_release(version)
        except httpx.HTTPError as exc:
            raise SourceUnavailable(f"Could not look up release {version}: {exc!r}") from exc

        if resp.status_code == 404:
            return False
        if resp.status_code != 200:
            raise SourceUnavailable(f"GitHub returned {resp.status_code} for release {version}")
        return not resp.json().get("draft", False)


# ---------------------------------------------------------------------------
# Mock Implementation (for testing)
# ---------------------------------------------------------------------------


class MockChangeRequestSource:
    """Mock source serving predefined pages.

    Records which pages were requested in fetched_pages so tests can
    check where the scan stopped.

    Usage:
        source = MockChangeRequestSource(pages=[[c, b], [a]])
        source = MockChangeRequestSource(page_factory=lambda n: [make(n)])
    """

    def __init__(
        self,
        pages: Sequence[Sequence[ChangeRequest]] | None = None,
        page_factory: Callable[[int], list[ChangeRequest]] | None = None,
        error: Exception | None = None,
    ) -> None:
        """Initialize with pages, a page factory, or an error to raise.

        Args:
            pages: Pages served in order; any page past the end is empty
            page_factory: Builds the page for a given page number (for
                          unbounded streams)
            error: Raised from every fetch when set
        """
        self._pages = [list(page) for page in pages or []]
        self._page_factory = page_factory
        self._error = error
        self.fetched_pages: list[int] = []

    async def fetch_page(self, page: int) -> list[ChangeRequest]:
        self.fetched_pages.append(page)
        if self._error is not None:
            raise self._error
        if self._page_factory is not None:
            return self._page_factory(page)
        if page <= len(self._pages):
            return list(self._pages[page - 1])
        return []


class MockReleaseChecker:
    """Mock release checker backed by a set of released versions."""

    def __init__(self, released: set[str] | None = None) -> None:
        self._released = set(released or ())

    async def is_released(self, version: str) -> bool:
        return version in self._released
