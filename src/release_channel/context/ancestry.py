"""Tag ancestry queries backed by git.

The changelog assembler needs one question answered over and over:
"is this merge commit reachable from tag T?" This module answers it
with `git tag --contains`, against a bare clone that is fetched fresh
so tags from releases made minutes ago are visible.

Design notes:
- The clone lives in a temporary directory owned by one invocation.
  GitAncestryOracle.clone() is an async context manager and removes it
  on success, abort and failure alike.
- Each commit costs one `git tag --contains` call; the resulting tag set
  is cached, so asking about the current and the target tag for the
  same commit hits git once.
- Every git call runs under a timeout. Failures and timeouts raise
  AncestryUnavailable rather than UnknownTag, so a broken clone can
  never be mistaken for "nothing is contained".
"""

from __future__ import annotations

import asyncio
import tempfile
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Protocol

from release_channel.errors import AncestryUnavailable, UnknownTag
from release_channel.logging_config import get_logger

logger = get_logger(__name__)

# git exits with this status from `tag --contains` when it has never
# heard of the commit.
_MALFORMED_OBJECT_STATUS = 129

# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class AncestryOracle(Protocol):
    """Answers whether a commit is reachable from a tag."""

    async def contains(self, tag: str, commit: str) -> bool:
        """Return True if commit is an ancestor of (or equal to) tag.

        Raises:
            UnknownTag: If tag does not exist
        """
        ...

    async def has_tag(self, tag: str) -> bool:
        ...


# ---------------------------------------------------------------------------
# git Implementation
# ---------------------------------------------------------------------------


class GitAncestryOracle:
    """Ancestry oracle over a local git repository.

    Usage:
        async with GitAncestryOracle.clone("https://github.com/myorg/app.git") as oracle:
            await oracle.contains("v1.2.0", "4f2a9c1")
    """

    def __init__(self, git_dir: str | Path, timeout: float = 300.0, remote: str = "origin") -> None:
        """Initialize over an existing repository.

        Args:
            git_dir: Path to the repository (bare or working tree)
            timeout: Seconds allowed per git command
            remote: Remote fetched by refresh()
        """
        self.git_dir = Path(git_dir)
        self.timeout = timeout
        self.remote = remote
        self._tags: set[str] | None = None
        self._containing: dict[str, frozenset[str]] = {}

    @classmethod
    @asynccontextmanager
    async def clone(cls, url: str, timeout: float = 300.0) -> AsyncIterator[GitAncestryOracle]:
        """Clone url into a temporary directory and yield an oracle over it.

        The clone is bare and blob-less: ancestry only needs commits.
        The directory is removed when the context exits.
        """
        with tempfile.TemporaryDirectory(prefix="release-channel-") as tmpdir:
            git_dir = Path(tmpdir) / "repo.git"
            logger.info("ancestry_clone_started", url=url)
            await _run_git(
                ["clone", "--quiet", "--bare", "--filter=blob:none", url, str(git_dir)],
                cwd=Path(tmpdir),
                timeout=timeout,
            )
            oracle = cls(git_dir, timeout=timeout)
            await oracle.refresh()
            yield oracle
            logger.debug("ancestry_clone_released", path=tmpdir)

    async def refresh(self) -> None:
        """Fetch every remote tag and reload the tag index."""
        await self._git("fetch", "--quiet", "--tags", "--force", self.remote)
        self._containing.clear()
        output = await self._git("tag", "--list")
        self._tags = set(output.split())
        logger.info("ancestry_tags_loaded", count=len(self._tags))

    async def tags(self) -> set[str]:
        if self._tags is None:
            output = await self._git("tag", "--list")
            self._tags = set(output.split())
        return self._tags

    async def has_tag(self, tag: str) -> bool:
        return tag in await self.tags()

    async def tags_containing(self, commit: str) -> frozenset[str]:
        """Return the names of all tags whose history includes commit.

        A commit git has never seen is contained in no tag.
        """
        if commit in self._containing:
            return self._containing[commit]

        try:
            output = await self._git("tag", "--contains", commit)
        except GitCommandFailed as exc:
            if exc.returncode != _MALFORMED_OBJECT_STATUS:
                raise
            logger.debug("ancestry_commit_unknown", commit=commit)
            output = ""

        result = frozenset(output.split())
        self._containing[commit] = result
        return result

    async def contains(self, tag: str, commit: str) -> bool:
        if not await self.has_tag(tag):
            raise UnknownTag(tag)
        return tag in await self.tags_containing(commit)

    async def _git(self, *args: str) -> str:
        return await _run_git(["--git-dir", str(self.git_dir), *args], timeout=self.timeout)


class GitCommandFailed(AncestryUnavailable):
    """A git command exited non-zero or timed out."""

    def __init__(self, args: list[str], returncode: int | None, stderr: str = "") -> None:
        detail = f"exit status {returncode}" if returncode is not None else "timed out"
        super().__init__(f"git {' '.join(args)} failed ({detail}): {stderr.strip()}")
        self.returncode = returncode
        self.stderr = stderr


async def _run_git(args: list[str], cwd: Path | None = None, timeout: float = 300.0) -> str:
    """Run git with args and return its stdout.

    Raises:
        GitCommandFailed: On non-zero exit or when timeout expires
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise GitCommandFailed(args, None, str(exc)) from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise GitCommandFailed(args, None, f"no result after {timeout}s") from None

    if proc.returncode != 0:
        raise GitCommandFailed(args, proc.returncode, stderr.decode(errors="replace"))
    return stdout.decode()


# ---------------------------------------------------------------------------
# Mock Implementation
# ---------------------------------------------------------------------------


class MockAncestryOracle:
    """Mock oracle over a fixed map of tag -> reachable commits.

    Records every (tag, commit) query in calls.
    """

    def __init__(self, reachable: Mapping[str, set[str]] | None = None) -> None:
        self._reachable = {tag: set(commits) for tag, commits in (reachable or {}).items()}
        self.calls: list[tuple[str, str]] = []

    async def has_tag(self, tag: str) -> bool:
        return tag in self._reachable

    async def contains(self, tag: str, commit: str) -> bool:
        self.calls.append((tag, commit))
        if tag not in self._reachable:
            raise UnknownTag(tag)
        return commit in self._reachable[tag]
