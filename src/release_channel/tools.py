"""External tools: the metadata signer and the object storage sync.

Both are modelled as small capability protocols so the orchestrator can
run against recording mocks in tests and against real executables in
production:

- Signer: clean, add, snapshot, timestamp, commit (the `tuf` CLI)
- Publisher: pull and push the metadata tree (`aws s3 sync`)

Every step runs with check=True semantics: a non-zero exit, a timeout or
a missing executable raises ToolFailed, and the orchestrator stops
before the next step.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from release_channel.errors import ToolFailed
from release_channel.logging_config import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class Signer(Protocol):
    """Seals a staged metadata tree."""

    def clean(self) -> None: ...

    def add(self, paths: Sequence[str]) -> None: ...

    def snapshot(self) -> None: ...

    def timestamp(self) -> None: ...

    def commit(self) -> None: ...


class Publisher(Protocol):
    """Moves the metadata tree between local disk and distribution storage."""

    def pull(self) -> None: ...

    def push(self) -> None: ...


def _run_tool(tool: str, step: str, command: list[str], cwd: Path | None, timeout: float) -> str:
    """Run one tool step and return its combined output.

    Raises:
        ToolFailed: On non-zero exit, timeout, or a missing executable
    """
    logger.info("tool_step_started", tool=tool, step=step)
    try:
        result = subprocess.run(
            command,
            cwd=cwd,
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as exc:
        raise ToolFailed(tool, step, None, f"{command[0]} not found in PATH") from exc
    except subprocess.TimeoutExpired as exc:
        raise ToolFailed(tool, step, None, f"no result after {timeout}s") from exc
    except subprocess.CalledProcessError as exc:
        raise ToolFailed(tool, step, exc.returncode, exc.stderr or exc.stdout or "") from exc

    logger.info("tool_step_finished", tool=tool, step=step)
    return result.stdout


# ---------------------------------------------------------------------------
# Concrete Implementations
# ---------------------------------------------------------------------------


class TufSigner:
    """Drives the `tuf` command-line tool inside the metadata directory.

    The directory holds keys/, staged/ and repository/ as laid out by
    `tuf init`. Passphrases are read by the tool itself from its
    TUF_*_PASSPHRASE environment variables.
    """

    def __init__(self, metadata_dir: str | Path, command: str = "tuf", timeout: float = 600.0) -> None:
        self.metadata_dir = Path(metadata_dir)
        self.command = command
        self.timeout = timeout

    def _run(self, step: str, *args: str) -> None:
        _run_tool(self.command, step, [self.command, step, *args], self.metadata_dir, self.timeout)

    def clean(self) -> None:
        self._run("clean")

    def add(self, paths: Sequence[str]) -> None:
        self._run("add", *paths)

    def snapshot(self) -> None:
        self._run("snapshot")

    def timestamp(self) -> None:
        self._run("timestamp")

    def commit(self) -> None:
        self._run("commit")


class S3Publisher:
    """Syncs <metadata_dir>/repository with an S3 bucket via the AWS CLI."""

    def __init__(
        self,
        bucket: str,
        metadata_dir: str | Path,
        command: str = "aws",
        timeout: float = 600.0,
    ) -> None:
        self.bucket = bucket if bucket.startswith("s3://") else f"s3://{bucket}"
        self.repository_dir = Path(metadata_dir) / "repository"
        self.command = command
        self.timeout = timeout

    def _sync(self, step: str, src: str, dest: str) -> None:
        _run_tool(
            self.command,
            step,
            [self.command, "s3", "sync", "--no-progress", src, dest],
            None,
            self.timeout,
        )

    def pull(self) -> None:
        self.repository_dir.mkdir(parents=True, exist_ok=True)
        self._sync("pull", self.bucket, str(self.repository_dir))

    def push(self) -> None:
        self._sync("push", str(self.repository_dir), self.bucket)


# ---------------------------------------------------------------------------
# Mock Implementations
# ---------------------------------------------------------------------------


class MockSigner:
    """Records signer steps in calls; fails at fail_on if set."""

    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.calls: list[str] = []
        self.added: list[str] = []

    def _step(self, step: str) -> None:
        self.calls.append(step)
        if step == self.fail_on:
            raise ToolFailed("tuf", step, 1, "mock failure")

    def clean(self) -> None:
        self._step("clean")

    def add(self, paths: Sequence[str]) -> None:
        self.added.extend(paths)
        self._step("add")

    def snapshot(self) -> None:
        self._step("snapshot")

    def timestamp(self) -> None:
        self._step("timestamp")

    def commit(self) -> None:
        self._step("commit")


class MockPublisher:
    """Records publisher steps in calls; fails at fail_on if set."""

    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.calls: list[str] = []

    def _step(self, step: str) -> None:
        self.calls.append(step)
        if step == self.fail_on:
            raise ToolFailed("aws", step, 1, "mock failure")

    def pull(self) -> None:
        self._step("pull")

    def push(self) -> None:
        self._step("push")
