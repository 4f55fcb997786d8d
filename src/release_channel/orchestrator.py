"""Channel update orchestrator.

This module ties the components together into one update run:
- Precondition checks (metadata dir, signing keys, published release)
- Optional sync of the published metadata
- Reading the channel's current version (context/metadata.py)
- Changelog assembly (changelog.py over context/github.py and context/ancestry.py)
- Optional human review of the draft (editor.py)
- Staging, signing and publishing (tools.py)

The run moves through the stages in Stage, in order. Nothing is written
to the metadata directory until the changelog is final, and the signer
and publisher only run after staging succeeded, so interrupting a run
at any point before COMMITTING leaves the repository untouched.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

import structlog
from pydantic import ValidationError

from release_channel.changelog import ChangelogAssembler
from release_channel.config import ReleaseConfig
from release_channel.context.ancestry import AncestryOracle
from release_channel.context.github import ChangeRequestSource, ReleaseChecker
from release_channel.context.metadata import CHANNELS_DIR, ChannelReader
from release_channel.editor import EditStrategy
from release_channel.errors import (
    EmptyChangelogAbort,
    PreconditionFailed,
    ReleaseError,
    UnknownTag,
)
from release_channel.logging_config import get_logger
from release_channel.schemas import ChannelState
from release_channel.tools import Publisher, Signer

logger = get_logger(__name__)

OracleFactory = Callable[[], AbstractAsyncContextManager[AncestryOracle]]

CHANGELOG_SUFFIX = ".changelog"


class Stage(StrEnum):
    """Stages of a channel update, in the order they run."""

    PENDING = "PENDING"
    VALIDATING = "VALIDATING"
    SYNCING = "SYNCING"
    CHECKING_RELEASE = "CHECKING_RELEASE"
    GENERATING_CHANGELOG = "GENERATING_CHANGELOG"
    EDITING_CHANGELOG = "EDITING_CHANGELOG"
    STAGING = "STAGING"
    COMMITTING = "COMMITTING"
    PUBLISHING = "PUBLISHING"
    DONE = "DONE"
    ABORTED = "ABORTED"
    FAILED = "FAILED"


@dataclass
class ReleaseResult:
    """Outcome of a completed run.

    Attributes:
        state: The channel's previous and new version
        changelog: Final changelog text (None if generation was skipped)
        staged: Target paths handed to the signer, relative to targets/
        published: Whether the metadata was pushed to storage
    """

    state: ChannelState
    changelog: str | None = None
    staged: list[str] = field(default_factory=list)
    published: bool = False


class ReleaseOrchestrator:
    """Runs one channel update from validation to publication.

    Collaborators are injected so each can be swapped for a mock:

        orchestrator = ReleaseOrchestrator(
            config,
            channel_reader=MockChannelReader({"stable": "v1"}),
            release_checker=MockReleaseChecker({"v2"}),
            change_source=MockChangeRequestSource(pages=[...]),
            oracle_factory=lambda: mock_oracle_context(),
            signer=MockSigner(),
        )
        result = await orchestrator.run("stable", "v2")
    """

    def __init__(
        self,
        config: ReleaseConfig,
        *,
        channel_reader: ChannelReader,
        release_checker: ReleaseChecker,
        change_source: ChangeRequestSource,
        oracle_factory: OracleFactory,
        signer: Signer,
        publisher: Publisher | None = None,
        editor: EditStrategy | None = None,
    ) -> None:
        self.config = config
        self.channel_reader = channel_reader
        self.release_checker = release_checker
        self.change_source = change_source
        self.oracle_factory = oracle_factory
        self.signer = signer
        self.publisher = publisher
        self.editor = editor
        self.stage = Stage.PENDING
        self.history: list[Stage] = []

    def _enter(self, stage: Stage) -> None:
        self.stage = stage
        self.history.append(stage)
        logger.info("stage_entered", stage=stage.value)

    async def run(self, channel: str, version: str, dry_run: bool = False) -> ReleaseResult:
        """Point channel at version.

        Args:
            channel: Channel name (e.g. "stable")
            version: Version to release; must be tagged and published
            dry_run: Stop after the changelog is final, without staging

        Returns:
            A ReleaseResult describing what was staged and published

        Raises:
            PreconditionFailed: Before anything was changed
            SourceUnavailable, UnknownTag, AncestryUnavailable: While
                reading state or building the changelog
            EmptyChangelogAbort: The reviewed changelog came back empty
            ToolFailed: The signer or publisher failed
        """
        self.stage = Stage.PENDING
        self.history = []
        with structlog.contextvars.bound_contextvars(channel=channel, version=version):
            try:
                result = await self._run(channel, version, dry_run)
            except EmptyChangelogAbort:
                self.stage = Stage.ABORTED
                logger.warning("release_aborted", reason="empty changelog")
                raise
            except ReleaseError as exc:
                failed_at = self.stage
                self.stage = Stage.FAILED
                logger.error(
                    "release_failed",
                    stage=failed_at.value,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                raise

            self._enter(Stage.DONE)
            logger.info(
                "release_complete",
                previous_version=result.state.current_version,
                staged=result.staged,
                published=result.published,
                dry_run=dry_run,
            )
            return result

    async def _run(self, channel: str, version: str, dry_run: bool) -> ReleaseResult:
        self._enter(Stage.VALIDATING)
        try:
            state = ChannelState(channel=channel, target_version=version)
        except ValidationError as exc:
            raise PreconditionFailed(f"Invalid channel or version: {channel!r} {version!r}") from exc
        await self._validate(version)

        if self.config.sync and self.publisher is not None:
            self._enter(Stage.SYNCING)
            self.publisher.pull()

        self._enter(Stage.CHECKING_RELEASE)
        current = await self.channel_reader.current_version(channel)
        state.current_version = current
        if current == version:
            raise PreconditionFailed(f"Channel {channel} already points at {version}")
        logger.info("channel_state_read", current_version=current)

        changelog: str | None = None
        if self.config.changelog:
            changelog = await self._generate_changelog(state)

            if self.editor is not None:
                self._enter(Stage.EDITING_CHANGELOG)
                edited = self.editor(changelog)
                if edited is None or not edited.strip():
                    raise EmptyChangelogAbort("Changelog is empty after editing, not releasing")
                changelog = edited

        result = ReleaseResult(state=state, changelog=changelog)
        if dry_run:
            return result

        self._enter(Stage.STAGING)
        self.signer.clean()
        result.staged = self._stage(channel, version, changelog)

        self._enter(Stage.COMMITTING)
        self.signer.add(result.staged)
        self.signer.snapshot()
        self.signer.timestamp()
        self.signer.commit()

        if self.config.bucket and self.publisher is not None:
            self._enter(Stage.PUBLISHING)
            self.publisher.push()
            result.published = True

        return result

    async def _validate(self, version: str) -> None:
        metadata_dir = self.config.metadata_dir
        if not metadata_dir.is_dir():
            raise PreconditionFailed(f"Metadata directory {metadata_dir} does not exist")

        keys_dir = metadata_dir / "keys"
        if not keys_dir.is_dir() or not any(path.is_file() for path in keys_dir.iterdir()):
            raise PreconditionFailed(f"No signing keys found in {keys_dir}")

        if not await self.release_checker.is_released(version):
            raise PreconditionFailed(f"Version {version} has not been released yet")

    async def _generate_changelog(self, state: ChannelState) -> str:
        async with self.oracle_factory() as oracle:
            if not await oracle.has_tag(state.target_version):
                raise UnknownTag(state.target_version)

            self._enter(Stage.GENERATING_CHANGELOG)
            assembler = ChangelogAssembler(self.change_source, oracle)
            changelog = await assembler.assemble(state.current_version, state.target_version)
            return changelog.render()

    def _stage(self, channel: str, version: str, changelog: str | None) -> list[str]:
        """Write the channel files into staged/targets and return their target paths."""
        targets_dir = self.config.metadata_dir / "staged" / "targets"
        channel_path = Path(CHANNELS_DIR) / channel
        files = {str(channel_path): f"{version}\n"}
        if changelog is not None:
            files[str(channel_path) + CHANGELOG_SUFFIX] = changelog

        for target, content in files.items():
            path = targets_dir / target
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
            logger.debug("target_staged", target=target, bytes=len(content))
        return list(files)
