"""Changelog assembly: which change requests shipped between two versions.

The assembler walks closed change requests page by page, newest-updated
first, and asks the ancestry oracle two questions about each merge
commit:

1. Is it already in the current version? Then everything further back
   in the stream is assumed released too, and the scan stops.
2. Otherwise, is it in the target version? Then it gets a changelog line.

Anything in neither (unmerged, or merged to a branch the target doesn't
include) is skipped.

The stop condition is a heuristic. The stream is ordered by last update,
not by merge time, so an old change request that was commented on
recently can end the scan early. The order and the early stop are kept
as they are; the stats record where the scan ended so an operator
reviewing the draft can tell.
"""

from __future__ import annotations

from dataclasses import dataclass

from release_channel.context.ancestry import AncestryOracle
from release_channel.context.github import ChangeRequestSource
from release_channel.errors import UnknownTag
from release_channel.logging_config import get_logger
from release_channel.schemas import ChangeRequest, Changelog, ChangelogEntry

logger = get_logger(__name__)


@dataclass
class AssemblyStats:
    """Counters from the last assemble() call.

    Attributes:
        pages_fetched: Pages requested from the source, including the
                       terminating empty page
        scanned: Change requests looked at
        included: Change requests that made it into the changelog
        skipped: Change requests in neither version
        stopped_at: Number of the change request that ended the scan
                    (None if the source was exhausted)
    """

    pages_fetched: int = 0
    scanned: int = 0
    included: int = 0
    skipped: int = 0
    stopped_at: int | None = None

    @property
    def stopped_early(self) -> bool:
        return self.stopped_at is not None


class ChangelogAssembler:
    """Builds the changelog between a published and a new version.

    Usage:
        assembler = ChangelogAssembler(source, oracle)
        changelog = await assembler.assemble("v1.2.0", "v1.3.0")
        print(changelog.render())
    """

    def __init__(self, source: ChangeRequestSource, oracle: AncestryOracle) -> None:
        self.source = source
        self.oracle = oracle
        self.stats = AssemblyStats()
        self._missing_tags: set[str] = set()

    async def assemble(self, current_version: str | None, target_version: str) -> Changelog:
        """Collect the change requests in target_version but not in current_version.

        Args:
            current_version: Version the channel points at now, or None if
                             it has never been set
            target_version: Version being released

        Returns:
            The changelog, in source order. A placeholder changelog if
            current_version is None.

        Raises:
            UnknownTag: If target_version has no tag
            SourceUnavailable: If a page can't be fetched
            AncestryUnavailable: If git fails
        """
        self.stats = AssemblyStats()
        self._missing_tags = set()

        if not current_version:
            logger.info("changelog_no_history", target_version=target_version)
            return Changelog.no_history()

        entries: list[ChangelogEntry] = []
        page = 1
        while True:
            changes = await self.source.fetch_page(page)
            self.stats.pages_fetched += 1
            logger.debug("changelog_page_scanned", page=page, count=len(changes))
            if not changes:
                break

            for change in changes:
                self.stats.scanned += 1
                if not change.merged:
                    self.stats.skipped += 1
                    continue

                if await self._released_in(current_version, change):
                    self.stats.stopped_at = change.id
                    logger.info(
                        "changelog_reached_current_version",
                        current_version=current_version,
                        change_request=change.id,
                        page=page,
                    )
                    return self._finish(entries, current_version, target_version)

                if await self.oracle.contains(target_version, change.merge_point):
                    entries.append(ChangelogEntry.from_change_request(change))
                    self.stats.included += 1
                else:
                    self.stats.skipped += 1

            page += 1

        return self._finish(entries, current_version, target_version)

    async def _released_in(self, version: str, change: ChangeRequest) -> bool:
        """Containment check where a missing tag means "not contained"."""
        if version in self._missing_tags:
            return False
        try:
            return await self.oracle.contains(version, change.merge_point)
        except UnknownTag:
            logger.warning("changelog_current_tag_missing", version=version)
            self._missing_tags.add(version)
            return False

    def _finish(
        self, entries: list[ChangelogEntry], current_version: str, target_version: str
    ) -> Changelog:
        logger.info(
            "changelog_assembled",
            current_version=current_version,
            target_version=target_version,
            entries=len(entries),
            pages_fetched=self.stats.pages_fetched,
            scanned=self.stats.scanned,
            stopped_early=self.stats.stopped_early,
        )
        return Changelog(entries=entries)


async def generate_changelog(
    source: ChangeRequestSource,
    oracle: AncestryOracle,
    current_version: str | None,
    target_version: str,
) -> str:
    """Assemble and render the changelog text in one call."""
    changelog = await ChangelogAssembler(source, oracle).assemble(current_version, target_version)
    return changelog.render()
