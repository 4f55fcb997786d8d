"""Command-line entry point.

Usage:
    release-channel --repo myorg/app --bucket s3://updates.example.com stable v1.4.0
    release-channel --edit --no-sync nightly v1.5.0-nightly.3
    release-channel --dry-run stable v1.4.0      # print the changelog, change nothing

Exit status: 0 on success or a deliberate abort, 1 on a failed update,
2 on bad usage.
"""

from __future__ import annotations

import argparse
import asyncio
import re
import sys
from functools import partial
from pathlib import Path

from release_channel.config import DEFAULT_CONFIG_PATH, ReleaseConfig, load_config
from release_channel.context.ancestry import GitAncestryOracle
from release_channel.context.github import GitHubChangeRequestSource, GitHubReleaseChecker
from release_channel.context.metadata import ChannelReader, HttpChannelReader, LocalChannelReader
from release_channel.editor import edit_in_editor
from release_channel.errors import EmptyChangelogAbort, ReleaseError
from release_channel.logging_config import LOG_FORMATS, setup_logging
from release_channel.orchestrator import ReleaseOrchestrator, ReleaseResult
from release_channel.schemas import NAME_PATTERN
from release_channel.tools import S3Publisher, TufSigner


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="release-channel",
        description="Point a release channel at a version and publish its changelog.",
    )
    parser.add_argument("channel", metavar="CHANNEL", help="Channel to update (e.g. stable)")
    parser.add_argument("version", metavar="VERSION", help="Released version to point it at")
    parser.add_argument("--config", "-c", type=Path, help=f"YAML config file (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("--repo", help="GitHub repository in owner/name format")
    parser.add_argument("--bucket", "-b", help="Storage bucket the metadata is published to")
    parser.add_argument("--metadata-dir", "-d", type=Path, help="Local update-metadata directory")
    parser.add_argument("--metadata-url", help="URL the published channel files are read from")
    parser.add_argument("--edit", "-e", action="store_true", default=None, help="Review the changelog in $EDITOR")
    parser.add_argument("--no-sync", dest="sync", action="store_false", default=None, help="Don't pull published metadata first")
    parser.add_argument("--no-changelog", dest="changelog", action="store_false", default=None, help="Don't generate a changelog")
    parser.add_argument("--dry-run", action="store_true", help="Print the changelog and stop before staging")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log per-page and per-file detail")
    parser.add_argument("--log-format", choices=LOG_FORMATS, help="Log renderer (default: console in a terminal, json otherwise)")
    return parser


def resolve_config(args: argparse.Namespace) -> ReleaseConfig:
    """Merge the config file, command-line flags and environment."""
    config = load_config(args.config)
    config = config.with_overrides(
        repo=args.repo,
        bucket=args.bucket,
        metadata_dir=args.metadata_dir,
        metadata_url=args.metadata_url,
        edit=args.edit,
        sync=args.sync,
        changelog=args.changelog,
    )
    return config.with_env()


def build_orchestrator(
    config: ReleaseConfig,
    change_source: GitHubChangeRequestSource,
    release_checker: GitHubReleaseChecker,
) -> ReleaseOrchestrator:
    reader: ChannelReader
    if config.metadata_url:
        reader = HttpChannelReader(config.metadata_url, timeout=config.http_timeout)
    else:
        reader = LocalChannelReader(config.metadata_dir / "repository" / "targets")

    publisher = None
    if config.bucket:
        publisher = S3Publisher(
            config.bucket,
            config.metadata_dir,
            command=config.sync_command,
            timeout=config.tool_timeout,
        )

    return ReleaseOrchestrator(
        config,
        channel_reader=reader,
        release_checker=release_checker,
        change_source=change_source,
        oracle_factory=partial(GitAncestryOracle.clone, config.git_url, timeout=config.git_timeout),
        signer=TufSigner(config.metadata_dir, command=config.signer_command, timeout=config.tool_timeout),
        publisher=publisher,
        editor=edit_in_editor if config.edit else None,
    )


async def run_release(config: ReleaseConfig, channel: str, version: str, dry_run: bool) -> ReleaseResult:
    github = {
        "token": config.github_token,
        "base_url": config.api_url,
        "timeout": config.http_timeout,
    }
    async with (
        GitHubChangeRequestSource(config.repo, per_page=config.per_page, **github) as change_source,
        GitHubReleaseChecker(config.repo, **github) as release_checker,
    ):
        orchestrator = build_orchestrator(config, change_source, release_checker)
        return await orchestrator.run(channel, version, dry_run=dry_run)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    for name, value in (("CHANNEL", args.channel), ("VERSION", args.version)):
        if not re.fullmatch(NAME_PATTERN, value):
            parser.error(f"{name} must be letters, digits, '.', '_' or '-', got {value!r}")

    try:
        config = resolve_config(args)
    except ValueError as exc:
        parser.error(str(exc))
    if not config.repo:
        parser.error("a repository is required (--repo or 'repo' in the config file)")

    try:
        setup_logging(log_format=args.log_format, log_level="DEBUG" if args.verbose else None)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        result = asyncio.run(run_release(config, args.channel, args.version, args.dry_run))
    except EmptyChangelogAbort as exc:
        print(f"warning: {exc}", file=sys.stderr)
        return exc.exit_code
    except ReleaseError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code

    if args.dry_run and result.changelog is not None:
        sys.stdout.write(result.changelog)
    return 0


if __name__ == "__main__":
    sys.exit(main())
