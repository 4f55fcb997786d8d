"""Configuration for a channel update.

Settings come from three places, later ones winning:
1. Defaults on ReleaseConfig
2. An optional YAML file (release-channel.yml)
3. Environment (GITHUB_TOKEN) and command-line flags

Example release-channel.yml:

    repo: myorg/app
    bucket: s3://updates.example.com
    metadata_dir: /srv/tuf
    metadata_url: https://updates.example.com
    git_timeout: 120
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

DEFAULT_CONFIG_PATH = "release-channel.yml"


class ReleaseConfig(BaseModel):
    """Settings for the release workflow and its collaborators.

    Attributes:
        repo: GitHub repository in "owner/name" format
        git_url: URL cloned for ancestry queries (derived from repo if unset)
        api_url: GitHub API base URL
        github_token: Token for the GitHub API (falls back to GITHUB_TOKEN)
        metadata_url: Base URL the published channel files are served from
        bucket: Object storage location the metadata tree is synced with
        metadata_dir: Local update-metadata repository (keys/, staged/, repository/)
        signer_command: Signing tool executable
        sync_command: Object storage sync executable
        http_timeout: Seconds allowed per HTTP request
        git_timeout: Seconds allowed per git command
        tool_timeout: Seconds allowed per signer or sync step
        per_page: Change requests requested per page
        sync: Pull the published metadata before reading the channel
        changelog: Generate a changelog
        edit: Open the draft changelog in $EDITOR before staging
    """

    repo: str = Field("", description="GitHub repository ('owner/name')")
    git_url: str | None = None
    api_url: str = "https://api.github.com"
    github_token: str | None = None
    metadata_url: str | None = None
    bucket: str | None = None
    metadata_dir: Path = Path("tuf")
    signer_command: str = "tuf"
    sync_command: str = "aws"
    http_timeout: float = Field(30.0, gt=0)
    git_timeout: float = Field(300.0, gt=0)
    tool_timeout: float = Field(600.0, gt=0)
    per_page: int = Field(100, ge=1, le=100)
    sync: bool = True
    changelog: bool = True
    edit: bool = False

    @model_validator(mode="after")
    def derive_git_url(self) -> ReleaseConfig:
        """Point git_url at GitHub when only the repo is given."""
        if self.git_url is None and self.repo:
            self.git_url = f"https://github.com/{self.repo}.git"
        return self

    def with_env(self) -> ReleaseConfig:
        """Return a copy with unset secrets filled from the environment."""
        if self.github_token:
            return self
        return self.model_copy(update={"github_token": os.environ.get("GITHUB_TOKEN") or None})

    def with_overrides(self, **overrides: Any) -> ReleaseConfig:
        """Return a validated copy with the non-None overrides applied."""
        values = self.model_dump()
        values.update({key: value for key, value in overrides.items() if value is not None})
        derived = self.repo and self.git_url == f"https://github.com/{self.repo}.git"
        if overrides.get("repo") and "git_url" not in overrides and derived:
            values["git_url"] = None
        return ReleaseConfig.model_validate(values)


def load_config(path: str | Path | None = None) -> ReleaseConfig:
    """Load and validate a YAML config file.

    Args:
        path: Path to the YAML file. Defaults to release-channel.yml in the
              working directory.

    Returns:
        A validated ReleaseConfig. Returns defaults if the file doesn't exist.

    Raises:
        ValueError: If the YAML content is invalid or fails validation.
    """
    config_path = Path(path or DEFAULT_CONFIG_PATH)
    if not config_path.exists():
        return ReleaseConfig()

    try:
        raw = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

    try:
        return ReleaseConfig.model_validate(raw)
    except Exception as exc:
        raise ValueError(f"Invalid config in {config_path}: {exc}") from exc
