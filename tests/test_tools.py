"""Tests for the signer and publisher wrappers.

subprocess.run is patched, so no real `tuf` or `aws` is needed.

Run with: pytest tests/test_tools.py -v
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from release_channel import tools
from release_channel.errors import ToolFailed
from release_channel.tools import S3Publisher, TufSigner


@pytest.fixture
def fake_run(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    run = MagicMock(return_value=subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr=""))
    monkeypatch.setattr(tools.subprocess, "run", run)
    return run


class TestTufSigner:
    """Tests for TufSigner."""

    def test_steps_run_in_metadata_dir(self, fake_run: MagicMock, tmp_path: Path) -> None:
        signer = TufSigner(tmp_path, command="tuf", timeout=5)

        signer.clean()
        signer.add(["channels/stable", "channels/stable.changelog"])
        signer.snapshot()
        signer.timestamp()
        signer.commit()

        commands = [call.args[0] for call in fake_run.call_args_list]
        assert commands == [
            ["tuf", "clean"],
            ["tuf", "add", "channels/stable", "channels/stable.changelog"],
            ["tuf", "snapshot"],
            ["tuf", "timestamp"],
            ["tuf", "commit"],
        ]
        for call in fake_run.call_args_list:
            assert call.kwargs["cwd"] == tmp_path
            assert call.kwargs["check"] is True
            assert call.kwargs["timeout"] == 5

    def test_non_zero_exit(self, fake_run: MagicMock, tmp_path: Path) -> None:
        fake_run.side_effect = subprocess.CalledProcessError(1, ["tuf", "commit"], stderr="bad passphrase")

        with pytest.raises(ToolFailed, match="bad passphrase") as excinfo:
            TufSigner(tmp_path).commit()
        assert excinfo.value.step == "commit"
        assert excinfo.value.returncode == 1

    def test_timeout(self, fake_run: MagicMock, tmp_path: Path) -> None:
        fake_run.side_effect = subprocess.TimeoutExpired(["tuf", "snapshot"], 5)

        with pytest.raises(ToolFailed, match="timed out"):
            TufSigner(tmp_path, timeout=5).snapshot()

    def test_missing_executable(self, fake_run: MagicMock, tmp_path: Path) -> None:
        fake_run.side_effect = FileNotFoundError("tuf")

        with pytest.raises(ToolFailed, match="not found"):
            TufSigner(tmp_path).clean()


class TestS3Publisher:
    """Tests for S3Publisher."""

    def test_pull_and_push(self, fake_run: MagicMock, tmp_path: Path) -> None:
        publisher = S3Publisher("updates.example.com", tmp_path)

        publisher.pull()
        publisher.push()

        repository = str(tmp_path / "repository")
        commands = [call.args[0] for call in fake_run.call_args_list]
        assert commands == [
            ["aws", "s3", "sync", "--no-progress", "s3://updates.example.com", repository],
            ["aws", "s3", "sync", "--no-progress", repository, "s3://updates.example.com"],
        ]
        assert (tmp_path / "repository").is_dir()

    def test_push_failure(self, fake_run: MagicMock, tmp_path: Path) -> None:
        fake_run.side_effect = subprocess.CalledProcessError(255, ["aws"], stderr="AccessDenied")

        with pytest.raises(ToolFailed, match="AccessDenied"):
            S3Publisher("s3://updates", tmp_path).push()
