"""Edit strategies for the draft changelog.

An edit strategy takes the draft text and returns the final text, or
None when the operator emptied it. The orchestrator treats None (or
blank text) as a deliberate abort.
"""

from __future__ import annotations

import os
import shlex
import subprocess
import tempfile
from collections.abc import Callable
from pathlib import Path

from release_channel.errors import ToolFailed

EditStrategy = Callable[[str], str | None]

DEFAULT_EDITOR = "vi"


def passthrough(draft: str) -> str | None:
    """Accept the draft as is."""
    return draft


def edit_in_editor(draft: str, editor: str | None = None) -> str | None:
    """Open the draft in $VISUAL / $EDITOR and return what was saved.

    Raises:
        ToolFailed: If the editor can't be started or exits non-zero
    """
    command = editor or os.environ.get("VISUAL") or os.environ.get("EDITOR") or DEFAULT_EDITOR
    with tempfile.TemporaryDirectory(prefix="release-channel-") as tmpdir:
        path = Path(tmpdir) / "CHANGELOG.md"
        path.write_text(draft)
        argv = [*shlex.split(command), str(path)]
        try:
            subprocess.run(argv, check=True)
        except FileNotFoundError as exc:
            raise ToolFailed(argv[0], "edit", None, f"{argv[0]} not found in PATH") from exc
        except subprocess.CalledProcessError as exc:
            raise ToolFailed(argv[0], "edit", exc.returncode) from exc
        text = path.read_text()

    if not text.strip():
        return None
    return text if text.endswith("\n") else text + "\n"
