"""Exception taxonomy for channel updates.

Every error the workflow raises on purpose derives from ReleaseError so
the CLI can tell a handled failure from a bug. EmptyChangelogAbort is a
ReleaseError too, but it marks a deliberate stop and exits with status 0.
"""

from __future__ import annotations


class ReleaseError(Exception):
    """Base class for channel update errors."""

    exit_code = 1


class PreconditionFailed(ReleaseError):
    """The update cannot start: missing keys, directory, or unreleased version."""


class SourceUnavailable(ReleaseError):
    """The change request API was unreachable or answered with an error."""


class UnknownTag(ReleaseError):
    """A version has no matching tag in the repository."""

    def __init__(self, tag: str) -> None:
        super().__init__(f"Unknown tag: {tag}")
        self.tag = tag


class AncestryUnavailable(ReleaseError):
    """git failed or timed out while answering an ancestry question."""


class ToolFailed(ReleaseError):
    """An external tool (signer, storage sync) exited with an error."""

    def __init__(self, tool: str, step: str, returncode: int | None, output: str = "") -> None:
        detail = f"exit status {returncode}" if returncode is not None else "timed out"
        message = f"{tool} {step} failed ({detail})"
        if output:
            message = f"{message}: {output.strip()}"
        super().__init__(message)
        self.tool = tool
        self.step = step
        self.returncode = returncode
        self.output = output


class EmptyChangelogAbort(ReleaseError):
    """The reviewed changelog came back empty; the operator chose to stop."""

    exit_code = 0
