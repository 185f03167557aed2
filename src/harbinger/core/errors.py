"""Exception hierarchy for repository monitoring and conflict resolution.

Every failure the core can report is a HarbingerError subclass, so
callers can catch the whole family at the command boundary while
still branching on the specific kind where it matters (for example
NoUpstreamError, which the sync evaluator treats as "in sync").
"""

from __future__ import annotations

__all__ = [
    "HarbingerError",
    "RepositoryNotFoundError",
    "InvalidRefNameError",
    "UnknownRefError",
    "NoUpstreamError",
    "MergePreviewUnsupportedError",
    "ApplyFailedError",
    "NoEditorFoundError",
    "UncommittedChangesError",
    "ExternalToolError",
]


class HarbingerError(Exception):
    """Base exception for all harbinger errors.

    Attributes:
        message: One-line, human-readable diagnostic.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class RepositoryNotFoundError(HarbingerError):
    """Raised when a path is missing or is not a git work tree."""

    def __init__(self, path: str, reason: str = "not a git repository"):
        self.path = path
        self.reason = reason
        super().__init__(f"{reason}: {path}")


class InvalidRefNameError(HarbingerError):
    """Raised when a branch or ref name fails validation.

    Always raised before any external command is built.

    Attributes:
        ref: The rejected name.
        reason: Which rule it broke.
    """

    def __init__(self, ref: str, reason: str):
        self.ref = ref
        self.reason = reason
        super().__init__(f"invalid branch name {ref!r}: {reason}")


class UnknownRefError(HarbingerError):
    """Raised when a ref does not resolve to a commit."""

    def __init__(self, ref: str, message: str | None = None):
        self.ref = ref
        super().__init__(message or f"unknown revision: {ref}")


class NoUpstreamError(UnknownRefError):
    """Raised when a branch has no remote-tracking counterpart."""

    def __init__(self, branch: str, remote_ref: str):
        self.branch = branch
        self.remote_ref = remote_ref
        super().__init__(
            remote_ref,
            f"branch {branch!r} has no upstream ({remote_ref} not found)",
        )


class MergePreviewUnsupportedError(HarbingerError):
    """Raised by a merge preview strategy the local git cannot run.

    The merge simulator recovers from this by falling back to the
    next strategy; it never reaches callers of detect_conflicts().
    """


class ApplyFailedError(HarbingerError):
    """Raised when applying a resolution (checkout or stage) fails.

    Attributes:
        path: Repository-relative file path.
        action: Resolution being applied (e.g. "accept-theirs").
        cause: Underlying error, if any.
    """

    def __init__(
        self, path: str, action: str, cause: Exception | None = None
    ):
        self.path = path
        self.action = action
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"failed to {action} {path}{detail}")


class NoEditorFoundError(HarbingerError):
    """Raised when no editor is configured, set, or installed."""

    def __init__(self, tried: list[str]):
        self.tried = list(tried)
        super().__init__(
            "no editor found (set 'resolve.editor' or $EDITOR; "
            f"tried: {', '.join(self.tried) or 'nothing'})"
        )


class UncommittedChangesError(HarbingerError):
    """Raised when a dirty working tree blocks a pull or merge."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(
            f"cannot {operation}: uncommitted changes in working directory"
        )


class ExternalToolError(HarbingerError):
    """Raised when a git command exits non-zero unexpectedly.

    Attributes:
        command: The command line that was run.
        exited: Its exit status.
        stderr: Captured standard error, stripped.
    """

    def __init__(
        self,
        command: str,
        exited: int | None = None,
        stderr: str = "",
        message: str | None = None,
    ):
        self.command = command
        self.exited = exited
        self.stderr = (stderr or "").strip()
        if message is None:
            message = f"'{command}' failed"
            if exited is not None:
                message += f" with exit code {exited}"
            if self.stderr:
                message += f": {self.stderr.splitlines()[0]}"
        super().__init__(message)
