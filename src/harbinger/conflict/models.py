"""Data types shared by the parser, simulator and resolution session."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SectionKind(str, Enum):
    """Which side of a conflict a span of text belongs to."""

    NORMAL = "normal"
    OURS = "ours"
    THEIRS = "theirs"


@dataclass(frozen=True)
class ConflictSection:
    """A typed span of text within a conflicted file.

    Attributes:
        kind: NORMAL, OURS or THEIRS
        content: The span's lines, each terminated by a newline
    """

    kind: SectionKind
    content: str


@dataclass(frozen=True)
class Conflict:
    """One file under dispute.

    Attributes:
        path: Repository-relative file path
        raw_content: The on-disk text including conflict markers, or
            a diagnostic line when the conflict was inferred by a
            merge preview rather than read from the working tree
    """

    path: str
    raw_content: str


class ResolutionAction(str, Enum):
    """Terminal per-file result of a resolution session."""

    ACCEPT_OURS = "accept-ours"
    ACCEPT_THEIRS = "accept-theirs"
    EDITED = "edited"
    SKIPPED = "skipped"

    @property
    def side(self) -> str | None:
        """git checkout side for the accept actions, else None."""
        if self is ResolutionAction.ACCEPT_OURS:
            return "ours"
        if self is ResolutionAction.ACCEPT_THEIRS:
            return "theirs"
        return None


@dataclass(frozen=True)
class ResolutionOutcome:
    """What happened to one file in a resolution session."""

    path: str
    action: ResolutionAction
    staged: bool

    def describe(self) -> str:
        if self.action is ResolutionAction.SKIPPED:
            return f"{self.path}: skipped (still conflicted)"
        status = "staged" if self.staged else "not staged"
        return f"{self.path}: {self.action.value} ({status})"
