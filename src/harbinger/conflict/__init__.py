"""Conflict parsing, models and interactive resolution.

The session lives in harbinger.conflict.session; it is not re-exported
here because it depends on the git and ui packages, which import these
models.
"""

from harbinger.conflict.models import (
    Conflict,
    ConflictSection,
    ResolutionAction,
    ResolutionOutcome,
    SectionKind,
)
from harbinger.conflict.parser import has_conflict_markers, parse

__all__ = [
    "Conflict",
    "ConflictSection",
    "ResolutionAction",
    "ResolutionOutcome",
    "SectionKind",
    "has_conflict_markers",
    "parse",
]
