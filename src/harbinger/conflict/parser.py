"""Parse git conflict markers into typed sections."""

from harbinger.conflict.models import ConflictSection, SectionKind

OURS_MARKER = "<<<<<<<"
SEPARATOR_MARKER = "======="
THEIRS_MARKER = ">>>>>>>"


def _lines(text: str) -> list[str]:
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line.removesuffix("\r") for line in lines]


def parse(raw_text: str) -> list[ConflictSection]:
    """Split file content into normal, ours and theirs sections.

    Scans line by line with a single section buffer. Only a line
    feed ends a line (form feeds and Unicode line separators are
    content) and a trailing carriage return is dropped. A marker is
    a line that *starts* with seven marker characters; trailing text
    such as a branch label is ignored and a marker sequence later in
    a line is ordinary content.

    An opening marker flushes the pending buffer only if it holds
    more than whitespace; separator and closing markers always flush
    (so empty ours/theirs sides are kept). An opening marker inside
    an open conflict starts a new ours section without closing the
    previous one.

    Args:
        raw_text: Full file content with conflict markers

    Returns:
        Sections in file order. For a single well-formed conflict
        this is [normal?, ours, theirs, normal?]; empty input gives
        an empty list.
    """
    sections: list[ConflictSection] = []
    kind = SectionKind.NORMAL
    buffer: list[str] = []
    in_conflict = False

    def flush():
        sections.append(ConflictSection(kind=kind, content="".join(buffer)))

    for line in _lines(raw_text):
        if line.startswith(OURS_MARKER):
            if "".join(buffer).strip():
                flush()
            kind, buffer = SectionKind.OURS, []
            in_conflict = True
        elif line.startswith(SEPARATOR_MARKER) and in_conflict:
            flush()
            kind, buffer = SectionKind.THEIRS, []
        elif line.startswith(THEIRS_MARKER) and in_conflict:
            flush()
            kind, buffer = SectionKind.NORMAL, []
            in_conflict = False
        else:
            buffer.append(line + "\n")

    if "".join(buffer).strip():
        flush()

    return sections


def has_conflict_markers(text: str) -> bool:
    """Return True if any line of text opens a conflict."""
    return any(
        line.startswith(OURS_MARKER) for line in _lines(text)
    )
