"""Predict merge conflicts between two refs without touching the work tree."""

from __future__ import annotations

import re

from harbinger.conflict.models import Conflict
from harbinger.core.errors import (
    ExternalToolError,
    MergePreviewUnsupportedError,
    UncommittedChangesError,
)
from harbinger.core.log import logger
from harbinger.git.refs import validate_ref_name
from harbinger.git.repository import ReferenceStore

# Stderr fragments git prints when it does not know a subcommand option
_UNSUPPORTED_MARKERS = ("unknown option", "usage:", "unknown switch")

# "CONFLICT (content): Merge conflict in src/app.py"
_CONFLICT_LINE = re.compile(r"^CONFLICT \([^)]*\): .*? in (?P<path>.+?)$")


def _is_unsupported(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in _UNSUPPORTED_MARKERS)


def _conflict_lines(output: str) -> dict[str, str]:
    """Map path to its CONFLICT message line."""
    messages = {}
    for line in output.splitlines():
        match = _CONFLICT_LINE.match(line.strip())
        if match:
            messages.setdefault(match.group("path"), line.strip())
    return messages


def _unique(conflicts: list[Conflict]) -> list[Conflict]:
    seen = set()
    unique = []
    for conflict in conflicts:
        if conflict.path not in seen:
            seen.add(conflict.path)
            unique.append(conflict)
    return unique


class MergeSimulator:
    """Predicts which files a merge of target into current would conflict on.

    Tries, in order:

    1. ``git merge-tree --write-tree``, which computes the merge in the
       object database only.
    2. A diff heuristic over the merge base, for gits too old for (1).
       A file counts as conflicting when both sides changed it and the
       two results differ. Line-level merge rules are not reproduced,
       so this can over-report.
    3. A scratch merge in the work tree, aborted unconditionally.
       Only possible when current_ref is the checked-out branch.

    Whatever strategy answers, the work tree, index and HEAD are the
    same afterwards as before.
    """

    def __init__(self, store: ReferenceStore, allow_scratch_merge: bool = True):
        self.store = store
        self.allow_scratch_merge = allow_scratch_merge

    def detect_conflicts(
        self, current_ref: str, target_ref: str
    ) -> list[Conflict]:
        """Predict conflicts from merging target_ref into current_ref.

        Args:
            current_ref: Ref being merged into (usually the branch)
            target_ref: Ref being merged (usually its upstream)

        Returns:
            Conflicts unique by path; empty if the merge would be clean

        Raises:
            InvalidRefNameError: If either ref fails validation
            UnknownRefError: If either ref does not name a commit
            ExternalToolError: If a git command fails, or no preview
                strategy is available
            UncommittedChangesError: If only the scratch merge is
                available and the work tree is dirty
        """
        validate_ref_name(current_ref)
        validate_ref_name(target_ref)
        self.store.resolve_commit(current_ref)
        self.store.resolve_commit(target_ref)

        strategies = [
            ("merge-tree", self._merge_tree),
            ("diff heuristic", self._diff_heuristic),
        ]
        if self.allow_scratch_merge:
            strategies.append(("scratch merge", self._scratch_merge))

        with logger.span(
            "Simulating merge", current=current_ref, target=target_ref
        ):
            for name, strategy in strategies:
                try:
                    conflicts = strategy(current_ref, target_ref)
                except MergePreviewUnsupportedError as e:
                    logger.debug(
                        "Merge preview strategy unavailable",
                        strategy=name, reason=e.message,
                    )
                    continue
                conflicts = _unique(conflicts)
                logger.debug(
                    "Merge preview complete",
                    strategy=name, conflicts=len(conflicts),
                )
                return conflicts

        raise ExternalToolError(
            "git merge-tree",
            message=(
                "no merge preview available: merge-tree is unsupported, "
                "the refs share no merge base, and scratch merges are "
                + ("not possible" if self.allow_scratch_merge
                   else "disabled")
            ),
        )

    def _merge_tree(self, current_ref: str, target_ref: str) -> list[Conflict]:
        result = self.store.merge_tree(current_ref, target_ref)

        if result.exited == 0:
            return []

        if result.exited != 1:
            if _is_unsupported(result.stderr):
                raise MergePreviewUnsupportedError(
                    "git merge-tree --write-tree not supported"
                )
            raise ExternalToolError(
                f"git merge-tree --write-tree {current_ref} {target_ref}",
                result.exited, result.stderr,
            )

        # Output: tree id, conflicted paths, blank line, messages
        lines = result.stdout.splitlines()
        paths = []
        for line in lines[1:]:
            if not line.strip():
                break
            paths.append(line.strip())

        messages = _conflict_lines(result.stdout)
        return [
            Conflict(
                path=path,
                raw_content=messages.get(path, f"Merge conflict in {path}"),
            )
            for path in paths
        ]

    def _diff_heuristic(
        self, current_ref: str, target_ref: str
    ) -> list[Conflict]:
        base = self.store.merge_base(current_ref, target_ref)
        if base is None:
            raise MergePreviewUnsupportedError(
                f"{current_ref} and {target_ref} have no merge base"
            )

        ours_changed = self.store.changed_paths(base, current_ref)
        theirs_changed = set(self.store.changed_paths(base, target_ref))

        conflicts = []
        for path in ours_changed:
            if path not in theirs_changed:
                continue
            base_text = self.store.show_file(base, path)
            ours_text = self.store.show_file(current_ref, path)
            theirs_text = self.store.show_file(target_ref, path)
            if (
                ours_text != base_text
                and theirs_text != base_text
                and ours_text != theirs_text
            ):
                conflicts.append(
                    Conflict(path=path,
                             raw_content=f"Potential conflict in {path}\n")
                )
        return conflicts

    def _scratch_merge(
        self, current_ref: str, target_ref: str
    ) -> list[Conflict]:
        # The merge can only run into the checked-out branch
        head = self.store.current_branch()
        if current_ref not in (head, "HEAD"):
            raise MergePreviewUnsupportedError(
                f"scratch merge needs {current_ref} checked out, not {head}"
            )

        if self.store.has_uncommitted_changes():
            raise UncommittedChangesError("simulate a merge")

        try:
            result = self.store.start_scratch_merge(target_ref)
            messages = _conflict_lines(result.stdout + "\n" + result.stderr)
            if result.exited != 0 and not messages:
                raise ExternalToolError(
                    f"git merge --no-commit --no-ff {target_ref}",
                    result.exited, result.stderr,
                )
            return [
                Conflict(path=path, raw_content=line)
                for path, line in messages.items()
            ]
        finally:
            self.store.abort_merge()
