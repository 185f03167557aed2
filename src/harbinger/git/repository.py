"""Reference store adapter: git queries and commands for one work tree."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from invoke import Result

from harbinger.conflict.models import Conflict
from harbinger.conflict.parser import has_conflict_markers
from harbinger.core.errors import (
    ExternalToolError,
    NoUpstreamError,
    RepositoryNotFoundError,
    UncommittedChangesError,
    UnknownRefError,
)
from harbinger.core.log import logger
from harbinger.core.runner import Runner, join_command
from harbinger.git.refs import validate_ref_name

DEFAULT_REMOTE = "origin"


@runtime_checkable
class ReferenceStore(Protocol):
    """What the merge simulator, sync evaluator and resolution session
    need from a repository.

    Repository implements it with git subprocesses; tests substitute
    in-memory fakes.
    """

    workdir: Path

    def current_branch(self) -> str: ...
    def resolve_commit(self, ref: str) -> str: ...
    def ref_exists(self, ref: str) -> bool: ...
    def remote_name(self, branch: str) -> str: ...
    def remote_commit(self, branch: str, remote: str | None = None) -> str: ...
    def fetch(self) -> None: ...
    def ahead_behind(self, local_ref: str, remote_ref: str) -> tuple[int, int]: ...
    def has_uncommitted_changes(self) -> bool: ...
    def pull(self) -> None: ...
    def merge(self, ref: str) -> None: ...
    def merge_tree(self, current_ref: str, target_ref: str) -> Result: ...
    def merge_base(self, a: str, b: str) -> str | None: ...
    def changed_paths(self, a: str, b: str) -> list[str]: ...
    def show_file(self, ref: str, path: str) -> str | None: ...
    def start_scratch_merge(self, ref: str) -> Result: ...
    def abort_merge(self) -> None: ...
    def is_merging(self) -> bool: ...
    def conflicted_paths(self) -> list[str]: ...
    def scan_conflicts(self) -> list[Conflict]: ...
    def checkout_side(self, path: str, side: str) -> None: ...
    def stage(self, path: str) -> None: ...
    def diff(self, path: str) -> str: ...


class Repository:
    """A git work tree driven through the git command line.

    All commands run synchronously in the work tree with no timeout.
    Methods that take a branch or ref validate it before building a
    command.
    """

    def __init__(self, path: Path | str, runner: Runner | None = None):
        """Open a repository.

        Args:
            path: Any path inside the work tree
            runner: Command runner (a fresh Runner if omitted)

        Raises:
            RepositoryNotFoundError: If the path is empty, missing, or
                not inside a git work tree
        """
        if not str(path):
            raise RepositoryNotFoundError(
                str(path), "repository path cannot be empty"
            )

        workdir = Path(path).expanduser().resolve()
        if not workdir.exists():
            raise RepositoryNotFoundError(str(workdir), "path does not exist")

        self.runner = runner or Runner()
        self.workdir = workdir

        result = self._git("rev-parse", "--show-toplevel", check=False)
        if result.exited != 0:
            raise RepositoryNotFoundError(str(workdir))
        self.workdir = Path(result.stdout.strip())

    def __repr__(self) -> str:
        return f"Repository({str(self.workdir)!r})"

    # ------------------------------------------------------------
    # Command plumbing
    # ------------------------------------------------------------

    def _git(self, *args: str, check: bool = True) -> Result:
        """Run a git command in the work tree.

        Args:
            *args: Arguments after "git"
            check: Raise ExternalToolError on non-zero exit

        Returns:
            invoke.Result
        """
        argv = ["git", *args]
        result = self.runner.execute(argv, cwd=self.workdir, check=False)
        if check and result.exited != 0:
            raise ExternalToolError(
                join_command(argv), result.exited, result.stderr
            )
        return result

    def _lines(self, *args: str) -> list[str]:
        output = self._git(*args).stdout
        return [line for line in output.splitlines() if line.strip()]

    # ------------------------------------------------------------
    # Ref queries
    # ------------------------------------------------------------

    def current_branch(self) -> str:
        return self._git("rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def resolve_commit(self, ref: str) -> str:
        """Resolve a ref to a full commit id.

        Raises:
            InvalidRefNameError: If the name fails validation
            UnknownRefError: If the ref does not name a commit
        """
        validate_ref_name(ref)
        result = self._git(
            "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}",
            check=False,
        )
        if result.exited != 0 or not result.stdout.strip():
            raise UnknownRefError(ref)
        return result.stdout.strip()

    def ref_exists(self, ref: str) -> bool:
        try:
            self.resolve_commit(ref)
        except UnknownRefError:
            return False
        return True

    def remote_name(self, branch: str) -> str:
        """Remote configured for a branch, defaulting to origin."""
        validate_ref_name(branch)
        result = self._git("config", f"branch.{branch}.remote", check=False)
        return result.stdout.strip() or DEFAULT_REMOTE

    def remote_commit(self, branch: str, remote: str | None = None) -> str:
        """Commit id of the remote-tracking ref for a branch.

        Raises:
            NoUpstreamError: If <remote>/<branch> does not exist
        """
        validate_ref_name(branch)
        remote = remote or self.remote_name(branch)
        remote_ref = f"{remote}/{branch}"
        try:
            return self.resolve_commit(remote_ref)
        except UnknownRefError as e:
            raise NoUpstreamError(branch, remote_ref) from e

    def fetch(self) -> None:
        self._git("fetch", "--all", "--quiet")

    def ahead_behind(self, local_ref: str, remote_ref: str) -> tuple[int, int]:
        """Count commits only on local_ref and only on remote_ref.

        Returns:
            (ahead, behind)
        """
        validate_ref_name(local_ref)
        validate_ref_name(remote_ref)
        output = self._git(
            "rev-list", "--left-right", "--count",
            f"{local_ref}...{remote_ref}",
        ).stdout.split()
        if len(output) != 2:
            return 0, 0
        return int(output[0]), int(output[1])

    def merge_base(self, a: str, b: str) -> str | None:
        """Common ancestor of two refs, or None for unrelated histories."""
        validate_ref_name(a)
        validate_ref_name(b)
        result = self._git("merge-base", a, b, check=False)
        if result.exited == 1 and not result.stdout.strip():
            return None
        if result.exited != 0:
            raise ExternalToolError(
                f"git merge-base {a} {b}", result.exited, result.stderr
            )
        return result.stdout.strip()

    def changed_paths(self, a: str, b: str) -> list[str]:
        validate_ref_name(a)
        validate_ref_name(b)
        return self._lines("diff", "--name-only", a, b, "--")

    def show_file(self, ref: str, path: str) -> str | None:
        """Content of a path at a ref, or None if it does not exist there."""
        validate_ref_name(ref)
        result = self._git("show", f"{ref}:{path}", check=False)
        if result.exited != 0:
            return None
        return result.stdout

    # ------------------------------------------------------------
    # Working tree state
    # ------------------------------------------------------------

    def has_uncommitted_changes(self) -> bool:
        return bool(self._git("status", "--porcelain").stdout.strip())

    def is_merging(self) -> bool:
        result = self._git(
            "rev-parse", "--quiet", "--verify", "MERGE_HEAD", check=False
        )
        return result.exited == 0

    def conflicted_paths(self) -> list[str]:
        return self._lines("diff", "--name-only", "--diff-filter=U")

    def _unmerged_stages(self, path: str) -> set[int]:
        """Index stages of an unmerged path: 1 base, 2 ours, 3 theirs."""
        stages = set()
        for line in self._lines("ls-files", "-u", "--", path):
            # "<mode> <object> <stage>\t<path>"
            stages.add(int(line.split("\t", 1)[0].split()[2]))
        return stages

    def _describe_unmerged(self, path: str, file_path: Path) -> str:
        stages = self._unmerged_stages(path)
        if 2 not in stages:
            detail = "deleted in ours, changed in theirs"
        elif 3 not in stages:
            detail = "changed in ours, deleted in theirs"
        elif not file_path.is_file():
            detail = "missing from the work tree"
        else:
            detail = "binary or marker-free conflict"
        return (
            f"Unmerged: {detail}.\n"
            "Conflict markers cannot be shown; accept a side or edit the "
            "file.\n"
        )

    def scan_conflicts(self) -> list[Conflict]:
        """Return a Conflict for every unmerged path.

        Text conflicts carry the file content with its markers. Paths
        without markers (modify/delete, binary, missing from disk) carry
        a diagnostic description instead.

        Raises:
            ExternalToolError: If listing unmerged paths fails
        """
        conflicts = []
        for path in self.conflicted_paths():
            file_path = self.workdir / path
            content = None
            if file_path.is_file():
                data = file_path.read_bytes()
                if b"\0" not in data:
                    content = data.decode(errors="replace")
            if content is None or not has_conflict_markers(content):
                content = self._describe_unmerged(path, file_path)
                logger.debug("Unmerged path without markers", path=path)
            conflicts.append(Conflict(path=path, raw_content=content))
        return conflicts

    def diff(self, path: str) -> str:
        return self._git("diff", "--", path).stdout

    # ------------------------------------------------------------
    # Merge preview primitives
    # ------------------------------------------------------------

    def merge_tree(self, current_ref: str, target_ref: str) -> Result:
        """Run a non-destructive merge preview.

        Returns the raw result: exit 0 means clean, 1 means conflicts,
        anything else is for the caller to interpret.
        """
        validate_ref_name(current_ref)
        validate_ref_name(target_ref)
        return self._git(
            "merge-tree", "--write-tree", "--name-only",
            current_ref, target_ref,
            check=False,
        )

    def start_scratch_merge(self, ref: str) -> Result:
        """Begin a merge without committing; the caller must abort it."""
        validate_ref_name(ref)
        return self._git(
            "merge", "--no-commit", "--no-ff", ref, check=False
        )

    def abort_merge(self) -> None:
        """Abort an in-progress merge, falling back to reset --merge.

        Raises:
            ExternalToolError: If neither command succeeds
        """
        result = self._git("merge", "--abort", check=False)
        if result.exited == 0:
            return
        logger.debug(
            "git merge --abort failed, trying reset --merge",
            stderr=result.stderr.strip(),
        )
        self._git("reset", "--merge")

    # ------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------

    def pull(self) -> None:
        """Pull the current branch.

        Raises:
            UncommittedChangesError: If the work tree is dirty
            ExternalToolError: If git pull fails
        """
        if self.has_uncommitted_changes():
            raise UncommittedChangesError("pull")
        self._git("pull", "--no-edit")

    def merge(self, ref: str) -> None:
        """Merge a ref into the current branch.

        A merge that stops on conflicts is left in place so that a
        resolution session can pick it up.

        Raises:
            UncommittedChangesError: If the work tree is dirty
            ExternalToolError: If the merge fails for any other reason
        """
        validate_ref_name(ref)
        if self.has_uncommitted_changes():
            raise UncommittedChangesError(f"merge {ref}")
        result = self._git("merge", "--no-edit", ref, check=False)
        if result.exited != 0 and not self.is_merging():
            raise ExternalToolError(
                f"git merge --no-edit {ref}", result.exited, result.stderr
            )

    def checkout_side(self, path: str, side: str) -> None:
        """Replace a file's working copy with one side of the merge.

        If that side deleted the file, the working copy is removed so
        that staging records the deletion.
        """
        if side not in ("ours", "theirs"):
            raise ValueError(f"side must be 'ours' or 'theirs', not {side!r}")
        stages = self._unmerged_stages(path)
        if stages and (2 if side == "ours" else 3) not in stages:
            (self.workdir / path).unlink(missing_ok=True)
            return
        self._git("checkout", f"--{side}", "--", path)

    def stage(self, path: str) -> None:
        self._git("add", "-A", "--", path)
