"""Decide whether a branch has diverged from its remote counterpart."""

from __future__ import annotations

from dataclasses import dataclass, field

from harbinger.conflict.models import Conflict
from harbinger.core.errors import NoUpstreamError
from harbinger.core.log import logger
from harbinger.git.refs import validate_ref_name
from harbinger.git.repository import ReferenceStore
from harbinger.git.simulator import MergeSimulator


@dataclass(frozen=True)
class SyncState:
    """Snapshot of one branch against its remote, computed per tick.

    Attributes:
        branch: Local branch that was evaluated
        compare_branch: Branch whose remote-tracking ref was compared
        local_commit: Commit id of the local branch
        remote_commit: Commit id of <remote>/<compare_branch>, or ""
            when there is no upstream
        ahead_count: Commits only on the local branch
        behind_count: Commits only on the remote ref
        has_conflicts: Whether merging the remote would conflict
        conflicts: The predicted conflicts for this tick
        has_upstream: False when the remote ref does not exist
    """

    branch: str
    compare_branch: str
    local_commit: str
    remote_commit: str = ""
    ahead_count: int = 0
    behind_count: int = 0
    has_conflicts: bool = False
    conflicts: list[Conflict] = field(default_factory=list)
    has_upstream: bool = True

    @property
    def in_sync(self) -> bool:
        """True when both commits match, or there is nothing to compare."""
        if not self.has_upstream:
            return True
        return self.local_commit == self.remote_commit

    @property
    def same_branch(self) -> bool:
        return self.branch == self.compare_branch


class SyncEvaluator:
    """Computes a SyncState for a branch on demand.

    The merge simulator is consulted only when the local and remote
    commits differ. A missing upstream is reported as in sync rather
    than raised.
    """

    def __init__(
        self,
        store: ReferenceStore,
        simulator: MergeSimulator | None = None,
        remote: str | None = None,
    ):
        self.store = store
        self.simulator = simulator or MergeSimulator(store)
        self.remote = remote

    def remote_for(self, compare_branch: str) -> str:
        return self.remote or self.store.remote_name(compare_branch)

    def remote_ref(self, compare_branch: str) -> str:
        """Remote-tracking ref a branch is compared with ("origin/main")."""
        return f"{self.remote_for(compare_branch)}/{compare_branch}"

    def evaluate(
        self, branch: str, compare_branch: str | None = None
    ) -> SyncState:
        """Compare a local branch with a remote-tracking branch.

        Args:
            branch: Local branch name
            compare_branch: Branch on the remote to compare with;
                defaults to branch itself

        Raises:
            InvalidRefNameError: If either name fails validation
            UnknownRefError: If the local branch does not resolve
            ExternalToolError: If a git command fails
        """
        compare_branch = compare_branch or branch
        validate_ref_name(branch)
        validate_ref_name(compare_branch)

        local_commit = self.store.resolve_commit(branch)

        remote = self.remote_for(compare_branch)
        try:
            remote_commit = self.store.remote_commit(compare_branch, remote)
        except NoUpstreamError as e:
            logger.debug("No upstream, treating as in sync",
                         branch=branch, remote_ref=e.remote_ref)
            return SyncState(
                branch=branch,
                compare_branch=compare_branch,
                local_commit=local_commit,
                has_upstream=False,
            )

        if local_commit == remote_commit:
            return SyncState(
                branch=branch,
                compare_branch=compare_branch,
                local_commit=local_commit,
                remote_commit=remote_commit,
            )

        remote_ref = f"{remote}/{compare_branch}"
        ahead, behind = self.store.ahead_behind(branch, remote_ref)
        conflicts = self.simulator.detect_conflicts(branch, remote_ref)

        logger.debug(
            "Evaluated sync state",
            branch=branch, remote_ref=remote_ref,
            ahead=ahead, behind=behind, conflicts=len(conflicts),
        )

        return SyncState(
            branch=branch,
            compare_branch=compare_branch,
            local_commit=local_commit,
            remote_commit=remote_commit,
            ahead_count=ahead,
            behind_count=behind,
            has_conflicts=bool(conflicts),
            conflicts=conflicts,
        )
