"""Resolve command - walk through the conflicts of an in-progress merge."""

from __future__ import annotations

from pydantic import BaseModel, Field

from harbinger.conflict.editor import EditorLauncher
from harbinger.conflict.models import ResolutionAction
from harbinger.conflict.session import ResolutionSession
from harbinger.git.repository import Repository
from harbinger.ui.terminal import TerminalUI


class ResolveCommand(BaseModel):
    """Interactively resolve the conflicted files of a merge in progress."""

    path: str | None = Field(
        default=None,
        description="Path to the repository (default: config.git.repo_path)",
    )

    async def run_workflow(self, state, ui: TerminalUI | None = None) -> int:
        ui = ui or TerminalUI()
        cfg = state.config
        repo = Repository(self.path or cfg.git.repo_path)

        if not repo.is_merging():
            ui.success("No merge in progress. Repository is clean.")
            return 0

        conflicts = repo.scan_conflicts()
        if not conflicts:
            ui.success(
                "No conflicted files remain. "
                "Run 'git commit' to complete the merge."
            )
            return 0

        ui.warning(f"Found {len(conflicts)} conflicted file(s):")
        for conflict in conflicts:
            ui.info(f"  {conflict.path}")

        editor = EditorLauncher(
            runner=repo.runner,
            workdir=repo.workdir,
            editor=cfg.resolve.editor,
            fallbacks=cfg.resolve.fallback_editors,
        )
        session = ResolutionSession(repo, ui, editor)
        outcomes = await session.resolve_conflicts(conflicts)

        pending = [
            o for o in outcomes
            if o.action is ResolutionAction.SKIPPED or not o.staged
        ]
        if pending:
            ui.warning(
                f"{len(pending)} file(s) still need attention. "
                "Run 'harbinger resolve' again when ready."
            )
        else:
            ui.success(
                "All conflicts resolved. "
                "Run 'git commit' to complete the merge."
            )
        return 0
