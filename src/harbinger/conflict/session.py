"""Interactive, file-by-file conflict resolution.

The session is a pydantic-graph state machine. Each conflict is
presented, a choice is read, and the chosen action either finishes the
file (accept, edit, skip) or re-presents it (diff, help, bad input).
The run ends after the last file, or at the first error.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic_graph import BaseNode, End, Graph, GraphRunContext

from harbinger.conflict.editor import EditorLauncher
from harbinger.conflict.models import (
    Conflict,
    ResolutionAction,
    ResolutionOutcome,
)
from harbinger.conflict.parser import has_conflict_markers, parse
from harbinger.core.errors import ApplyFailedError, HarbingerError
from harbinger.core.log import logger
from harbinger.git.repository import ReferenceStore
from harbinger.ui.terminal import Presenter

CHOICE_PROMPT = "Choose an option [1-6]: "

_CHOICES = {
    "1": "ours", "o": "ours", "ours": "ours",
    "2": "theirs", "t": "theirs", "theirs": "theirs",
    "3": "edit", "e": "edit", "edit": "edit",
    "4": "skip", "s": "skip", "skip": "skip",
    "5": "diff", "d": "diff", "diff": "diff",
    "6": "help", "h": "help", "help": "help", "?": "help",
}


def parse_choice(text: str) -> str | None:
    """Map menu input to ours/theirs/edit/skip/diff/help, or None."""
    return _CHOICES.get(text.strip().lower())


@dataclass
class SessionState:
    """Mutable progress through the conflict list."""

    conflicts: list[Conflict]
    index: int = 0
    outcomes: list[ResolutionOutcome] = field(default_factory=list)
    notice: str | None = None
    shown_index: int = -1

    @property
    def current(self) -> Conflict:
        return self.conflicts[self.index]

    def finish(self, outcome: ResolutionOutcome) -> None:
        self.outcomes.append(outcome)
        self.index += 1
        self.notice = None


@dataclass
class SessionDeps:
    store: ReferenceStore
    ui: Presenter
    editor: EditorLauncher


SessionContext = GraphRunContext[SessionState, SessionDeps]


@dataclass
class Present(BaseNode[SessionState, SessionDeps, list[ResolutionOutcome]]):
    """Show the current file, or end when none are left."""

    async def run(
        self, ctx: SessionContext
    ) -> AwaitChoice | End[list[ResolutionOutcome]]:
        state, ui = ctx.state, ctx.deps.ui
        if state.index >= len(state.conflicts):
            return End(state.outcomes)

        conflict = state.current
        total = len(state.conflicts)
        # Diff and help output stays on screen above a redisplay
        if state.shown_index != state.index:
            ui.clear()
            state.shown_index = state.index
        ui.header(state.index + 1, total, conflict.path)
        if has_conflict_markers(conflict.raw_content):
            ui.show_sections(parse(conflict.raw_content))
        else:
            ui.show_raw(conflict.raw_content)

        if state.notice:
            ui.error(state.notice)
            state.notice = None
        ui.show_menu()
        return AwaitChoice()


@dataclass
class AwaitChoice(BaseNode[SessionState, SessionDeps, list[ResolutionOutcome]]):
    """Read one menu choice and route to its action."""

    async def run(
        self, ctx: SessionContext
    ) -> Apply | EditExternally | Skip | ShowDiff | ShowHelp | Present:
        answer = ctx.deps.ui.read_line(CHOICE_PROMPT)
        choice = parse_choice(answer)

        if choice == "ours":
            return Apply(ResolutionAction.ACCEPT_OURS)
        if choice == "theirs":
            return Apply(ResolutionAction.ACCEPT_THEIRS)
        if choice == "edit":
            return EditExternally()
        if choice == "skip":
            return Skip()
        if choice == "diff":
            return ShowDiff()
        if choice == "help":
            return ShowHelp()

        ctx.state.notice = f"Invalid choice {answer.strip()!r}; enter 1-6."
        return Present()


def _stage(store: ReferenceStore, path: str, action: ResolutionAction) -> None:
    try:
        store.stage(path)
    except HarbingerError as e:
        raise ApplyFailedError(path, f"stage ({action.value})", e) from e


@dataclass
class Apply(BaseNode[SessionState, SessionDeps, list[ResolutionOutcome]]):
    """Take one side of the conflict and stage the file."""

    action: ResolutionAction

    async def run(self, ctx: SessionContext) -> Present:
        store, path = ctx.deps.store, ctx.state.current.path
        with logger.span("Applying resolution", path=path,
                         action=self.action.value):
            try:
                store.checkout_side(path, self.action.side)
            except HarbingerError as e:
                raise ApplyFailedError(path, self.action.value, e) from e
            _stage(store, path, self.action)

        ctx.state.finish(ResolutionOutcome(path, self.action, staged=True))
        ctx.deps.ui.success(f"{path}: {self.action.value}, staged")
        return Present()


@dataclass
class EditExternally(BaseNode[SessionState, SessionDeps, list[ResolutionOutcome]]):
    """Open the file in an editor, then optionally stage it."""

    async def run(self, ctx: SessionContext) -> Present:
        deps, path = ctx.deps, ctx.state.current.path

        if not deps.editor.launch(path):
            ctx.state.notice = f"Editor exited with an error; {path} unchanged."
            return Present()

        answer = deps.ui.read_line(f"Stage {path}? [Y/n]: ")
        staged = answer.strip().lower() in ("", "y", "yes")
        if staged:
            _stage(deps.store, path, ResolutionAction.EDITED)
            deps.ui.success(f"{path}: edited, staged")
        else:
            deps.ui.warning(f"{path}: edited, not staged")

        ctx.state.finish(
            ResolutionOutcome(path, ResolutionAction.EDITED, staged=staged)
        )
        return Present()


@dataclass
class Skip(BaseNode[SessionState, SessionDeps, list[ResolutionOutcome]]):
    async def run(self, ctx: SessionContext) -> Present:
        path = ctx.state.current.path
        ctx.state.finish(
            ResolutionOutcome(path, ResolutionAction.SKIPPED, staged=False)
        )
        ctx.deps.ui.warning(f"{path}: skipped")
        return Present()


@dataclass
class ShowDiff(BaseNode[SessionState, SessionDeps, list[ResolutionOutcome]]):
    async def run(self, ctx: SessionContext) -> Present:
        path = ctx.state.current.path
        ctx.deps.ui.show_diff(path, ctx.deps.store.diff(path))
        return Present()


@dataclass
class ShowHelp(BaseNode[SessionState, SessionDeps, list[ResolutionOutcome]]):
    async def run(self, ctx: SessionContext) -> Present:
        ctx.deps.ui.show_help()
        return Present()


def create_session_graph() -> Graph:
    return Graph(
        nodes=(Present, AwaitChoice, Apply, EditExternally, Skip,
               ShowDiff, ShowHelp),
        state_type=SessionState,
    )


class ResolutionSession:
    """Walks the user through a list of conflicted files.

    Args:
        store: Repository the files belong to
        ui: Where to draw and read input
        editor: Editor launcher for the edit action
    """

    def __init__(
        self,
        store: ReferenceStore,
        ui: Presenter,
        editor: EditorLauncher | None = None,
    ):
        self.store = store
        self.ui = ui
        self.editor = editor or EditorLauncher(workdir=store.workdir)
        self.graph = create_session_graph()

    async def resolve_conflicts(
        self, conflicts: list[Conflict]
    ) -> list[ResolutionOutcome]:
        """Resolve conflicts one file at a time.

        Returns:
            One outcome per conflict, in order

        Raises:
            ApplyFailedError: If checkout or staging fails; the
                remaining files are not visited
            NoEditorFoundError: If edit was chosen and no editor exists
            EOFError: If input closes mid-session
        """
        if not conflicts:
            self.ui.info("No conflicts to resolve.")
            return []

        state = SessionState(conflicts=list(conflicts))
        deps = SessionDeps(store=self.store, ui=self.ui, editor=self.editor)

        logger.info("Starting resolution session", files=len(conflicts))
        try:
            async with self.graph.iter(Present(), state=state,
                                       deps=deps) as run:
                async for _node in run:
                    pass
        except HarbingerError as e:
            self.ui.error(e.message)
            logger.error("Resolution session aborted", error=e.message,
                         resolved=len(state.outcomes))
            raise

        outcomes = run.result.output
        self.ui.info("")
        self.ui.info("Resolution summary:")
        for outcome in outcomes:
            self.ui.info(f"  {outcome.describe()}")
        logger.info("Resolution session complete", files=len(outcomes))
        return outcomes
