"""Polling loop: fetch, compare, notify, and optionally act."""

from __future__ import annotations

import asyncio
import sys

from harbinger.conflict.editor import EditorLauncher
from harbinger.conflict.session import ResolutionSession
from harbinger.core.config import Config, MonitorState, format_duration
from harbinger.core.errors import HarbingerError, UncommittedChangesError
from harbinger.core.log import logger
from harbinger.git.repository import Repository
from harbinger.git.simulator import MergeSimulator
from harbinger.monitor.notify import Notifier
from harbinger.sync.evaluator import SyncEvaluator, SyncState
from harbinger.ui.terminal import TerminalUI


class Monitor:
    """Watches one repository until asked to stop.

    Only tracking fields survive between ticks (see MonitorState);
    every tick evaluates sync state and conflicts from scratch.

    Args:
        repo: Repository to watch
        config: Loaded configuration
        notifier: Event sink for notifications
        evaluator: Sync evaluator (built from config if omitted)
        session: Resolution session for auto-resolve (built lazily)
        state: Tracking state (fresh if omitted)
        stdin: Stream checked for a terminal before resolving
    """

    def __init__(
        self,
        repo: Repository,
        config: Config,
        notifier: Notifier,
        evaluator: SyncEvaluator | None = None,
        session: ResolutionSession | None = None,
        state: MonitorState | None = None,
        stdin=None,
    ):
        self.repo = repo
        self.config = config
        self.notifier = notifier
        self.evaluator = evaluator or SyncEvaluator(
            repo,
            MergeSimulator(
                repo,
                allow_scratch_merge=config.resolve.allow_scratch_merge,
            ),
            remote=config.git.remote,
        )
        self._session = session
        self.state = state or MonitorState()
        self.stdin = stdin or sys.stdin

    @property
    def session(self) -> ResolutionSession:
        if self._session is None:
            editor = EditorLauncher(
                runner=self.repo.runner,
                workdir=self.repo.workdir,
                editor=self.config.resolve.editor,
                fallbacks=self.config.resolve.fallback_editors,
            )
            self._session = ResolutionSession(self.repo, TerminalUI(), editor)
        return self._session

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick until stop_event is set.

        The event is only checked between ticks; a tick in progress
        always runs to completion.
        """
        cfg = self.config.monitor
        interval = cfg.poll_interval
        logger.info(
            "Starting monitor",
            repository=str(self.repo.workdir),
            branch=self.repo.current_branch(),
            target_branch=cfg.target_branch or "(same as current)",
            interval=format_duration(interval),
        )

        await self.tick()
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                await self.tick()

        logger.info("Monitor stopped", repository=str(self.repo.workdir))

    async def tick(self) -> SyncState | None:
        """Run one check.

        Returns:
            The evaluated state, or None if the tick ended early
        """
        try:
            return await self._tick()
        except HarbingerError as e:
            logger.error("Check failed", error=e.message)
            return None

    async def _tick(self) -> SyncState | None:
        cfg = self.config.monitor
        state = self.state
        logger.debug("Checking for changes")

        try:
            self.repo.fetch()
        except HarbingerError as e:
            logger.error("Failed to fetch remote changes", error=e.message)
            return None

        branch = self.repo.current_branch()
        if state.current_branch and state.current_branch != branch:
            logger.info("Branch switch detected",
                        previous=state.current_branch, current=branch)
            state.reset(branch)
        state.current_branch = branch

        if branch in cfg.ignore_branches:
            logger.debug("Branch is ignored", branch=branch)
            return None

        compare_branch = cfg.target_branch or branch
        sync = self.evaluator.evaluate(branch, compare_branch)

        self._report(sync)

        in_sync = sync.in_sync
        if sync.has_conflicts:
            await self._handle_conflicts(sync)
        elif not in_sync:
            in_sync = self._auto_update(sync)

        state.last_in_sync = in_sync
        return sync

    def _report(self, sync: SyncState) -> None:
        state = self.state

        if sync.has_upstream:
            if (
                state.last_remote_commit
                and sync.remote_commit != state.last_remote_commit
            ):
                self.notifier.notify_remote_change(
                    sync.compare_branch, sync.remote_commit
                )
            state.last_remote_commit = sync.remote_commit
        else:
            logger.debug("No upstream for branch", branch=sync.compare_branch)

        if sync.in_sync:
            logger.debug("In sync with remote", branch=sync.compare_branch)
            if state.last_in_sync is False:
                self.notifier.notify_in_sync(sync.branch)
            return

        logger.info(
            "Not in sync with remote",
            branch=sync.branch, compare_branch=sync.compare_branch,
            ahead=sync.ahead_count, behind=sync.behind_count,
        )
        if state.last_in_sync is not False:
            self.notifier.notify_out_of_sync(
                sync.branch, sync.local_commit, sync.remote_commit
            )
        if sync.same_branch and sync.behind_count > 0:
            self.notifier.notify_behind_remote(sync.branch, sync.behind_count)

    async def _handle_conflicts(self, sync: SyncState) -> None:
        cfg = self.config.monitor
        self.notifier.notify_conflicts(len(sync.conflicts))
        for conflict in sync.conflicts:
            logger.info("Predicted conflict", path=conflict.path)

        if not (cfg.auto_resolve and cfg.interactive and self._is_tty()):
            logger.info(
                "Conflicts detected. Run 'harbinger resolve' after "
                "merging to resolve them."
            )
            return

        remote_ref = self.evaluator.remote_ref(sync.compare_branch)
        try:
            self.repo.merge(remote_ref)
        except UncommittedChangesError as e:
            logger.warn("Cannot auto-resolve", reason=e.message)
            return

        conflicts = self.repo.scan_conflicts()
        if not conflicts:
            logger.info("Merge completed without conflicts", ref=remote_ref)
            return
        await self.session.resolve_conflicts(conflicts)

    def _auto_update(self, sync: SyncState) -> bool:
        """Pull or merge when configured to; True if now in sync."""
        cfg = self.config.monitor
        try:
            if cfg.auto_sync and sync.same_branch and sync.behind_count > 0:
                logger.info("Auto-sync: pulling", branch=sync.branch,
                            commits=sync.behind_count)
                self.repo.pull()
                self.notifier.notify_auto_pull(sync.branch, sync.behind_count)
                return sync.ahead_count == 0

            if cfg.auto_resolve:
                if sync.same_branch:
                    logger.info("Auto-resolve: pulling", branch=sync.branch)
                    self.repo.pull()
                else:
                    remote_ref = self.evaluator.remote_ref(sync.compare_branch)
                    logger.info("Auto-resolve: merging", ref=remote_ref,
                                branch=sync.branch)
                    self.repo.merge(remote_ref)
                self.notifier.notify_in_sync(sync.branch)
                return True
        except UncommittedChangesError as e:
            logger.warn("Automatic update skipped", reason=e.message)
        return False

    def _is_tty(self) -> bool:
        isatty = getattr(self.stdin, "isatty", None)
        return bool(isatty and isatty())
