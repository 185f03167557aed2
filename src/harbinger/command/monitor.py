"""Monitor command - watch a repository in the foreground or background."""

from __future__ import annotations

import asyncio
import signal

from pydantic import BaseModel, Field

from harbinger.core.config import format_duration, parse_duration
from harbinger.core.log import logger
from harbinger.git.refs import validate_ref_name
from harbinger.git.repository import Repository
from harbinger.monitor import daemon
from harbinger.monitor.monitor import Monitor
from harbinger.monitor.notify import Notifier
from harbinger.ui.terminal import TerminalUI


def _install_stop_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(
                sig, lambda *_: loop.call_soon_threadsafe(stop_event.set)
            )


class MonitorCommand(BaseModel):
    """Watch a git repository for remote changes and predicted conflicts.

    Fetches every interval, compares the current branch with its remote
    (or with --branch), and notifies when they diverge or would
    conflict. Stop with Ctrl+C, or 'harbinger stop' when detached.
    """

    interval: str | None = Field(
        default=None,
        description="Polling interval, e.g. 30s, 5m, 1m30s",
    )
    path: str | None = Field(
        default=None,
        description="Path to the repository (default: config.git.repo_path)",
    )
    branch: str | None = Field(
        default=None,
        description="Remote branch to compare against instead of the current one",
    )
    detach: bool = Field(
        default=False,
        description="Run the monitor in the background",
    )

    def _apply_overrides(self, state) -> None:
        cfg = state.config
        if self.interval:
            cfg.monitor.poll_interval = parse_duration(self.interval)
        if self.path:
            cfg.git.repo_path = self.path
        if self.branch:
            cfg.monitor.target_branch = validate_ref_name(self.branch)

    def _child_args(self, state) -> list[str]:
        cfg = state.config
        args = ["--interval", format_duration(cfg.monitor.poll_interval)]
        if cfg.monitor.target_branch:
            args += ["--branch", cfg.monitor.target_branch]
        return args

    async def run_workflow(self, state) -> int:
        """Run the monitor until stopped.

        Returns:
            Exit code (0=success)
        """
        ui = TerminalUI()
        try:
            self._apply_overrides(state)
        except ValueError as e:
            ui.error(str(e))
            return 1

        cfg = state.config
        repo = Repository(cfg.git.repo_path)

        if self.detach:
            pid = daemon.spawn_detached(self._child_args(state), repo.workdir)
            ui.success(f"Running harbinger in background with process ID: {pid}")
            ui.info("Use 'harbinger stop' to stop the background monitor")
            return 0

        log_path = daemon.redirect_daemon_output()
        if log_path:
            logger.info("Detached monitor logging", log_file=str(log_path))
        else:
            ui.info(
                f"Monitoring {repo.workdir} (checking every "
                f"{format_duration(cfg.monitor.poll_interval)})"
            )
            ui.info("Press Ctrl+C to stop...")

        notifier = Notifier(enabled=cfg.monitor.notifications,
                            runner=repo.runner)
        monitor = Monitor(repo, cfg, notifier, state=state.runtime.monitor)

        stop_event = asyncio.Event()
        _install_stop_handlers(stop_event)
        await monitor.run(stop_event)
        return 0
