"""Stop command - list or stop background monitors."""

from __future__ import annotations

from pydantic import BaseModel, Field
from pydantic_settings import CliPositionalArg

from harbinger.core.errors import HarbingerError
from harbinger.monitor import daemon
from harbinger.ui.terminal import TerminalUI


class StopCommand(BaseModel):
    """Stop background monitors. Without a PID, list the running ones."""

    pid: CliPositionalArg[int | None] = Field(
        default=None,
        description="Process id of the monitor to stop",
    )
    stop_all: bool = Field(
        default=False,
        alias="all",
        description="Stop every running monitor",
    )

    async def run_workflow(self, state, ui: TerminalUI | None = None) -> int:
        ui = ui or TerminalUI()
        monitors = daemon.find_monitors()

        if self.stop_all:
            if not monitors:
                ui.info("No harbinger monitors are currently running")
                return 0
            stopped = 0
            for info in monitors:
                try:
                    daemon.stop_monitor(info)
                except HarbingerError as e:
                    ui.warning(e.message)
                    continue
                ui.success(f"Stopped monitor {info.pid} for {info.repo_path}")
                stopped += 1
            ui.info(f"Stopped {stopped} monitor(s)")
            return 0

        if self.pid is None:
            if not monitors:
                ui.info("No harbinger monitors are currently running")
                return 0
            ui.info("Running harbinger monitors:")
            ui.info("PID\tRepository")
            for info in monitors:
                ui.info(f"{info.pid}\t{info.repo_path}")
            ui.info("")
            ui.info("Use 'harbinger stop <PID>' to stop a specific monitor")
            ui.info("Use 'harbinger stop --all' to stop all monitors")
            return 0

        for info in monitors:
            if info.pid == self.pid:
                daemon.stop_monitor(info)
                ui.success(
                    f"Stopped harbinger monitor (PID: {info.pid}) "
                    f"for {info.repo_path}"
                )
                return 0

        raise HarbingerError(f"no harbinger monitor found with PID {self.pid}")
