"""Logs command - show output of background monitors."""

from __future__ import annotations

from pydantic import BaseModel, Field
from pydantic_settings import CliPositionalArg

from harbinger.core.errors import HarbingerError
from harbinger.monitor import daemon
from harbinger.ui.terminal import TerminalUI


class LogsCommand(BaseModel):
    """Show a background monitor's log. Without a PID, list log files."""

    pid: CliPositionalArg[int | None] = Field(
        default=None,
        description="Process id of the monitor",
    )

    async def run_workflow(self, state, ui: TerminalUI | None = None) -> int:
        ui = ui or TerminalUI()

        if self.pid is None:
            logs = daemon.list_log_files()
            if not logs:
                ui.info("No monitor logs found")
                return 0
            for path in logs:
                ui.info(f"{path}  ({path.stat().st_size} bytes)")
            return 0

        log_path = daemon.log_file_for(self.pid)
        if not log_path.is_file():
            raise HarbingerError(f"no log file for PID {self.pid}: {log_path}")
        ui.console.print(log_path.read_text(errors="replace"),
                         markup=False, highlight=False, end="")
        return 0
