"""Test command - exercise notifications and the resolution display."""

from __future__ import annotations

from pydantic import BaseModel, Field

from harbinger.conflict.parser import parse
from harbinger.monitor.notify import Notifier
from harbinger.ui.terminal import TerminalUI

DEMO_PATH = "src/greeting.py"

DEMO_CONFLICT = """\
def greet(name):
<<<<<<< HEAD
    return f"Hello, {name}!"
=======
    return f"Hi there, {name}."
>>>>>>> origin/main

print(greet("world"))
"""


class SelfTestCommand(BaseModel):
    """Send one of every notification and render a sample conflict.

    With neither flag, both checks run.
    """

    notifications: bool = Field(
        default=False,
        description="Send each notification type",
    )
    ui: bool = Field(
        default=False,
        description="Render a sample conflict and the resolution menu",
    )

    async def run_workflow(self, state, ui: TerminalUI | None = None,
                           notifier: Notifier | None = None) -> int:
        terminal = ui or TerminalUI()
        run_all = not (self.notifications or self.ui)

        if self.notifications or run_all:
            notifier = notifier or Notifier(enabled=True)
            terminal.info("Sending test notifications...")
            commit = "a1b2c3d4e5f6a7b8"
            notifier.notify_remote_change("main", commit)
            notifier.notify_out_of_sync("main", commit, "f6e5d4c3b2a1f0e9")
            notifier.notify_behind_remote("main", 3)
            notifier.notify_conflicts(2)
            notifier.notify_auto_pull("main", 3)
            notifier.notify_in_sync("main")
            terminal.success("Notifications sent")

        if self.ui or run_all:
            terminal.header(1, 1, DEMO_PATH)
            terminal.show_sections(parse(DEMO_CONFLICT))
            terminal.show_menu()
            terminal.show_help()

        return 0
