"""CLI command modules for harbinger."""

from harbinger.command.logs import LogsCommand
from harbinger.command.monitor import MonitorCommand
from harbinger.command.resolve import ResolveCommand
from harbinger.command.stop import StopCommand
from harbinger.command.test import SelfTestCommand

__all__ = [
    "LogsCommand",
    "MonitorCommand",
    "ResolveCommand",
    "SelfTestCommand",
    "StopCommand",
]
