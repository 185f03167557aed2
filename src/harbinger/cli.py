#!/usr/bin/env python3
"""Harbinger CLI - watch git repositories for divergence and conflicts."""

import asyncio
import sys

from pydantic_settings import (
    CliApp,
    CliSubCommand,
    SettingsConfigDict,
    get_subcommand,
)

from harbinger.command.logs import LogsCommand
from harbinger.command.monitor import MonitorCommand
from harbinger.command.resolve import ResolveCommand
from harbinger.command.stop import StopCommand
from harbinger.command.test import SelfTestCommand
from harbinger.core.config import State
from harbinger.core.errors import HarbingerError
from harbinger.core.log import logger


class CliState(State):
    """Watch git repositories for remote changes and merge conflicts.

    Harbinger polls a repository, compares the current branch with its
    remote counterpart, predicts conflicts without touching the work
    tree, and helps resolve them file by file.

    Configuration sources (in priority order):
    1. Command-line arguments (--config.monitor.poll_interval 1m)
    2. --include files, ./harbinger.yaml, ~/.harbinger.yaml
    3. .env file
    4. Environment variables
       (HARBINGER_CONFIG__MONITOR__AUTO_SYNC=true)
    """

    monitor: CliSubCommand[MonitorCommand]
    resolve: CliSubCommand[ResolveCommand]
    stop: CliSubCommand[StopCommand]
    logs: CliSubCommand[LogsCommand]
    test: CliSubCommand[SelfTestCommand]

    model_config = SettingsConfigDict(
        cli_prog_name="harbinger",
        cli_implicit_flags=True,
        cli_use_class_docs_for_groups=True,
    )

    def cli_cmd(self):
        """Dispatch to the active subcommand, or show help."""
        subcommand = get_subcommand(self, is_required=False)

        if subcommand is None:
            CliApp.run(CliState, cli_args=['--help'])
            sys.exit(1)

        with logger:
            try:
                exit_code = asyncio.run(subcommand.run_workflow(self))
            except HarbingerError as e:
                logger.error("Command failed", error=e.message)
                print(f"harbinger: {e.message}", file=sys.stderr)
                exit_code = 1
            except KeyboardInterrupt:
                exit_code = 130
            raise SystemExit(exit_code)


def main():
    """Main entry point for CLI."""
    CliApp.run(CliState)


if __name__ == "__main__":
    main()
