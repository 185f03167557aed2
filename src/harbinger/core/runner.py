"""Command execution using the invoke library."""

import io
import shlex
from collections.abc import Sequence
from pathlib import Path

from invoke import Context, Result

from harbinger.core.log import logger


def join_command(args: Sequence[str]) -> str:
    """Quote an argument list into a single shell command string.

    invoke runs command strings through a shell; quoting every
    argument keeps paths and ref names from being interpreted.
    """
    return shlex.join(str(arg) for arg in args)


class Runner(Context):
    """Wrapper around invoke.Context with harbinger's execution
    conventions.

    execute() captures output and returns the invoke Result for the
    caller to interpret; interactive() hands the terminal to the
    child process (used for editors).
    """

    def execute(
        self,
        command: str | Sequence[str],
        cwd: Path | None = None,
        stdin: str | None = None,
        check: bool = True,
        env: dict[str, str] | None = None,
    ) -> Result:
        """Execute a command and capture its output.

        Args:
            command: Command string, or argument list to be quoted
            cwd: Working directory for command execution
            stdin: String to send to the command's stdin
            check: If True, raise on non-zero exit code
            env: Environment variables to add (os.environ is kept)

        Returns:
            invoke.Result with stdout, stderr, exited (return code)

        Raises:
            invoke.UnexpectedExit: If check=True and the command
                returns non-zero
        """
        if not isinstance(command, str):
            command = join_command(command)

        kwargs = {
            "hide": True,
            "warn": not check,
            "in_stream": False,
        }

        if stdin:
            kwargs["in_stream"] = io.StringIO(stdin)

        if env:
            kwargs["env"] = env

        logger.spew("Running command", command=command,
                    cwd=str(cwd) if cwd else None)

        if cwd:
            with self.cd(str(cwd)):
                result = self.run(command, **kwargs)
        else:
            result = self.run(command, **kwargs)

        return result

    def interactive(
        self,
        command: str | Sequence[str],
        cwd: Path | None = None,
    ) -> bool:
        """Run a program attached to the controlling terminal.

        Blocks until the program exits.

        Returns:
            True if it exited with status 0
        """
        if not isinstance(command, str):
            command = join_command(command)

        logger.debug("Launching interactive command", command=command)
        kwargs = {"pty": True, "warn": True, "hide": False}
        if cwd:
            with self.cd(str(cwd)):
                result = self.run(command, **kwargs)
        else:
            result = self.run(command, **kwargs)
        return result.ok
