"""Locate and launch the user's editor."""

from __future__ import annotations

import os
import shlex
import shutil
from pathlib import Path

from harbinger.core.errors import NoEditorFoundError
from harbinger.core.log import logger
from harbinger.core.runner import Runner

DEFAULT_FALLBACKS = ("nano", "vim", "vi", "emacs", "code", "notepad")


class EditorLauncher:
    """Find an editor and run it on a file in the foreground.

    Lookup order: explicit setting, $VISUAL, $EDITOR, then the first
    fallback program found on PATH. Settings and environment values
    may carry arguments (e.g. "code --wait").
    """

    def __init__(
        self,
        runner: Runner | None = None,
        workdir: Path | None = None,
        editor: str | None = None,
        fallbacks: tuple[str, ...] | list[str] = DEFAULT_FALLBACKS,
    ):
        self.runner = runner or Runner()
        self.workdir = workdir
        self.editor = editor
        self.fallbacks = tuple(fallbacks)

    def resolve(self) -> list[str]:
        """Return the editor command as an argument list.

        Raises:
            NoEditorFoundError: If nothing is configured, set or installed
        """
        tried = []
        for source, value in (
            ("resolve.editor", self.editor),
            ("$VISUAL", os.environ.get("VISUAL")),
            ("$EDITOR", os.environ.get("EDITOR")),
        ):
            if value and value.strip():
                logger.debug("Using editor", source=source, editor=value)
                return shlex.split(value)
            tried.append(source)

        for name in self.fallbacks:
            if shutil.which(name):
                logger.debug("Using fallback editor", editor=name)
                return [name]
            tried.append(name)

        raise NoEditorFoundError(tried)

    def launch(self, path: str | Path) -> bool:
        """Edit a file and wait for the editor to exit.

        Args:
            path: File path, relative to workdir if one is set

        Returns:
            True if the editor exited with status 0
        """
        argv = self.resolve()
        target = Path(path)
        if self.workdir is not None and not target.is_absolute():
            target = self.workdir / target
        return self.runner.interactive([*argv, str(target)], cwd=self.workdir)
