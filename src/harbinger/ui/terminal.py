"""Terminal presentation for interactive conflict resolution."""

from __future__ import annotations

import sys
from typing import Protocol, runtime_checkable

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.text import Text

from harbinger.conflict.models import ConflictSection, SectionKind

MENU_CHOICES = [
    ("1", "o", "Accept ours (keep local version)"),
    ("2", "t", "Accept theirs (take incoming version)"),
    ("3", "e", "Edit in external editor"),
    ("4", "s", "Skip this file"),
    ("5", "d", "Show diff"),
    ("6", "h", "Show help"),
]

HELP_TEXT = """\
Resolution options:
  ours    Replace the file with the local version and stage it.
  theirs  Replace the file with the incoming version and stage it.
  edit    Open the file in your editor, then choose whether to stage.
  skip    Leave the file conflicted and move on.
  diff    Show the working tree diff for this file.
  help    Show this text.

Type the number or the name (first letter works too).
Editor: resolve.editor, then $VISUAL, then $EDITOR."""

_SECTION_STYLES = {
    SectionKind.NORMAL: ("dim", "Common"),
    SectionKind.OURS: ("green", "Ours (local)"),
    SectionKind.THEIRS: ("blue", "Theirs (incoming)"),
}


@runtime_checkable
class Presenter(Protocol):
    """Display and input surface used by the resolution session."""

    def clear(self) -> None: ...
    def header(self, index: int, total: int, path: str) -> None: ...
    def show_sections(self, sections: list[ConflictSection]) -> None: ...
    def show_raw(self, text: str) -> None: ...
    def show_menu(self) -> None: ...
    def show_diff(self, path: str, diff: str) -> None: ...
    def show_help(self) -> None: ...
    def read_line(self, prompt: str) -> str: ...
    def info(self, message: str) -> None: ...
    def success(self, message: str) -> None: ...
    def warning(self, message: str) -> None: ...
    def error(self, message: str) -> None: ...


class TerminalUI:
    """Presenter backed by a rich Console.

    Args:
        console: Console to draw on; a new one on stdout if omitted
        stdin: Stream to read answers from
    """

    def __init__(self, console: Console | None = None, stdin=None):
        self.console = console or Console()
        self.stdin = stdin or sys.stdin

    def clear(self) -> None:
        if self.console.is_terminal:
            self.console.clear()

    def header(self, index: int, total: int, path: str) -> None:
        title = Text.assemble(
            ("Resolving conflict ", "bold"),
            (f"({index}/{total})", "bold cyan"),
        )
        self.console.print(
            Panel(Text(path, style="bold yellow"), title=title,
                  border_style="cyan")
        )

    def show_sections(self, sections: list[ConflictSection]) -> None:
        for section in sections:
            style, label = _SECTION_STYLES[section.kind]
            self.console.print(
                Panel(
                    Text(section.content.rstrip("\n")),
                    title=label,
                    title_align="left",
                    border_style=style,
                )
            )

    def show_raw(self, text: str) -> None:
        self.console.print(Text(text.rstrip("\n"), style="yellow"))

    def show_menu(self) -> None:
        self.console.print()
        for number, letter, label in MENU_CHOICES:
            self.console.print(f"  [bold]{number}[/bold] ({letter}) {label}")

    def show_diff(self, path: str, diff: str) -> None:
        if not diff.strip():
            self.console.print(f"[dim]No diff for {escape(path)}[/dim]")
            return
        self.console.print(Syntax(diff, "diff", word_wrap=True))

    def show_help(self) -> None:
        self.console.print(Panel(HELP_TEXT, title="Help", border_style="dim"))

    def read_line(self, prompt: str) -> str:
        """Print a prompt and read one line.

        Raises:
            EOFError: If input is closed
        """
        self.console.print(escape(prompt), end="")
        line = self.stdin.readline()
        if not line:
            raise EOFError("input closed")
        return line.rstrip("\r\n")

    def info(self, message: str) -> None:
        self.console.print(escape(message))

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {escape(message)}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {escape(message)}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {escape(message)}")
