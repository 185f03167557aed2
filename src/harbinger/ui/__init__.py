"""Terminal presentation."""

from harbinger.ui.terminal import Presenter, TerminalUI

__all__ = ["Presenter", "TerminalUI"]
