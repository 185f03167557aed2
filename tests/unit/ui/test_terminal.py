"""Tests for the rich-backed terminal presenter."""

import io

import pytest
from rich.console import Console

from harbinger.conflict.parser import parse
from harbinger.ui.terminal import Presenter, TerminalUI


@pytest.fixture
def output():
    return io.StringIO()


def make_ui(output, answers=""):
    return TerminalUI(console=Console(file=output, width=120),
                      stdin=io.StringIO(answers))


def test_is_a_presenter(output):
    assert isinstance(make_ui(output), Presenter)


def test_read_line_strips_newline(output):
    ui = make_ui(output, "2\r\nskip\n")

    assert ui.read_line("Choose: ") == "2"
    assert ui.read_line("Choose: ") == "skip"
    assert output.getvalue().count("Choose: ") == 2


def test_read_line_at_end_of_input(output):
    with pytest.raises(EOFError):
        make_ui(output).read_line("Choose: ")


def test_messages_are_not_markup(output):
    ui = make_ui(output)

    ui.error("Invalid choice '[red]'")
    ui.info("[main] up to date")

    text = output.getvalue()
    assert "[red]" in text
    assert "[main] up to date" in text


def test_sections_are_labelled(output, conflict_text):
    ui = make_ui(output)

    ui.header(2, 5, "src/app.py")
    ui.show_sections(parse(conflict_text))

    text = output.getvalue()
    assert "(2/5)" in text
    assert "src/app.py" in text
    assert "Ours (local)" in text
    assert "Theirs (incoming)" in text


def test_empty_diff(output):
    make_ui(output).show_diff("app.py", "")

    assert "No diff for app.py" in output.getvalue()
