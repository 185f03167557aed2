"""Tests for editor lookup and launch."""

from unittest.mock import MagicMock

import pytest

from harbinger.conflict.editor import EditorLauncher
from harbinger.core.errors import NoEditorFoundError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("VISUAL", raising=False)
    monkeypatch.delenv("EDITOR", raising=False)


@pytest.fixture
def no_path(monkeypatch):
    monkeypatch.setattr("harbinger.conflict.editor.shutil.which",
                        lambda name: None)


def test_configured_editor_wins(monkeypatch):
    monkeypatch.setenv("EDITOR", "vi")

    assert EditorLauncher(editor="code --wait").resolve() == ["code", "--wait"]


def test_visual_before_editor(monkeypatch):
    monkeypatch.setenv("VISUAL", "emacs")
    monkeypatch.setenv("EDITOR", "vi")

    assert EditorLauncher().resolve() == ["emacs"]


def test_editor_env(monkeypatch):
    monkeypatch.setenv("EDITOR", "nano -w")

    assert EditorLauncher().resolve() == ["nano", "-w"]


def test_first_fallback_on_path(monkeypatch):
    monkeypatch.setattr(
        "harbinger.conflict.editor.shutil.which",
        lambda name: f"/usr/bin/{name}" if name in ("vim", "emacs") else None,
    )

    assert EditorLauncher(fallbacks=["nano", "vim", "emacs"]).resolve() == ["vim"]


def test_nothing_found(no_path):
    with pytest.raises(NoEditorFoundError) as info:
        EditorLauncher(fallbacks=["nano", "vi"]).resolve()

    assert info.value.tried == ["resolve.editor", "$VISUAL", "$EDITOR", "nano", "vi"]


def test_launch_runs_editor_on_workdir_path(tmp_path):
    runner = MagicMock()
    runner.interactive.return_value = True
    launcher = EditorLauncher(runner=runner, workdir=tmp_path, editor="vi")

    assert launcher.launch("src/app.py") is True
    runner.interactive.assert_called_once_with(
        ["vi", str(tmp_path / "src/app.py")], cwd=tmp_path
    )


def test_launch_reports_editor_failure(tmp_path):
    runner = MagicMock()
    runner.interactive.return_value = False

    assert not EditorLauncher(runner=runner, editor="vi").launch(tmp_path / "x")
