"""Tests for the CLI subcommands."""

import asyncio
import io
import subprocess
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from conftest import ScriptedUI, git, requires_git
from rich.console import Console

from harbinger.command.logs import LogsCommand
from harbinger.command.monitor import MonitorCommand
from harbinger.command.resolve import ResolveCommand
from harbinger.command.stop import StopCommand
from harbinger.command.test import SelfTestCommand
from harbinger.core.config import Config, GitConfig, MonitorConfig, ResolveConfig
from harbinger.core.errors import HarbingerError
from harbinger.monitor import daemon
from harbinger.monitor.notify import Notifier
from harbinger.ui.terminal import TerminalUI


class FakePlatform(daemon.PlatformCapability):
    def __init__(self, running=()):
        self.running = set(running)

    def send_stop_signal(self, pid):
        if pid not in self.running:
            raise ProcessLookupError(pid)
        self.running.discard(pid)

    def detached_attributes(self):
        return {}

    def process_exists(self, pid):
        return pid in self.running


def make_state(repo_path="."):
    return SimpleNamespace(config=Config.model_construct(
        git=GitConfig(repo_path=repo_path),
        monitor=MonitorConfig(),
        resolve=ResolveConfig(),
    ))


def run(command, *args, **kwargs):
    return asyncio.run(command.run_workflow(*args, **kwargs))


def start_conflicted_merge(workdir):
    result = subprocess.run(
        ["git", "merge", "--no-edit", "origin/main"],
        cwd=workdir, capture_output=True, text=True,
    )
    assert result.returncode == 1


@pytest.fixture
def terminal():
    out = io.StringIO()
    ui = TerminalUI(console=Console(file=out, width=200))
    ui.output = out
    return ui


@pytest.fixture
def state_dir(tmp_path, monkeypatch):
    directory = tmp_path / "state"
    directory.mkdir()
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr(daemon, "state_dir", lambda: directory)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    return directory


@pytest.fixture
def platform(monkeypatch):
    fake = FakePlatform(running={111, 222})
    monkeypatch.setattr(daemon, "current_platform", lambda: fake)
    return fake


@pytest.fixture
def monitors(state_dir, platform):
    daemon.write_pid_file(state_dir / "harbinger-aaaaaaaaaaaa.pid", 111,
                          "/src/alpha")
    daemon.write_pid_file(state_dir / "harbinger-bbbbbbbbbbbb.pid", 222,
                          "/src/beta")
    return state_dir


# ============================================================
# stop
# ============================================================

def test_stop_lists_running_monitors(monitors, terminal):
    assert run(StopCommand(), None, terminal) == 0

    output = terminal.output.getvalue()
    assert "111" in output and "/src/alpha" in output
    assert "222" in output and "/src/beta" in output
    assert "harbinger stop --all" in output


def test_stop_with_nothing_running(state_dir, platform, terminal):
    assert run(StopCommand(), None, terminal) == 0

    assert "No harbinger monitors" in terminal.output.getvalue()


def test_stop_one(monitors, platform, terminal):
    assert run(StopCommand(pid=222), None, terminal) == 0

    assert platform.running == {111}
    assert not (monitors / "harbinger-bbbbbbbbbbbb.pid").exists()
    assert (monitors / "harbinger-aaaaaaaaaaaa.pid").exists()


def test_stop_unknown_pid(monitors, terminal):
    with pytest.raises(HarbingerError, match="no harbinger monitor found"):
        run(StopCommand(pid=999), None, terminal)


def test_stop_all(monitors, platform, terminal):
    assert run(StopCommand(all=True), None, terminal) == 0

    assert platform.running == set()
    assert list(monitors.glob("*.pid")) == []
    assert "Stopped 2 monitor(s)" in terminal.output.getvalue()


# ============================================================
# logs
# ============================================================

def test_logs_lists_files(state_dir, terminal):
    daemon.log_file_for(111, state_dir).write_text("Process ID: 111\n")

    assert run(LogsCommand(), None, terminal) == 0

    assert "harbinger.111.log" in terminal.output.getvalue()


def test_logs_with_none(state_dir, terminal):
    assert run(LogsCommand(), None, terminal) == 0

    assert "No monitor logs found" in terminal.output.getvalue()


def test_logs_prints_one_file(state_dir, terminal):
    daemon.log_file_for(111, state_dir).write_text(
        "Process ID: 111\n[main] Branch Out of Sync\n"
    )

    assert run(LogsCommand(pid=111), None, terminal) == 0

    assert "[main] Branch Out of Sync" in terminal.output.getvalue()


def test_logs_missing_file(state_dir, terminal):
    with pytest.raises(HarbingerError, match="no log file for PID 5"):
        run(LogsCommand(pid=5), None, terminal)


# ============================================================
# test
# ============================================================

def test_self_test_runs_everything_by_default():
    ui = ScriptedUI()
    notifier = MagicMock(spec=Notifier)

    assert run(SelfTestCommand(), None, ui, notifier) == 0

    notifier.notify_remote_change.assert_called_once()
    notifier.notify_out_of_sync.assert_called_once()
    notifier.notify_behind_remote.assert_called_once_with("main", 3)
    notifier.notify_conflicts.assert_called_once_with(2)
    notifier.notify_auto_pull.assert_called_once_with("main", 3)
    notifier.notify_in_sync.assert_called_once_with("main")
    assert ["header", "sections", "menu", "help"] == [
        k for k in ui.kinds() if k in ("header", "sections", "menu", "help")
    ]


def test_self_test_ui_only():
    ui = ScriptedUI()
    notifier = MagicMock(spec=Notifier)

    run(SelfTestCommand(ui=True), None, ui, notifier)

    assert notifier.mock_calls == []
    sections = ui.messages("sections")[0]
    assert [s.kind.value for s in sections] == [
        "normal", "ours", "theirs", "normal",
    ]


def test_self_test_notifications_only():
    ui = ScriptedUI()
    notifier = MagicMock(spec=Notifier)

    run(SelfTestCommand(notifications=True), None, ui, notifier)

    assert "header" not in ui.kinds()
    notifier.notify_in_sync.assert_called_once()


def test_self_test_renders_on_a_real_terminal(terminal):
    run(SelfTestCommand(ui=True), None, terminal)

    output = terminal.output.getvalue()
    assert "src/greeting.py" in output
    assert "Accept theirs (take incoming version)" in output
    assert "Resolution options:" in output


# ============================================================
# resolve
# ============================================================

@requires_git
def test_resolve_with_no_merge(diverged_repo):
    ui = ScriptedUI()

    assert run(ResolveCommand(), make_state(diverged_repo), ui) == 0

    assert ui.messages("success") == [
        "No merge in progress. Repository is clean."
    ]


@requires_git
def test_resolve_walks_conflicts(diverged_repo):
    start_conflicted_merge(diverged_repo)
    ui = ScriptedUI(["theirs"])

    assert run(ResolveCommand(path=str(diverged_repo)), make_state(), ui) == 0

    assert "  app.py" in ui.messages("info")
    assert ui.messages("success")[-1].startswith("All conflicts resolved")
    assert git(diverged_repo, "diff", "--name-only",
               "--diff-filter=U") == ""


@requires_git
def test_resolve_reports_skipped_files(diverged_repo):
    start_conflicted_merge(diverged_repo)
    ui = ScriptedUI(["skip"])

    run(ResolveCommand(), make_state(diverged_repo), ui)

    assert "1 file(s) still need attention" in ui.messages("warning")[-1]


@requires_git
def test_resolve_after_all_files_staged(diverged_repo):
    start_conflicted_merge(diverged_repo)
    git(diverged_repo, "checkout", "--theirs", "--", "app.py")
    git(diverged_repo, "add", "app.py")
    ui = ScriptedUI()

    run(ResolveCommand(), make_state(diverged_repo), ui)

    assert ui.messages("success")[0].startswith("No conflicted files remain")


@requires_git
def test_resolve_presents_marker_free_conflicts(diverged_repo):
    git(diverged_repo, "rm", "-q", "app.py")
    git(diverged_repo, "commit", "-q", "-m", "drop app.py")
    start_conflicted_merge(diverged_repo)
    ui = ScriptedUI(["skip"])

    run(ResolveCommand(), make_state(diverged_repo), ui)

    assert "  app.py" in ui.messages("info")
    assert not any(
        m.startswith("No conflicted files remain")
        for m in ui.messages("success")
    )
    raw = ui.messages("raw")[0]
    assert "deleted in ours, changed in theirs" in raw
    assert "1 file(s) still need attention" in ui.messages("warning")[-1]


# ============================================================
# monitor
# ============================================================

def test_monitor_rejects_bad_interval():
    assert run(MonitorCommand(interval="often"), make_state()) == 1


@requires_git
def test_monitor_detach_spawns_child(diverged_repo, monkeypatch):
    spawn = MagicMock(return_value=4242)
    monkeypatch.setattr(daemon, "spawn_detached", spawn)
    state = make_state(diverged_repo)

    command = MonitorCommand(interval="90s", branch="develop", detach=True)
    assert run(command, state) == 0

    args, repo_path = spawn.call_args.args
    assert args == ["--interval", "1m30s", "--branch", "develop"]
    assert repo_path == diverged_repo.resolve()
    assert state.config.monitor.poll_interval == 90.0
