"""Pytest configuration and fixtures for harbinger tests."""

import shutil
import subprocess
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path

import pytest

from harbinger.conflict.models import Conflict
from harbinger.core.config import State
from harbinger.core.errors import (
    ExternalToolError,
    NoUpstreamError,
    UncommittedChangesError,
    UnknownRefError,
)
from harbinger.core.log import ConsoleSink, setup_logger
from harbinger.git.refs import validate_ref_name


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    """Console-only logging at debug level for the whole run."""
    test_log_root = Path(tempfile.gettempdir()) / "harbinger-tests"
    setup_logger(
        log_root=test_log_root,
        run_name="test",
        console=ConsoleSink(level="debug"),
    )


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Keep config loading away from the user's real config files."""
    home = tmp_path / "home"
    home.mkdir()
    workdir = tmp_path / "cwd"
    workdir.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(home / ".local" / "state"))
    monkeypatch.chdir(workdir)
    monkeypatch.setattr(sys, "argv", ["harbinger"])
    return workdir


@pytest.fixture
def test_config(isolated_config):
    """State loaded from the package defaults only."""
    state = State()
    yield state
    state.config.close()


@dataclass
class FakeResult:
    """Stand-in for invoke.Result."""

    stdout: str = ""
    stderr: str = ""
    exited: int = 0

    @property
    def ok(self) -> bool:
        return self.exited == 0


class FakeStore:
    """In-memory ReferenceStore.

    Every call is appended to ``calls`` as a tuple of the method name
    and its arguments. Methods named in ``fail`` raise
    ExternalToolError.
    """

    def __init__(self, workdir=Path(".")):
        self.workdir = Path(workdir)
        self.calls = []
        self.branch = "main"
        self.commits = {}
        self.remotes = {}
        self.counts = {}
        self.dirty = False
        self.merging = False
        self.merge_tree_result = FakeResult(exited=0)
        self.scratch_result = FakeResult(exited=0)
        self.base = "base"
        self.changed = {}
        self.files = {}
        self.conflicts = []
        self.diffs = {}
        self.fail = set()

    def _call(self, name, *args):
        self.calls.append((name, *args))
        if name in self.fail:
            raise ExternalToolError(f"git {name}", 1, f"{name} failed")

    def call_names(self):
        return [call[0] for call in self.calls]

    def current_branch(self):
        self._call("current_branch")
        return self.branch

    def resolve_commit(self, ref):
        validate_ref_name(ref)
        self._call("resolve_commit", ref)
        if ref not in self.commits:
            raise UnknownRefError(ref)
        return self.commits[ref]

    def ref_exists(self, ref):
        return ref in self.commits

    def remote_name(self, branch):
        self._call("remote_name", branch)
        return self.remotes.get(branch, "origin")

    def remote_commit(self, branch, remote=None):
        validate_ref_name(branch)
        remote = remote or self.remote_name(branch)
        self._call("remote_commit", branch, remote)
        ref = f"{remote}/{branch}"
        if ref not in self.commits:
            raise NoUpstreamError(branch, ref)
        return self.commits[ref]

    def fetch(self):
        self._call("fetch")

    def ahead_behind(self, local_ref, remote_ref):
        self._call("ahead_behind", local_ref, remote_ref)
        return self.counts.get((local_ref, remote_ref), (0, 0))

    def has_uncommitted_changes(self):
        self._call("has_uncommitted_changes")
        return self.dirty

    def pull(self):
        if self.dirty:
            raise UncommittedChangesError("pull")
        self._call("pull")

    def merge(self, ref):
        validate_ref_name(ref)
        if self.dirty:
            raise UncommittedChangesError(f"merge {ref}")
        self._call("merge", ref)

    def merge_tree(self, current_ref, target_ref):
        self._call("merge_tree", current_ref, target_ref)
        return self.merge_tree_result

    def merge_base(self, a, b):
        self._call("merge_base", a, b)
        return self.base

    def changed_paths(self, a, b):
        self._call("changed_paths", a, b)
        return list(self.changed.get(b, []))

    def show_file(self, ref, path):
        self._call("show_file", ref, path)
        return self.files.get((ref, path))

    def start_scratch_merge(self, ref):
        self._call("start_scratch_merge", ref)
        self.merging = True
        return self.scratch_result

    def abort_merge(self):
        self.merging = False
        self._call("abort_merge")

    def is_merging(self):
        return self.merging

    def conflicted_paths(self):
        return [c.path for c in self.conflicts]

    def scan_conflicts(self):
        self._call("scan_conflicts")
        return list(self.conflicts)

    def checkout_side(self, path, side):
        self._call("checkout_side", path, side)

    def stage(self, path):
        self._call("stage", path)

    def diff(self, path):
        self._call("diff", path)
        return self.diffs.get(path, "")


class ScriptedUI:
    """Presenter that records output and replays canned answers."""

    def __init__(self, answers=()):
        self.answers = list(answers)
        self.events = []
        self.prompts = []

    def _record(self, kind, *args):
        self.events.append((kind, *args))

    def kinds(self):
        return [event[0] for event in self.events]

    def messages(self, kind):
        return [event[1] for event in self.events if event[0] == kind]

    def clear(self):
        self._record("clear")

    def header(self, index, total, path):
        self._record("header", index, total, path)

    def show_sections(self, sections):
        self._record("sections", sections)

    def show_raw(self, text):
        self._record("raw", text)

    def show_menu(self):
        self._record("menu")

    def show_diff(self, path, diff):
        self._record("diff", path, diff)

    def show_help(self):
        self._record("help")

    def read_line(self, prompt):
        self.prompts.append(prompt)
        if not self.answers:
            raise EOFError("no more scripted answers")
        return self.answers.pop(0)

    def info(self, message):
        self._record("info", message)

    def success(self, message):
        self._record("success", message)

    def warning(self, message):
        self._record("warning", message)

    def error(self, message):
        self._record("error", message)


class FakeEditor:
    """EditorLauncher stand-in that reports a fixed exit status."""

    def __init__(self, ok=True):
        self.ok = ok
        self.launched = []

    def launch(self, path):
        self.launched.append(path)
        return self.ok


@pytest.fixture
def store(tmp_path):
    return FakeStore(tmp_path)


@pytest.fixture
def conflict_text():
    return (
        "line one\n"
        "<<<<<<< HEAD\n"
        "ours\n"
        "=======\n"
        "theirs\n"
        ">>>>>>> origin/main\n"
        "line two\n"
    )


@pytest.fixture
def make_conflict(conflict_text):
    def _make(path="app.py", raw=None):
        return Conflict(path=path, raw_content=raw or conflict_text)
    return _make


# ============================================================
# Real git repositories
# ============================================================

requires_git = pytest.mark.skipif(
    shutil.which("git") is None, reason="git is not installed"
)


def git(cwd, *args):
    """Run git in cwd and return stdout; fail the test on error."""
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True,
    )
    assert result.returncode == 0, (
        f"git {' '.join(args)} failed: {result.stderr}"
    )
    return result.stdout


def commit_file(cwd, path, content, message):
    target = Path(cwd) / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    git(cwd, "add", path)
    git(cwd, "commit", "-q", "-m", message)


@pytest.fixture
def git_env(monkeypatch):
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", "/dev/null")


@pytest.fixture
def diverged_repo(tmp_path, git_env):
    """A clone whose main conflicts with origin/main on app.py.

    Layout: ``origin`` (bare), ``work`` (clone with a local commit),
    and origin/main carries a different edit to the same line.
    """
    origin = tmp_path / "origin.git"
    seed = tmp_path / "seed"
    work = tmp_path / "work"

    git(tmp_path, "init", "-q", "--bare", "-b", "main", str(origin))
    git(tmp_path, "init", "-q", "-b", "main", str(seed))
    commit_file(seed, "app.py", "value = 1\n", "initial")
    commit_file(seed, "README", "readme\n", "readme")
    git(seed, "remote", "add", "origin", str(origin))
    git(seed, "push", "-q", "origin", "main")

    git(tmp_path, "clone", "-q", str(origin), str(work))
    commit_file(work, "app.py", "value = 2\n", "local edit")

    commit_file(seed, "app.py", "value = 3\n", "remote edit")
    git(seed, "push", "-q", "origin", "main")
    git(work, "fetch", "-q")

    return work
