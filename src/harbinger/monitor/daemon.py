"""Background monitor processes: spawning, discovery and stopping."""

from __future__ import annotations

import functools
import hashlib
import os
import signal
import subprocess
import sys
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import platformdirs

from harbinger.core.errors import HarbingerError
from harbinger.core.log import logger
from harbinger.core.runner import Runner

# Set in a detached child; names the directory for its own log file
DAEMON_ENV = "HARBINGER_DAEMON_DIR"

STOP_GRACE_SECONDS = 1.0

# Lines a monitor writes before doing any real work
_STARTUP_MARKERS = ("Starting monitor", "Process ID", "interval")


def state_dir() -> Path:
    return Path(platformdirs.user_state_dir("harbinger", appauthor=False))


def pid_file_for(repo_path: Path | str, directory: Path | None = None) -> Path:
    """PID file for the monitor of one repository."""
    digest = hashlib.sha1(str(Path(repo_path).resolve()).encode()).hexdigest()
    return (directory or state_dir()) / f"harbinger-{digest[:12]}.pid"


def log_file_for(pid: int, directory: Path | None = None) -> Path:
    return (directory or state_dir()) / f"harbinger.{pid}.log"


def list_log_files(directory: Path | None = None) -> list[Path]:
    directory = directory or state_dir()
    if not directory.is_dir():
        return []
    return sorted(directory.glob("harbinger.*.log"))


@dataclass(frozen=True)
class MonitorInfo:
    """A running background monitor, as recorded in its PID file."""

    pid: int
    repo_path: str
    pid_file: Path


def write_pid_file(path: Path, pid: int, repo_path: Path | str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"{pid}\n{repo_path}\n")


def read_pid_file(path: Path) -> MonitorInfo | None:
    """Parse a PID file; None if it is unreadable or malformed."""
    try:
        lines = path.read_text().splitlines()
    except OSError:
        return None
    if not lines:
        return None
    try:
        pid = int(lines[0].strip())
    except ValueError:
        return None
    repo = lines[1].strip() if len(lines) > 1 and lines[1].strip() else "unknown"
    return MonitorInfo(pid=pid, repo_path=repo, pid_file=path)


# ============================================================
# PLATFORM CAPABILITIES
# ============================================================

class PlatformCapability(ABC):
    """Process control that differs between POSIX and Windows."""

    @abstractmethod
    def send_stop_signal(self, pid: int) -> None:
        """Stop a process.

        Raises:
            ProcessLookupError: If no such process is running
        """

    @abstractmethod
    def detached_attributes(self) -> dict:
        """subprocess.Popen keyword arguments for a detached child."""

    @abstractmethod
    def process_exists(self, pid: int) -> bool: ...


class PosixPlatform(PlatformCapability):
    """SIGTERM, a short grace period, then SIGKILL."""

    def __init__(self, grace: float = STOP_GRACE_SECONDS):
        self.grace = grace

    def send_stop_signal(self, pid: int) -> None:
        os.kill(pid, signal.SIGTERM)
        deadline = time.monotonic() + self.grace
        while time.monotonic() < deadline:
            if not self.process_exists(pid):
                return
            time.sleep(0.1)
        logger.warn("Monitor ignored SIGTERM, sending SIGKILL", pid=pid)
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass

    def detached_attributes(self) -> dict:
        return {"start_new_session": True}

    def process_exists(self, pid: int) -> bool:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists but belongs to someone else
            return True
        return True


class WindowsPlatform(PlatformCapability):
    """taskkill and tasklist; os.kill(pid, 0) would terminate the process."""

    def __init__(self, runner: Runner | None = None):
        self.runner = runner or Runner()

    def send_stop_signal(self, pid: int) -> None:
        result = self.runner.execute(
            ["taskkill", "/PID", str(pid), "/T", "/F"], check=False
        )
        if result.exited != 0:
            raise ProcessLookupError(pid)

    def detached_attributes(self) -> dict:
        flags = (
            getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
            | getattr(subprocess, "DETACHED_PROCESS", 0)
        )
        return {"creationflags": flags}

    def process_exists(self, pid: int) -> bool:
        result = self.runner.execute(
            ["tasklist", "/FI", f"PID eq {pid}", "/NH"], check=False
        )
        return result.exited == 0 and str(pid) in result.stdout.split()


@functools.cache
def current_platform() -> PlatformCapability:
    if sys.platform == "win32":
        return WindowsPlatform()
    return PosixPlatform()


# ============================================================
# LIFECYCLE
# ============================================================

def spawn_detached(
    args: list[str],
    repo_path: Path | str,
    directory: Path | None = None,
    platform: PlatformCapability | None = None,
) -> int:
    """Start ``python -m harbinger monitor ARGS`` in the background.

    The child redirects its own output to harbinger.<pid>.log (see
    redirect_daemon_output); the parent records the PID file.

    Returns:
        The child's process id
    """
    directory = directory or state_dir()
    directory.mkdir(parents=True, exist_ok=True)
    platform = platform or current_platform()

    argv = [sys.executable, "-m", "harbinger", "monitor", *args]
    env = dict(os.environ, **{DAEMON_ENV: str(directory)})

    logger.debug("Spawning background monitor", argv=argv)
    process = subprocess.Popen(
        argv,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        cwd=str(repo_path),
        env=env,
        close_fds=True,
        **platform.detached_attributes(),
    )

    write_pid_file(pid_file_for(repo_path, directory), process.pid,
                   Path(repo_path).resolve())
    return process.pid


def redirect_daemon_output() -> Path | None:
    """In a detached child, send stdout and stderr to its log file.

    Returns:
        The log path, or None when not running detached
    """
    directory = os.environ.get(DAEMON_ENV)
    if not directory:
        return None

    log_path = log_file_for(os.getpid(), Path(directory))
    log_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o644)
    sys.stdout.flush()
    sys.stderr.flush()
    os.dup2(fd, 1)
    os.dup2(fd, 2)
    os.close(fd)
    print(f"Process ID: {os.getpid()}", flush=True)
    return log_path


def _pid_file_candidates(directory: Path) -> list[Path]:
    candidates = sorted(directory.glob("harbinger-*.pid")) if directory.is_dir() else []
    home = Path.home()
    candidates.extend(sorted(home.glob(".harbinger-*.pid")))
    legacy = home / ".harbinger.pid"
    if legacy.is_file():
        candidates.append(legacy)
    return candidates


def find_monitors(
    directory: Path | None = None,
    platform: PlatformCapability | None = None,
) -> list[MonitorInfo]:
    """List running monitors, deleting PID files of dead ones."""
    directory = directory or state_dir()
    platform = platform or current_platform()

    monitors = []
    for pid_file in _pid_file_candidates(directory):
        info = read_pid_file(pid_file)
        if info is None:
            continue
        if platform.process_exists(info.pid):
            monitors.append(info)
        else:
            logger.debug("Removing stale PID file", pid_file=str(pid_file))
            pid_file.unlink(missing_ok=True)
    return monitors


def stop_monitor(
    info: MonitorInfo,
    directory: Path | None = None,
    platform: PlatformCapability | None = None,
) -> None:
    """Stop one monitor and clean up after it.

    Raises:
        HarbingerError: If the process was not running
    """
    platform = platform or current_platform()
    try:
        platform.send_stop_signal(info.pid)
    except ProcessLookupError as e:
        info.pid_file.unlink(missing_ok=True)
        raise HarbingerError(f"process {info.pid} is not running") from e

    info.pid_file.unlink(missing_ok=True)
    cleanup_log_file(log_file_for(info.pid, directory))


def cleanup_log_file(log_path: Path) -> bool:
    """Delete a monitor log that holds only startup lines.

    Returns:
        True if the file was deleted
    """
    try:
        size = log_path.stat().st_size
    except OSError:
        return False

    if size >= 1024:
        with open(log_path, encoding="utf-8", errors="replace") as f:
            head = [f.readline() for _ in range(10)]
        if head[-1] or any(
            line.strip()
            and not any(marker in line for marker in _STARTUP_MARKERS)
            for line in head
        ):
            return False

    log_path.unlink(missing_ok=True)
    return True
