"""Desktop notifications for monitor events."""

from __future__ import annotations

import platform
import shutil
from pathlib import Path

import platformdirs
from invoke.exceptions import UnexpectedExit

from harbinger.core.log import logger
from harbinger.core.runner import Runner

_WSL_SCRIPT = """\
param([string]$Title, [string]$Message)

Add-Type -AssemblyName System.Windows.Forms
Add-Type -AssemblyName System.Drawing

$notify = New-Object System.Windows.Forms.NotifyIcon
$notify.Icon = [System.Drawing.SystemIcons]::Information
$notify.BalloonTipIcon = [System.Windows.Forms.ToolTipIcon]::Info
$notify.BalloonTipText = $Message
$notify.BalloonTipTitle = $Title
$notify.Visible = $true
$notify.ShowBalloonTip(5000)

Start-Sleep -Seconds 1
$notify.Dispose()
"""

_TOAST_SCRIPT = """\
[Windows.UI.Notifications.ToastNotificationManager, Windows.UI.Notifications, ContentType = WindowsRuntime] | Out-Null
[Windows.Data.Xml.Dom.XmlDocument, Windows.Data.Xml.Dom.XmlDocument, ContentType = WindowsRuntime] | Out-Null
$template = @"
<toast><visual><binding template="ToastText02">
<text id="1">{title}</text><text id="2">{message}</text>
</binding></visual></toast>
"@
$xml = New-Object Windows.Data.Xml.Dom.XmlDocument
$xml.LoadXml($template)
$toast = New-Object Windows.UI.Notifications.ToastNotification $xml
[Windows.UI.Notifications.ToastNotificationManager]::CreateToastNotifier("Harbinger").Show($toast)
"""


def is_wsl(proc_version: Path = Path("/proc/version")) -> bool:
    """True when running under Windows Subsystem for Linux."""
    try:
        return "microsoft" in proc_version.read_text().lower()
    except OSError:
        return False


def _short(commit: str) -> str:
    return commit[:7]


def _xml_escape(text: str) -> str:
    return (text.replace("&", "&amp;").replace("<", "&lt;")
            .replace(">", "&gt;").replace('"', "&quot;"))


class Notifier:
    """Logs monitor events and mirrors them as desktop notifications.

    Args:
        enabled: Send desktop notifications at all
        runner: Command runner for the platform notifier
        system: platform.system() value; detected if omitted
        proc_version: File inspected for WSL detection
        script_dir: Where the WSL PowerShell script is written
    """

    def __init__(
        self,
        enabled: bool = True,
        runner: Runner | None = None,
        system: str | None = None,
        proc_version: Path = Path("/proc/version"),
        script_dir: Path | None = None,
    ):
        self.runner = runner or Runner()
        self.system = system or platform.system()
        self.proc_version = proc_version
        self.script_dir = script_dir or Path(
            platformdirs.user_state_dir("harbinger", appauthor=False)
        )
        self.desktop = enabled and self.supports_desktop()

    def supports_desktop(self) -> bool:
        if self.system in ("Darwin", "Windows"):
            return True
        if self.system == "Linux":
            return is_wsl(self.proc_version) or bool(
                shutil.which("notify-send")
            )
        return False

    # ------------------------------------------------------------
    # Events
    # ------------------------------------------------------------

    def notify_remote_change(self, branch: str, commit: str) -> None:
        self._send(
            "Remote Branch Updated",
            f"Branch '{branch}' has new commits on remote\n"
            f"Latest: {_short(commit)}",
        )

    def notify_out_of_sync(
        self, branch: str, local_commit: str, remote_commit: str
    ) -> None:
        self._send(
            "Branch Out of Sync",
            f"Branch '{branch}' is out of sync\n"
            f"Local: {_short(local_commit)}\nRemote: {_short(remote_commit)}",
            level="warn",
        )

    def notify_conflicts(self, count: int) -> None:
        self._send(
            "Merge Conflicts Detected",
            f"Found {count} potential merge conflicts that need resolution",
            level="warn",
        )

    def notify_in_sync(self, branch: str) -> None:
        self._send(
            "Branch In Sync",
            f"Branch '{branch}' is up to date with remote",
        )

    def notify_auto_pull(self, branch: str, commit_count: int) -> None:
        self._send(
            "Auto-Pull Completed",
            f"Pulled {commit_count} commit(s) into branch '{branch}'",
        )

    def notify_behind_remote(self, branch: str, commit_count: int) -> None:
        self._send(
            "Branch Behind Remote",
            f"Branch '{branch}' is {commit_count} commit(s) behind remote",
        )

    # ------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------

    def _send(self, title: str, message: str, level: str = "info") -> None:
        logger.log(level, f"{title}: {message}")
        if not self.desktop:
            return
        try:
            self._deliver(title, message)
        except (OSError, UnexpectedExit) as e:
            logger.warn("Desktop notification failed", title=title,
                        error=str(e))

    def _deliver(self, title: str, message: str) -> None:
        if self.system == "Darwin":
            script = (
                f"display notification {_applescript_str(message)} "
                f"with title {_applescript_str(title)}"
            )
            self._run(["osascript", "-e", script])
        elif self.system == "Linux":
            if is_wsl(self.proc_version):
                self._deliver_wsl(title, message)
            else:
                self._run(["notify-send", title, message])
        elif self.system == "Windows":
            script = _TOAST_SCRIPT.format(
                title=_xml_escape(title), message=_xml_escape(message)
            )
            self._run(["powershell", "-NoProfile", "-Command", script])

    def _deliver_wsl(self, title: str, message: str) -> None:
        self.script_dir.mkdir(parents=True, exist_ok=True)
        script_path = self.script_dir / "notify.ps1"
        script_path.write_text(_WSL_SCRIPT)

        converted = self.runner.execute(
            ["wslpath", "-w", str(script_path)], check=False
        )
        if converted.exited != 0:
            logger.warn("Could not convert WSL path",
                        path=str(script_path), stderr=converted.stderr)
            return

        self._run([
            "powershell.exe", "-ExecutionPolicy", "Bypass",
            "-File", converted.stdout.strip(),
            "-Title", title, "-Message", message,
        ])

    def _run(self, argv: list[str]) -> None:
        result = self.runner.execute(argv, check=False)
        if result.exited != 0:
            logger.warn("Notification command failed", command=argv[0],
                        exit=result.exited, stderr=result.stderr.strip())


def _applescript_str(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
