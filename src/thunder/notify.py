"""Desktop notifications (toast + sound), best-effort."""

from __future__ import annotations

import subprocess
import sys

TITLE = "Thunder"


def _run_quiet(*cmd: str) -> None:
    """Fire-and-forget subprocess, ignore failures."""
    try:
        subprocess.Popen(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except (FileNotFoundError, OSError):
        pass


def _escape_osascript(message: str) -> str:
    return message.replace("\\", "\\\\").replace('"', '\\"')


def notify_done(message: str = "Thunder finished executing the plan.") -> None:
    """Show a completion toast."""
    if sys.platform == "darwin":
        _run_quiet(
            "osascript", "-e",
            f'display notification "{_escape_osascript(message)}" with title "{TITLE}"',
        )
    elif sys.platform.startswith("linux"):
        _run_quiet("notify-send", TITLE, message)
    elif sys.platform == "win32":
        _run_quiet(
            "powershell.exe", "-Command",
            "[System.Media.SystemSounds]::Asterisk.Play()",
        )


def notify_error(message: str) -> None:
    """Interruptive error toast with an alert sound where supported."""
    if sys.platform == "darwin":
        _run_quiet(
            "osascript", "-e",
            f'display notification "{_escape_osascript(message)}" with title "{TITLE} - Error"',
        )
        _run_quiet("afplay", "/System/Library/Sounds/Basso.aiff")
    elif sys.platform.startswith("linux"):
        _run_quiet("notify-send", "-u", "critical", f"{TITLE} - Error", message)
    elif sys.platform == "win32":
        _run_quiet(
            "powershell.exe", "-Command",
            "[System.Media.SystemSounds]::Hand.Play()",
        )
