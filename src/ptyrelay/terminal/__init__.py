"""Pseudo-terminal backends for ptyrelay.

Wraps the platform PTY primitive behind one interface so the session
layer does not care whether it runs on POSIX or Windows.

Public API:
    Terminal -- Abstract base class
    PosixTerminal -- pty + subprocess backend
    WindowsTerminal -- ConPTY backend (pywinpty)
    create_terminal -- backend for the current platform
"""

from ptyrelay.domain.models import HostPlatform
from ptyrelay.terminal.base import (
    PtyControlError,
    PtyError,
    PtyIOError,
    SpawnError,
    Terminal,
)

__all__ = [
    "PosixTerminal",
    "PtyControlError",
    "PtyError",
    "PtyIOError",
    "SpawnError",
    "Terminal",
    "WindowsTerminal",
    "create_terminal",
]


def create_terminal(platform: HostPlatform | None = None) -> Terminal:
    """Instantiate the backend matching ``platform`` (default: this host)."""
    if (platform or HostPlatform.current()) is HostPlatform.WINDOWS:
        from ptyrelay.terminal.windows import WindowsTerminal
        return WindowsTerminal()
    from ptyrelay.terminal.posix import PosixTerminal
    return PosixTerminal()


def __getattr__(name: str) -> type:
    """Lazy import for backends that only load on their own platform."""
    if name == "PosixTerminal":
        from ptyrelay.terminal.posix import PosixTerminal
        return PosixTerminal
    if name == "WindowsTerminal":
        from ptyrelay.terminal.windows import WindowsTerminal
        return WindowsTerminal
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
