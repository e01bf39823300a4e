"""POSIX pseudo-terminal backend.

Uses ``pty.openpty()`` for the device pair and ``subprocess.Popen`` for
the child, which becomes a session leader with the PTY as its controlling
terminal so job control and SIGWINCH work as in a real terminal.
"""

from __future__ import annotations

import errno
import fcntl
import logging
import os
import pty
import signal
import struct
import subprocess
import termios
from collections.abc import Mapping

from ptyrelay.terminal.base import (
    PtyControlError,
    PtyIOError,
    SpawnError,
    Terminal,
)

logger = logging.getLogger(__name__)

# Seconds close() waits for the child to be reaped before SIGKILL
REAP_TIMEOUT = 2.0


def _set_winsize(fd: int, cols: int, rows: int) -> None:
    winsize = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


def _make_controlling_tty() -> None:
    # Runs in the child after stdio has been pointed at the PTY slave
    os.setsid()
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class PosixTerminal(Terminal):
    """Pseudo-terminal backed by the kernel PTY driver."""

    def __init__(self) -> None:
        self._master_fd: int | None = None
        self._process: subprocess.Popen | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def is_alive(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def spawn(
        self,
        argv: list[str],
        cwd: str | None,
        env: Mapping[str, str],
        cols: int,
        rows: int,
    ) -> None:
        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise SpawnError(f"Cannot allocate pseudo-terminal: {e}", argv) from e

        try:
            _set_winsize(slave_fd, cols, rows)
            self._process = subprocess.Popen(
                argv,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=cwd,
                env=dict(env),
                preexec_fn=_make_controlling_tty,
                close_fds=True,
            )
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            # ValueError: a NUL byte in argv, env or cwd
            os.close(master_fd)
            raise SpawnError(f"Failed to start {argv[0]!r}: {e}", argv) from e
        finally:
            # The child holds its own copy; ours would keep EOF from arriving
            os.close(slave_fd)

        self._master_fd = master_fd
        logger.debug("Spawned %s (pid=%d, %dx%d)", argv, self._process.pid, cols, rows)

    def read(self, size: int) -> bytes:
        if self._master_fd is None:
            return b""
        try:
            return os.read(self._master_fd, size)
        except OSError as e:
            # Linux reports a hung-up slave as EIO rather than a 0-byte read
            if e.errno == errno.EIO:
                return b""
            raise PtyIOError(f"Failed to read from terminal: {e}") from e

    def write(self, data: bytes) -> None:
        if self._master_fd is None:
            raise PtyIOError("Terminal is not open")
        view = memoryview(data)
        try:
            while view:
                written = os.write(self._master_fd, view)
                view = view[written:]
        except OSError as e:
            raise PtyIOError(f"Failed to write to terminal: {e}") from e

    def resize(self, cols: int, rows: int) -> None:
        if self._master_fd is None:
            raise PtyControlError("Terminal is not open")
        try:
            _set_winsize(self._master_fd, cols, rows)
        except OSError as e:
            raise PtyControlError(f"Failed to resize terminal: {e}") from e

    def kill(self, force: bool = False) -> None:
        if self._process is None or self._process.poll() is not None:
            return
        sig = signal.SIGKILL if force else signal.SIGHUP
        try:
            # The child leads its own process group; take its jobs down too
            os.killpg(self._process.pid, sig)
        except ProcessLookupError:
            pass
        except PermissionError:
            # Group already reaped and the id reused; signal the child alone
            try:
                self._process.send_signal(sig)
            except OSError as e:
                raise PtyControlError(f"Failed to signal pid {self._process.pid}: {e}") from e
        except OSError as e:
            raise PtyControlError(f"Failed to signal pid {self._process.pid}: {e}") from e

    def close(self) -> None:
        if self._master_fd is not None:
            try:
                os.close(self._master_fd)
            except OSError:
                pass
            self._master_fd = None

        if self._process is not None and self._process.returncode is None:
            try:
                self._process.wait(timeout=REAP_TIMEOUT)
            except subprocess.TimeoutExpired:
                logger.warning("pid %d ignored hangup, killing", self._process.pid)
                self._process.kill()
                self._process.wait()
