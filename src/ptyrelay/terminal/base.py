"""Abstract base class for pseudo-terminal backends.

All PTY backends must conform to this interface, enabling the session
layer to run the same way on POSIX (``pty`` + ``subprocess``) and on
Windows (ConPTY via pywinpty) without any other code knowing which one
is in use.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping

logger = logging.getLogger(__name__)


class Terminal(ABC):
    """One pseudo-terminal with one child process attached to it.

    ``read`` and ``write`` may be called from different threads at the
    same time; they use independent directions of the device. Each of
    them must only be called from one thread at a time.

    Example usage::

        term = PosixTerminal()
        term.spawn(["/bin/sh"], cwd=None, env=dict(os.environ), cols=80, rows=24)
        term.write(b"echo hi\\n")
        print(term.read(8192))
        term.kill()
        term.close()
    """

    @abstractmethod
    def spawn(
        self,
        argv: list[str],
        cwd: str | None,
        env: Mapping[str, str],
        cols: int,
        rows: int,
    ) -> None:
        """Allocate the terminal and start ``argv`` on its secondary side.

        Raises:
            SpawnError: If allocation or process start fails.
        """
        ...

    @abstractmethod
    def read(self, size: int) -> bytes:
        """Block until output is available and return up to ``size`` bytes.

        Returns ``b""`` once the child side is gone (end of stream).

        Raises:
            PtyIOError: On any other read failure.
        """
        ...

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Write all of ``data`` to the terminal input.

        Raises:
            PtyIOError: If the write fails.
        """
        ...

    @abstractmethod
    def resize(self, cols: int, rows: int) -> None:
        """Change the reported window size.

        Raises:
            PtyControlError: If the OS rejects the change.
        """
        ...

    @abstractmethod
    def kill(self, force: bool = False) -> None:
        """Ask the child to stop; ``force`` makes it non-negotiable.

        Must be a no-op for a child that has already exited.

        Raises:
            PtyControlError: If signalling the child fails.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the terminal and reap the child. Safe to call twice."""
        ...

    @property
    @abstractmethod
    def pid(self) -> int | None:
        ...

    @property
    @abstractmethod
    def is_alive(self) -> bool:
        ...


class PtyError(Exception):
    """Base class for pseudo-terminal failures."""


class SpawnError(PtyError):
    """Raised when the terminal cannot be allocated or the shell cannot start."""

    def __init__(self, message: str, argv: list[str] | None = None) -> None:
        super().__init__(message)
        self.argv = argv or []


class PtyIOError(PtyError):
    """Raised when reading from or writing to the terminal fails."""


class PtyControlError(PtyError):
    """Raised when resizing the terminal or signalling the child fails."""
