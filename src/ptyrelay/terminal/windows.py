"""Windows pseudo-terminal backend (ConPTY via pywinpty).

pywinpty speaks ``str`` in both directions, so output is re-encoded to
UTF-8 and input is decoded incrementally to keep multi-byte characters
that straddle two writes intact.
"""

from __future__ import annotations

import codecs
import logging
from collections.abc import Mapping

from winpty import PtyProcess

from ptyrelay.terminal.base import (
    PtyControlError,
    PtyIOError,
    SpawnError,
    Terminal,
)

logger = logging.getLogger(__name__)


class WindowsTerminal(Terminal):
    """Pseudo-terminal backed by the Windows ConPTY API."""

    def __init__(self) -> None:
        self._process: PtyProcess | None = None
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def is_alive(self) -> bool:
        return self._process is not None and self._process.isalive()

    def spawn(
        self,
        argv: list[str],
        cwd: str | None,
        env: Mapping[str, str],
        cols: int,
        rows: int,
    ) -> None:
        try:
            self._process = PtyProcess.spawn(
                argv, cwd=cwd, env=dict(env), dimensions=(rows, cols),
            )
        except Exception as e:
            # pywinpty surfaces ConPTY failures as plain Exception subclasses
            raise SpawnError(f"Failed to start {argv[0]!r}: {e}", argv) from e
        logger.debug("Spawned %s (pid=%s, %dx%d)", argv, self.pid, cols, rows)

    def read(self, size: int) -> bytes:
        if self._process is None:
            return b""
        try:
            data = self._process.read(size)
        except EOFError:
            return b""
        except OSError as e:
            raise PtyIOError(f"Failed to read from terminal: {e}") from e
        return data.encode("utf-8") if isinstance(data, str) else data

    def write(self, data: bytes) -> None:
        if self._process is None:
            raise PtyIOError("Terminal is not open")
        text = self._decoder.decode(data)
        if not text:
            return
        try:
            self._process.write(text)
        except (OSError, EOFError) as e:
            raise PtyIOError(f"Failed to write to terminal: {e}") from e

    def resize(self, cols: int, rows: int) -> None:
        if self._process is None:
            raise PtyControlError("Terminal is not open")
        try:
            self._process.setwinsize(rows, cols)
        except OSError as e:
            raise PtyControlError(f"Failed to resize terminal: {e}") from e

    def kill(self, force: bool = False) -> None:
        if self._process is None or not self._process.isalive():
            return
        try:
            self._process.terminate(force=force)
        except OSError as e:
            raise PtyControlError(f"Failed to terminate pid {self.pid}: {e}") from e

    def close(self) -> None:
        if self._process is not None:
            try:
                self._process.close(force=True)
            except OSError:
                pass
            self._process = None
