"""PTY session: one pseudo-terminal plus the shell running on it.

A session hands out two independent endpoints, a ``PtyReader`` for the
output relay and a ``PtyWriter`` for the input path, and keeps the
process controls (resize / terminate) to itself behind one lock.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Mapping

from ptyrelay.domain.models import ShellCommand, ShellDescriptor
from ptyrelay.shell.resolver import ShellResolver
from ptyrelay.terminal import Terminal, create_terminal

logger = logging.getLogger(__name__)

DEFAULT_TERM = "xterm-256color"
DEFAULT_LOCALE = "en_US.UTF-8"
TERM_PROGRAM = "smart-workflow"
LOCALE_VARS = ("LANG", "LC_ALL", "LC_CTYPE")


def build_spawn_env(
    overlay: Mapping[str, str],
    inherited: Mapping[str, str] | None = None,
    default_term: str = DEFAULT_TERM,
    default_locale: str = DEFAULT_LOCALE,
    term_program: str = TERM_PROGRAM,
) -> dict[str, str]:
    """Build the environment the shell is started with.

    ``TERM`` and the locale variables are always set, preferring the
    overlay, then the inherited environment, then a UTF-8 default.
    ``TERM_PROGRAM`` marks the shell as launched by this server.
    """
    inherited = dict(os.environ if inherited is None else inherited)
    env = dict(inherited)

    env["TERM"] = overlay.get("TERM") or inherited.get("TERM") or default_term
    for var in LOCALE_VARS:
        env[var] = overlay.get(var) or inherited.get(var) or default_locale

    for key, value in overlay.items():
        if key != "TERM" and key not in LOCALE_VARS:
            env[key] = value

    env["TERM_PROGRAM"] = term_program
    return env


class PtyReader:
    """Output side of a session. Owned by exactly one relay task."""

    def __init__(self, terminal: Terminal) -> None:
        self._terminal = terminal

    def read(self, size: int) -> bytes:
        return self._terminal.read(size)


class PtyWriter:
    """Input side of a session. Owned by exactly one controller."""

    def __init__(self, terminal: Terminal) -> None:
        self._terminal = terminal

    def write(self, data: bytes) -> None:
        self._terminal.write(data)


class PtySession:
    """Owns one terminal and its child process.

    Usage::

        session, reader, writer = PtySession.create(80, 24, ShellDescriptor())
        writer.write(b"ls\\n")
        chunk = reader.read(8192)
        session.resize(120, 40)
        session.terminate()
        session.close()
    """

    def __init__(self, terminal: Terminal, command: ShellCommand, cols: int, rows: int) -> None:
        self._terminal = terminal
        self._command = command
        self._cols = cols
        self._rows = rows
        self._lock = threading.Lock()
        self._terminated = False

    @classmethod
    def create(
        cls,
        cols: int,
        rows: int,
        descriptor: ShellDescriptor,
        resolver: ShellResolver | None = None,
        terminal_factory: Callable[[], Terminal] | None = None,
        inherited_env: Mapping[str, str] | None = None,
        default_term: str = DEFAULT_TERM,
        default_locale: str = DEFAULT_LOCALE,
        term_program: str = TERM_PROGRAM,
    ) -> tuple[PtySession, PtyReader, PtyWriter]:
        """Spawn the shell described by ``descriptor`` on a new terminal.

        Raises:
            SpawnError: If the terminal or the process cannot be created.
        """
        resolver = resolver or ShellResolver()
        command = resolver.resolve(descriptor.shell_type)
        argv = command.argv(descriptor.shell_args)
        env = build_spawn_env(
            descriptor.env,
            inherited=inherited_env,
            default_term=default_term,
            default_locale=default_locale,
            term_program=term_program,
        )
        cwd = os.path.expanduser(descriptor.cwd) if descriptor.cwd else None

        terminal = (terminal_factory or create_terminal)()
        terminal.spawn(argv, cwd=cwd, env=env, cols=cols, rows=rows)
        logger.info(
            "Started shell %s (pid=%s, %dx%d, cwd=%s)",
            argv, terminal.pid, cols, rows, cwd or ".",
        )

        session = cls(terminal, command, cols, rows)
        return session, PtyReader(terminal), PtyWriter(terminal)

    @property
    def command(self) -> ShellCommand:
        return self._command

    @property
    def pid(self) -> int | None:
        return self._terminal.pid

    @property
    def is_alive(self) -> bool:
        return self._terminal.is_alive

    @property
    def size(self) -> tuple[int, int]:
        return self._cols, self._rows

    def resize(self, cols: int, rows: int) -> None:
        """Change the terminal size. Raises PtyControlError on failure."""
        with self._lock:
            self._terminal.resize(cols, rows)
            self._cols, self._rows = cols, rows

    def terminate(self, force: bool = False) -> None:
        """Stop the child process. Calling it again is harmless."""
        with self._lock:
            self._terminated = True
            self._terminal.kill(force=force)

    @property
    def terminated(self) -> bool:
        return self._terminated

    def close(self) -> None:
        """Release the terminal and reap the child.

        Only call this once the output relay has stopped reading.
        """
        pid = self._terminal.pid
        with self._lock:
            self._terminal.close()
        logger.debug("Session for pid %s closed", pid)
