"""Shared test fixtures for the ptyrelay test suite.

Provides an in-memory terminal backend and a scripted WebSocket so the
connection machinery can be exercised without a real PTY or server.
"""

from __future__ import annotations

import asyncio
import functools
import queue
import threading
import time
from collections.abc import Mapping

import pytest

from ptyrelay.config.settings import TerminalConfig
from ptyrelay.domain.models import HostPlatform, ShellCommand
from ptyrelay.endpoint.session import PtySession, PtyWriter
from ptyrelay.shell.resolver import ShellResolver
from ptyrelay.terminal.base import PtyControlError, PtyIOError, Terminal

# Upper bound for any blocking read in the fakes, so a broken test fails
# instead of hanging the executor thread forever
READ_TIMEOUT = 5.0


class FakeTerminal(Terminal):
    """Terminal backend that records input and replays scripted output."""

    def __init__(
        self,
        banner: bytes | None = b"$ ",
        echo: bool = False,
        ignore_hangup: bool = False,
    ) -> None:
        self.banner = banner
        self.echo = echo
        self.ignore_hangup = ignore_hangup
        self.output: queue.Queue[bytes | None] = queue.Queue()
        self.written: list[bytes] = []
        self.resizes: list[tuple[int, int]] = []
        self.kills: list[bool] = []
        self.spawned_with: dict | None = None
        self.closed = False
        self.fail_writes = False
        self.fail_reads = False
        self.fail_resize = False
        # A shell that stopped reading its input: writes hang until it exits
        self.block_writes = False
        self.writes_attempted = 0
        self._exited = threading.Event()
        self._alive = False

    def spawn(
        self,
        argv: list[str],
        cwd: str | None,
        env: Mapping[str, str],
        cols: int,
        rows: int,
    ) -> None:
        self.spawned_with = {
            "argv": list(argv), "cwd": cwd, "env": dict(env), "cols": cols, "rows": rows,
        }
        self._alive = True
        if self.banner:
            self.output.put(self.banner)

    def read(self, size: int) -> bytes:
        if self.fail_reads:
            raise PtyIOError("read failed")
        try:
            data = self.output.get(timeout=READ_TIMEOUT)
        except queue.Empty:
            return b""
        return b"" if data is None else data

    def write(self, data: bytes) -> None:
        self.writes_attempted += 1
        if self.block_writes:
            self._exited.wait(READ_TIMEOUT)
            if not self._alive:
                raise PtyIOError("shell exited")
        if self.fail_writes:
            raise PtyIOError("write failed")
        self.written.append(bytes(data))
        if self.echo:
            self.output.put(bytes(data))

    def resize(self, cols: int, rows: int) -> None:
        if self.fail_resize:
            raise PtyControlError("resize failed")
        self.resizes.append((cols, rows))

    def kill(self, force: bool = False) -> None:
        self.kills.append(force)
        if self._alive and (force or not self.ignore_hangup):
            self.finish()

    def finish(self) -> None:
        """Simulate the shell exiting: end of stream for the reader."""
        self._alive = False
        self._exited.set()
        self.output.put(None)

    def close(self) -> None:
        self.closed = True

    @property
    def pid(self) -> int | None:
        return 4242 if self.spawned_with else None

    @property
    def is_alive(self) -> bool:
        return self._alive


class FakeWebSocket:
    """Scripted stand-in for ``starlette.websockets.WebSocket``.

    Incoming frames are raw ASGI receive events, like the handler sees.
    """

    def __init__(self) -> None:
        self.incoming: asyncio.Queue[dict] = asyncio.Queue()
        self.sent: list[bytes] = []
        self.close_code: int | None = None
        self.fail_sends = False

    async def receive(self) -> dict:
        return await self.incoming.get()

    async def send_bytes(self, data: bytes) -> None:
        if self.fail_sends:
            raise RuntimeError("client went away")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_code = code

    def push_text(self, text: str) -> None:
        self.incoming.put_nowait({"type": "websocket.receive", "text": text})

    def push_bytes(self, data: bytes) -> None:
        self.incoming.put_nowait({"type": "websocket.receive", "bytes": data})

    def disconnect(self, code: int = 1000) -> None:
        self.incoming.put_nowait({"type": "websocket.disconnect", "code": code})


def poll_until(predicate, timeout: float = 5.0) -> None:
    """Blocking variant of ``wait_until`` for code driving a TestClient."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll ``predicate`` on the event loop until it holds or time runs out."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_terminal() -> FakeTerminal:
    return FakeTerminal()


@pytest.fixture
def posix_resolver() -> ShellResolver:
    """A POSIX resolver whose default shell is /bin/zsh."""
    return ShellResolver(platform=HostPlatform.POSIX, environ={"SHELL": "/bin/zsh"})


@pytest.fixture
def terminal_config() -> TerminalConfig:
    """Fast timeouts so teardown paths finish quickly."""
    return TerminalConfig(init_timeout=None, kill_grace=0.5)


@pytest.fixture
def session_factory(fake_terminal: FakeTerminal):
    """``PtySession.create`` bound to the fake terminal and a fixed env."""
    return functools.partial(
        PtySession.create,
        terminal_factory=lambda: fake_terminal,
        inherited_env={"PATH": "/usr/bin:/bin", "HOME": "/home/test"},
    )


@pytest.fixture
def fake_session(fake_terminal: FakeTerminal) -> tuple[PtySession, PtyWriter]:
    """A live session over the fake terminal, plus its writer."""
    fake_terminal.spawn(["/bin/zsh"], cwd=None, env={}, cols=80, rows=24)
    session = PtySession(fake_terminal, ShellCommand(executable="/bin/zsh"), 80, 24)
    return session, PtyWriter(fake_terminal)
