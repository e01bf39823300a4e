"""Tests for the ConPTY backend with pywinpty replaced by a stub module.

The stub is installed for the duration of each test, so these run on
every platform whether or not pywinpty is installed.
"""

from __future__ import annotations

import importlib
import sys
import types
from unittest.mock import MagicMock, patch

import pytest

import ptyrelay.terminal as terminal_pkg
from ptyrelay.domain.models import HostPlatform
from ptyrelay.terminal import create_terminal
from ptyrelay.terminal.base import PtyControlError, PtyIOError, SpawnError

MODULE = "ptyrelay.terminal.windows"


@pytest.fixture
def windows():
    stub = types.ModuleType("winpty")
    stub.PtyProcess = MagicMock(name="PtyProcess")
    with patch.dict(sys.modules, {"winpty": stub}):
        sys.modules.pop(MODULE, None)
        yield importlib.import_module(MODULE)
    terminal_pkg.__dict__.pop("windows", None)


@pytest.fixture
def process() -> MagicMock:
    proc = MagicMock()
    proc.pid = 1234
    proc.isalive.return_value = True
    return proc


@pytest.fixture
def terminal(windows, process: MagicMock):
    with patch.object(windows, "PtyProcess") as mock_cls:
        mock_cls.spawn.return_value = process
        term = windows.WindowsTerminal()
        term.spawn(["cmd.exe"], cwd="C:\\", env={"TERM": "xterm-256color"}, cols=80, rows=24)
    return term


class TestWindowsTerminal:
    def test_factory_picks_conpty_backend(self, windows) -> None:
        assert isinstance(create_terminal(HostPlatform.WINDOWS), windows.WindowsTerminal)

    def test_spawn_passes_rows_then_cols(self, windows) -> None:
        with patch.object(windows, "PtyProcess") as mock_cls:
            windows.WindowsTerminal().spawn(["pwsh.exe", "-NoLogo"], cwd=None, env={}, cols=120, rows=40)
        mock_cls.spawn.assert_called_once_with(
            ["pwsh.exe", "-NoLogo"], cwd=None, env={}, dimensions=(40, 120),
        )

    def test_spawn_failure(self, windows) -> None:
        with patch.object(windows, "PtyProcess") as mock_cls:
            mock_cls.spawn.side_effect = RuntimeError("CreateProcess failed")
            term = windows.WindowsTerminal()
            with pytest.raises(SpawnError):
                term.spawn(["nope.exe"], cwd=None, env={}, cols=80, rows=24)
        assert term.pid is None

    def test_pid_and_liveness(self, terminal, process: MagicMock) -> None:
        assert terminal.pid == 1234
        assert terminal.is_alive
        process.isalive.return_value = False
        assert not terminal.is_alive

    def test_read_encodes_text(self, terminal, process: MagicMock) -> None:
        process.read.return_value = "héllo"
        assert terminal.read(8192) == "héllo".encode("utf-8")

    def test_read_eof(self, terminal, process: MagicMock) -> None:
        process.read.side_effect = EOFError
        assert terminal.read(8192) == b""

    def test_write_keeps_split_characters(self, terminal, process: MagicMock) -> None:
        encoded = "✓".encode("utf-8")
        terminal.write(encoded[:1])
        terminal.write(encoded[1:])
        process.write.assert_called_once_with("✓")

    def test_write_failure(self, terminal, process: MagicMock) -> None:
        process.write.side_effect = EOFError
        with pytest.raises(PtyIOError):
            terminal.write(b"dir\r\n")

    def test_resize(self, terminal, process: MagicMock) -> None:
        terminal.resize(132, 50)
        process.setwinsize.assert_called_once_with(50, 132)
        process.setwinsize.side_effect = OSError("bad handle")
        with pytest.raises(PtyControlError):
            terminal.resize(1, 1)

    def test_kill_and_close(self, terminal, process: MagicMock) -> None:
        terminal.kill()
        process.terminate.assert_called_once_with(force=False)
        terminal.close()
        process.close.assert_called_once_with(force=True)
        assert terminal.pid is None
        terminal.kill()
        terminal.close()
