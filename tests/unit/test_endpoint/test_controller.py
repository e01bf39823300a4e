"""Tests for SessionController request serialization."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeTerminal, wait_until
from ptyrelay.endpoint.controller import SessionController, WriteInput
from ptyrelay.terminal.base import PtyControlError, PtyIOError


async def _started(fake_session) -> tuple[SessionController, asyncio.Task]:
    session, writer = fake_session
    controller = SessionController(session, writer)
    return controller, asyncio.create_task(controller.run())


class TestSessionController:
    @pytest.mark.asyncio
    async def test_writes_arrive_in_order(self, fake_session, fake_terminal: FakeTerminal) -> None:
        controller, task = await _started(fake_session)
        await asyncio.gather(*(controller.write(f"{i}\n".encode()) for i in range(20)))
        await controller.stop()
        await task
        assert fake_terminal.written == [f"{i}\n".encode() for i in range(20)]

    @pytest.mark.asyncio
    async def test_resize(self, fake_session, fake_terminal: FakeTerminal) -> None:
        controller, task = await _started(fake_session)
        assert await controller.resize(120, 40) is True
        await controller.stop()
        await task
        assert fake_terminal.resizes == [(120, 40)]
        assert controller.session.size == (120, 40)

    @pytest.mark.asyncio
    async def test_resize_failure_is_reported_not_raised(
        self, fake_session, fake_terminal: FakeTerminal,
    ) -> None:
        controller, task = await _started(fake_session)
        fake_terminal.fail_resize = True
        assert await controller.resize(120, 40) is False
        # Still usable afterwards
        await controller.write(b"x")
        await controller.stop()
        await task
        assert fake_terminal.written == [b"x"]

    @pytest.mark.asyncio
    async def test_write_failure_raises(self, fake_session, fake_terminal: FakeTerminal) -> None:
        controller, task = await _started(fake_session)
        fake_terminal.fail_writes = True
        with pytest.raises(PtyIOError):
            await controller.write(b"ls\n")
        await controller.stop()
        await task

    @pytest.mark.asyncio
    async def test_terminate_failure_is_swallowed(self, fake_session, fake_terminal: FakeTerminal) -> None:
        def broken_kill(force: bool = False) -> None:
            raise PtyControlError("no such process")

        fake_terminal.kill = broken_kill
        controller, task = await _started(fake_session)
        await controller.terminate()
        await controller.stop()
        await task
        assert controller.session.terminated

    @pytest.mark.asyncio
    async def test_terminate_forwards_force(self, fake_session, fake_terminal: FakeTerminal) -> None:
        controller, task = await _started(fake_session)
        await controller.terminate()
        await controller.terminate(force=True)
        await controller.stop()
        await task
        assert fake_terminal.kills == [False, True]

    @pytest.mark.asyncio
    async def test_requests_after_stop_are_rejected(self, fake_session) -> None:
        controller, task = await _started(fake_session)
        await controller.stop()
        await controller.stop()
        await task
        with pytest.raises(PtyIOError):
            await controller.write(b"late")
        with pytest.raises(PtyIOError):
            await controller.resize(10, 10)

    @pytest.mark.asyncio
    async def test_stop_drains_queued_requests(self, fake_session, fake_terminal: FakeTerminal) -> None:
        session, writer = fake_session
        controller = SessionController(session, writer)
        pending = asyncio.ensure_future(controller.write(b"queued"))
        await asyncio.sleep(0)
        await controller.stop()
        await controller.run()
        await pending
        assert fake_terminal.written == [b"queued"]

    @pytest.mark.asyncio
    async def test_controls_bypass_a_blocked_write(self, fake_session, fake_terminal: FakeTerminal) -> None:
        fake_terminal.block_writes = True
        controller, task = await _started(fake_session)
        pending = asyncio.ensure_future(controller.write(b"x" * 65536))
        await wait_until(lambda: fake_terminal.writes_attempted == 1)

        assert await asyncio.wait_for(controller.resize(100, 30), 1.0) is True
        await asyncio.wait_for(controller.terminate(), 1.0)
        assert fake_terminal.resizes == [(100, 30)]
        assert fake_terminal.kills == [False]

        with pytest.raises(PtyIOError):
            await asyncio.wait_for(pending, 1.0)
        await controller.stop()
        await task
        assert fake_terminal.written == []


class TestRequestModels:
    def test_write_input_defaults_to_client(self) -> None:
        assert WriteInput(data=b"a").origin == "client"
