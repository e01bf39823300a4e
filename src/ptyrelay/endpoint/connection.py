"""Per-connection orchestration: AWAIT_INIT -> ACTIVE -> CLOSING -> CLOSED.

The first message picks the shell and is never forwarded as input. Once
the shell is running, the output relay and the dispatch loop run side by
side until either the client leaves or the shell's output ends; then the
shell is always terminated and the relay drained before returning.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from concurrent.futures import Executor
from typing import Any

from starlette.websockets import WebSocket, WebSocketDisconnect

from ptyrelay.config.settings import TerminalConfig
from ptyrelay.domain.models import (
    ConnectionState,
    EnvCommand,
    InitCommand,
    RelayOutcome,
    ResizeCommand,
    ShellDescriptor,
)
from ptyrelay.endpoint.controller import SessionController
from ptyrelay.endpoint.protocol import parse_command, parse_init
from ptyrelay.endpoint.relay import OutputRelay
from ptyrelay.endpoint.session import PtyReader, PtySession, PtyWriter
from ptyrelay.shell.integration import integration_script
from ptyrelay.shell.resolver import ShellResolver
from ptyrelay.terminal.base import PtyIOError, SpawnError

logger = logging.getLogger(__name__)

# RFC 6455 close codes
CLOSE_NORMAL = 1000
CLOSE_INTERNAL_ERROR = 1011

SessionFactory = Callable[..., tuple[PtySession, PtyReader, PtyWriter]]


class ConnectionHandler:
    """Runs one WebSocket connection from first message to teardown."""

    def __init__(
        self,
        websocket: WebSocket,
        config: TerminalConfig | None = None,
        resolver: ShellResolver | None = None,
        read_executor: Executor | None = None,
        session_factory: SessionFactory = PtySession.create,
    ) -> None:
        self._websocket = websocket
        self._config = config or TerminalConfig()
        self._resolver = resolver or ShellResolver()
        self._read_executor = read_executor
        self._session_factory = session_factory
        self._state = ConnectionState.AWAIT_INIT
        self._session: PtySession | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def session(self) -> PtySession | None:
        return self._session

    async def run(self) -> None:
        try:
            descriptor = await self._await_init()
            if descriptor is None:
                logger.info("Client left before the shell was started")
                return

            loop = asyncio.get_running_loop()
            try:
                session, reader, writer = await loop.run_in_executor(
                    None, functools.partial(self._create_session, descriptor),
                )
            except SpawnError as e:
                logger.error("Failed to create PTY session: %s", e)
                await self._close_transport(CLOSE_INTERNAL_ERROR, "failed to start shell")
                return

            self._session = session
            self._state = ConnectionState.ACTIVE
            await self._serve(session, reader, writer, descriptor)
        finally:
            self._state = ConnectionState.CLOSED
            logger.info("Connection closed")

    # ------------------------------------------------------------------
    # AWAIT_INIT
    # ------------------------------------------------------------------

    async def _await_init(self) -> ShellDescriptor | None:
        """Consume the first message; None means the client already left."""
        timeout = self._config.init_timeout
        try:
            if timeout is None:
                message = await self._websocket.receive()
            else:
                message = await asyncio.wait_for(self._websocket.receive(), timeout)
        except asyncio.TimeoutError:
            logger.info("No init command within %.1fs, using default config", timeout)
            return ShellDescriptor()
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.error("Message receive error: %s", e)
            return None

        if message["type"] == "websocket.disconnect":
            return None

        text = message.get("text")
        init = parse_init(text) if text is not None else None
        if init is None:
            logger.info("No init command received, using default config")
            return ShellDescriptor()

        logger.info(
            "Received init command, shell_type: %s, shell_args: %s, cwd: %s",
            init.shell_type, init.shell_args, init.cwd,
        )
        return ShellDescriptor.from_init(init)

    def _create_session(self, descriptor: ShellDescriptor) -> tuple[PtySession, PtyReader, PtyWriter]:
        return self._session_factory(
            self._config.cols,
            self._config.rows,
            descriptor,
            resolver=self._resolver,
            default_term=self._config.default_term,
            default_locale=self._config.default_locale,
            term_program=self._config.term_program,
        )

    # ------------------------------------------------------------------
    # ACTIVE / CLOSING
    # ------------------------------------------------------------------

    async def _serve(
        self,
        session: PtySession,
        reader: PtyReader,
        writer: PtyWriter,
        descriptor: ShellDescriptor,
    ) -> None:
        controller = SessionController(session, writer)
        controller_task = asyncio.create_task(controller.run())
        relay = OutputRelay(
            reader,
            self._websocket.send_bytes,
            controller,
            integration=integration_script(descriptor.shell_type, self._resolver.platform),
            read_executor=self._read_executor,
            chunk_size=self._config.read_chunk_size,
        )
        relay_task = asyncio.create_task(relay.run())
        dispatch_task: asyncio.Task[None] | None = None

        try:
            dispatch_task = asyncio.create_task(self._dispatch(controller))
            await asyncio.wait({relay_task, dispatch_task}, return_when=asyncio.FIRST_COMPLETED)
            if not dispatch_task.done():
                await self._close_for_relay(relay.outcome)
        finally:
            self._state = ConnectionState.CLOSING
            # Runs to completion even if this task is cancelled
            await asyncio.shield(
                self._teardown(session, controller, controller_task, relay_task, dispatch_task),
            )

    async def _teardown(
        self,
        session: PtySession,
        controller: SessionController,
        controller_task: asyncio.Task[None],
        relay_task: asyncio.Task[None],
        dispatch_task: asyncio.Task[None] | None,
    ) -> None:
        if dispatch_task is not None:
            dispatch_task.cancel()
            for result in await asyncio.gather(dispatch_task, return_exceptions=True):
                if isinstance(result, Exception):
                    logger.error("Dispatch loop failed: %r", result)

        await controller.terminate()
        await self._wait_for_relay(relay_task, controller)
        await controller.stop()
        try:
            await asyncio.wait_for(controller_task, self._config.kill_grace)
        except asyncio.TimeoutError:
            logger.warning("Pending input for pid %s was not written before shutdown", session.pid)
        await asyncio.get_running_loop().run_in_executor(None, session.close)

    async def _close_for_relay(self, outcome: RelayOutcome | None) -> None:
        if outcome is RelayOutcome.SEND_ERROR:
            logger.info("Client stopped accepting output, closing connection")
            await self._close_transport(CLOSE_INTERNAL_ERROR, "output send failed")
        elif outcome is RelayOutcome.READ_ERROR:
            logger.info("Shell output failed, closing connection")
            await self._close_transport(CLOSE_INTERNAL_ERROR, "output read failed")
        else:
            logger.info("Shell output ended, closing connection")
            await self._close_transport(CLOSE_NORMAL)

    async def _wait_for_relay(self, relay_task: asyncio.Task[None], controller: SessionController) -> None:
        grace = self._config.kill_grace
        try:
            await asyncio.wait_for(asyncio.shield(relay_task), grace)
        except asyncio.TimeoutError:
            logger.warning(
                "Shell pid %s still running %.1fs after hangup, killing",
                controller.session.pid, grace,
            )
            await controller.terminate(force=True)
            await relay_task

    async def _dispatch(self, controller: SessionController) -> None:
        """Feed client messages to the shell, one at a time.

        The next receive is already pending while a message is handled, so
        a client that leaves while its input waits on a shell that stopped
        reading is still noticed.
        """
        handling: asyncio.Task[None] | None = None
        receiving: asyncio.Future[dict[str, Any]] | None = None
        try:
            while True:
                receiving = asyncio.ensure_future(self._websocket.receive())
                if handling is not None:
                    await asyncio.wait({receiving, handling}, return_when=asyncio.FIRST_COMPLETED)
                    if not handling.done() and self._receive_ended(receiving):
                        logger.info("Client closed connection while input was pending")
                        return
                    try:
                        await handling
                    except PtyIOError as e:
                        logger.error("Failed to write to PTY: %s", e)
                        return

                try:
                    message = await receiving
                except (WebSocketDisconnect, RuntimeError) as e:
                    logger.error("Message receive error: %s", e)
                    return

                if message["type"] == "websocket.disconnect":
                    logger.info("Client closed connection")
                    return

                handling = asyncio.create_task(self._handle_message(message, controller))
        finally:
            for pending in (receiving, handling):
                if pending is not None and not pending.done():
                    pending.cancel()

    @staticmethod
    def _receive_ended(receiving: asyncio.Future[dict[str, Any]]) -> bool:
        if not receiving.done() or receiving.cancelled():
            return False
        if receiving.exception() is not None:
            return True
        return receiving.result()["type"] == "websocket.disconnect"

    async def _handle_message(self, message: dict[str, Any], controller: SessionController) -> None:
        text = message.get("text")
        data = message.get("bytes")

        if text is not None:
            command = parse_command(text)
            if command is None:
                logger.debug("Received text input: %d bytes", len(text))
                await controller.write(text.encode("utf-8"))
            else:
                await self._apply(command, controller)
        elif data is not None:
            logger.debug("Received binary input: %d bytes", len(data))
            await controller.write(data)

    async def _apply(self, command: InitCommand | ResizeCommand | EnvCommand, controller: SessionController) -> None:
        if isinstance(command, ResizeCommand):
            logger.info("Received resize command: %dx%d", command.cols, command.rows)
            await controller.resize(command.cols, command.rows)
        elif isinstance(command, EnvCommand):
            # Environment and cwd only apply at spawn; nothing to do for a live shell
            logger.info(
                "Received env command: cwd=%s, env=%s",
                command.cwd, sorted(command.env) if command.env else None,
            )
        else:
            logger.info("Received init command (already handled at connection establishment)")

    async def _close_transport(self, code: int, reason: str = "") -> None:
        try:
            await self._websocket.close(code=code, reason=reason)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.debug("Close after disconnect ignored: %s", e)
