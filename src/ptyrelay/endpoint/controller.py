"""Session controller: the single owner of a session's input side.

Every PTY write for a connection goes through one queue drained by one
task, so there is never more than one writer on the terminal input and
callers await the outcome of their own write. Resize and terminate do not
queue: they go straight to the session's lock, so a write stuck on a
shell that stopped reading its input can never hold them up.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor

from pydantic import BaseModel, ConfigDict

from ptyrelay.endpoint.session import PtySession, PtyWriter
from ptyrelay.terminal.base import PtyControlError, PtyIOError

logger = logging.getLogger(__name__)


class WriteInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: bytes
    origin: str = "client"


class SessionController:
    """Serializes writes to one ``PtySession`` and owns its controls.

    Usage::

        controller = SessionController(session, writer)
        task = asyncio.create_task(controller.run())
        await controller.write(b"ls\\n")
        await controller.resize(120, 40)
        await controller.terminate()
        await controller.stop()
        await task
    """

    def __init__(
        self,
        session: PtySession,
        writer: PtyWriter,
        write_executor: Executor | None = None,
    ) -> None:
        self._session = session
        self._writer = writer
        self._write_executor = write_executor
        self._queue: asyncio.Queue[tuple[WriteInput, asyncio.Future] | None] = asyncio.Queue()
        self._stopped = False

    @property
    def session(self) -> PtySession:
        return self._session

    async def run(self) -> None:
        """Process writes until ``stop()`` is called."""
        loop = asyncio.get_running_loop()
        while True:
            item = await self._queue.get()
            if item is None:
                break
            request, future = item
            try:
                # Blocking write off the event loop; a stalled shell must not freeze it
                await loop.run_in_executor(self._write_executor, self._writer.write, request.data)
            except Exception as e:
                if not future.cancelled():
                    future.set_exception(e)
            else:
                logger.debug("Wrote %d bytes (%s)", len(request.data), request.origin)
                if not future.cancelled():
                    future.set_result(None)
        logger.debug("Controller for pid %s stopped", self._session.pid)

    async def write(self, data: bytes, origin: str = "client") -> None:
        """Write ``data`` to the terminal.

        Raises:
            PtyIOError: If the write fails or the controller is stopped.
        """
        self._check_open()
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((WriteInput(data=data, origin=origin), future))
        await future

    async def resize(self, cols: int, rows: int) -> bool:
        """Resize the terminal. Failures are logged; returns success.

        Raises:
            PtyIOError: If the controller is stopped.
        """
        self._check_open()
        try:
            self._session.resize(cols, rows)
        except PtyControlError as e:
            logger.warning("Resize to %dx%d failed: %s", cols, rows, e)
            return False
        logger.info("Resized terminal to %dx%d", cols, rows)
        return True

    async def terminate(self, force: bool = False) -> None:
        """Stop the shell, even with writes still pending. Never raises."""
        try:
            self._session.terminate(force=force)
        except PtyControlError as e:
            logger.warning("Terminating pid %s failed: %s", self._session.pid, e)
            return
        logger.info("Terminated pid %s%s", self._session.pid, " (forced)" if force else "")

    async def stop(self) -> None:
        """Let the queue drain, then end ``run()``."""
        if not self._stopped:
            self._stopped = True
            await self._queue.put(None)

    def _check_open(self) -> None:
        if self._stopped:
            raise PtyIOError("Session controller is stopped")
