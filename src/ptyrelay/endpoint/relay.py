"""Output relay: PTY output -> WebSocket binary frames.

Reads block, so each read runs on the dedicated read pool. The next read
is only issued once the previous chunk has been sent, which lets a slow
client throttle the shell through the kernel's terminal buffer instead
of the relay buffering output in memory.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from concurrent.futures import Executor

from ptyrelay.domain.models import RelayOutcome
from ptyrelay.endpoint.controller import SessionController
from ptyrelay.endpoint.session import PtyReader
from ptyrelay.terminal.base import PtyError, PtyIOError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 8192


class OutputRelay:
    """Drains one session's output and forwards it chunk by chunk.

    ``send`` is the transport's binary send; it should raise when the
    client is gone. ``integration`` is written to the shell once, right
    after the first chunk has been forwarded.
    """

    def __init__(
        self,
        reader: PtyReader,
        send: Callable[[bytes], Awaitable[None]],
        controller: SessionController,
        integration: bytes | None = None,
        read_executor: Executor | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._reader = reader
        self._send = send
        self._controller = controller
        self._integration = integration
        self._read_executor = read_executor
        self._chunk_size = chunk_size
        self._first_output = True
        self._bytes_relayed = 0
        self._outcome: RelayOutcome | None = None

    @property
    def outcome(self) -> RelayOutcome | None:
        """Why ``run()`` returned; None while it is still running."""
        return self._outcome

    @property
    def bytes_relayed(self) -> int:
        return self._bytes_relayed

    async def run(self) -> None:
        """Relay until end of stream, a read error or a send error."""
        loop = asyncio.get_running_loop()
        while True:
            try:
                data = await loop.run_in_executor(
                    self._read_executor, self._reader.read, self._chunk_size,
                )
            except PtyIOError as e:
                logger.error("PTY output read error: %s", e)
                self._outcome = RelayOutcome.READ_ERROR
                break

            if not data:
                logger.info("PTY output ended")
                self._outcome = RelayOutcome.END_OF_STREAM
                break

            try:
                await self._send(data)
            except Exception as e:
                logger.error("Failed to send PTY output: %s", e)
                self._outcome = RelayOutcome.SEND_ERROR
                break
            self._bytes_relayed += len(data)

            if self._first_output:
                self._first_output = False
                await self._inject_integration()

        logger.debug("Relay finished after %d bytes", self._bytes_relayed)

    async def _inject_integration(self) -> None:
        if self._integration is None:
            return
        try:
            await self._controller.write(self._integration, origin="integration")
        except PtyError as e:
            logger.error("Failed to send shell integration script: %s", e)
        else:
            logger.debug("Shell integration script sent")
