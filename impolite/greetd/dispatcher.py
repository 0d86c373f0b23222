"""Serializes outbound requests onto the transport's write half."""

import asyncio
import logging

from impolite.greetd.errors import ConnectionLost
from impolite.greetd.protocol import Request, encode

logger = logging.getLogger(__name__)


class RequestDispatcher:
    """
    Writes one request at a time, in the order they were queued.

    The dispatcher only ever holds the write half, so it cannot read
    responses; correlation is left to whoever drives the state machine.
    """

    def __init__(self, write_half, outbox: "asyncio.Queue[Request]"):
        """
        Args:
            write_half: Object with ``async write_all(data)``
            outbox: Unbounded queue of requests produced by the state machine
        """
        self.write_half = write_half
        self.outbox = outbox
        self.sent = 0
        self._lost = False

    async def send(self, request: Request) -> None:
        """
        Encode and fully flush a single request.

        Raises:
            ConnectionLost: If the connection is gone
        """
        if self._lost:
            raise ConnectionLost("Connection to greetd was lost")
        frame = encode(request)
        try:
            await self.write_half.write_all(frame)
        except ConnectionLost:
            self._lost = True
            raise
        self.sent += 1
        logger.debug(f"Sent {request.type} ({len(frame)} bytes)")

    async def run(self) -> None:
        """Drain the outbox forever; returns only by cancellation or error."""
        while True:
            request = await self.outbox.get()
            try:
                await self.send(request)
            finally:
                self.outbox.task_done()
