"""Decodes inbound frames from the transport's read half."""

import asyncio
import logging
from typing import AsyncIterator

from impolite.greetd.protocol import Response, read_frame

logger = logging.getLogger(__name__)


class ResponseListener:
    """Yields greetd responses in the order the daemon sent them."""

    def __init__(self, read_half, inbox: "asyncio.Queue[Response]"):
        self.read_half = read_half
        self.inbox = inbox
        self.received = 0

    async def responses(self) -> AsyncIterator[Response]:
        """
        Iterate over decoded responses until end-of-stream.

        No read timeout is applied; a silent daemon simply keeps the
        iterator suspended.

        Raises:
            ConnectionLost: If the stream ends mid-frame
            MalformedFrame: If a frame is oversized or not UTF-8
            ProtocolDecodeError: If a payload is not a known response
        """
        while True:
            response = await read_frame(self.read_half)
            if response is None:
                logger.info("greetd closed the connection")
                return
            self.received += 1
            logger.debug(f"Received {response!r}")
            yield response

    async def run(self) -> None:
        """Forward every response into the inbox until end-of-stream."""
        async for response in self.responses():
            self.inbox.put_nowait(response)
