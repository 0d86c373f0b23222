"""Duplex byte-stream connection to greetd.

:class:`Transport` wraps an asyncio stream pair and hands out two
independently owned halves: the response listener gets the
:class:`ReadHalf`, the request dispatcher gets the :class:`WriteHalf`.
Neither side can touch the other's direction.

:class:`NullTransport` is the degraded variant used when no daemon is
running and debug mode is on: reads never complete and writes are
dropped, so the greeter can be explored without greetd.
"""

import asyncio
import logging
import re
from typing import Optional, Tuple, Union

from impolite.greetd.errors import ConnectionLost, ConnectionUnavailable

logger = logging.getLogger(__name__)

_TCP_ADDRESS = re.compile(r"^(?P<host>[^/:]+|\[[0-9a-fA-F:]+\]):(?P<port>\d{1,5})$")


def parse_address(address: Optional[str]) -> Union[str, Tuple[str, int]]:
    """
    Interpret an opaque daemon address.

    ``host:port`` (numeric port) selects TCP; anything else is a
    filesystem path to a Unix stream socket.

    Raises:
        ConnectionUnavailable: If the address is missing or malformed
    """
    if address is None or not address.strip():
        raise ConnectionUnavailable("No greetd socket address configured")
    address = address.strip()
    if "\x00" in address:
        raise ConnectionUnavailable(f"Malformed greetd address: {address!r}")

    match = _TCP_ADDRESS.match(address)
    if match:
        port = int(match.group("port"))
        if not 0 < port < 65536:
            raise ConnectionUnavailable(f"Invalid port in greetd address: {address}")
        return match.group("host").strip("[]"), port
    return address


class ReadHalf:
    """Read side of a connection; owned by the response listener."""

    def __init__(self, reader: asyncio.StreamReader) -> None:
        self._reader = reader

    async def read(self, size: int) -> bytes:
        """Return up to ``size`` bytes, ``b""`` at end-of-stream."""
        try:
            return await self._reader.read(size)
        except (ConnectionResetError, BrokenPipeError) as e:
            raise ConnectionLost(f"Connection to greetd reset: {e}") from e


class WriteHalf:
    """Write side of a connection; owned by the request dispatcher."""

    def __init__(self, writer: asyncio.StreamWriter) -> None:
        self._writer = writer
        self._closed = False

    async def write_all(self, data: bytes) -> None:
        """Write ``data`` and wait until it has been flushed."""
        if self._closed or self._writer.is_closing():
            raise ConnectionLost("Connection to greetd is closed")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as e:
            self._closed = True
            raise ConnectionLost(f"Write to greetd failed: {e}") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError:
            # Peer already gone
            pass


class Transport:
    """A live connection to greetd."""

    present = True

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        address: str = "",
    ) -> None:
        self.address = address
        self._read_half = ReadHalf(reader)
        self._write_half = WriteHalf(writer)

    def split(self) -> Tuple[ReadHalf, WriteHalf]:
        """Return the read and write halves."""
        return self._read_half, self._write_half

    async def close(self) -> None:
        """Close the connection; the listener sees end-of-stream."""
        await self._write_half.close()


class NullReadHalf:
    """Never yields data until the transport is closed."""

    def __init__(self) -> None:
        self._closed = asyncio.Event()

    async def read(self, size: int) -> bytes:
        await self._closed.wait()
        return b""

    def close(self) -> None:
        self._closed.set()


class NullWriteHalf:
    """Silently drops every write."""

    async def write_all(self, data: bytes) -> None:
        logger.debug(f"No greetd connection, dropping {len(data)} bytes")

    async def close(self) -> None:
        pass


class NullTransport:
    """Stand-in for a missing daemon (debug mode only)."""

    present = False
    address = ""

    def __init__(self) -> None:
        self._read_half = NullReadHalf()
        self._write_half = NullWriteHalf()

    def split(self) -> Tuple[NullReadHalf, NullWriteHalf]:
        return self._read_half, self._write_half

    async def close(self) -> None:
        self._read_half.close()


AnyTransport = Union[Transport, NullTransport]


async def connect(address: Optional[str]) -> Transport:
    """
    Open a stream connection to greetd.

    Args:
        address: Unix socket path or ``host:port``

    Returns:
        Connected transport

    Raises:
        ConnectionUnavailable: If the address is unusable or nothing listens
    """
    target = parse_address(address)
    try:
        if isinstance(target, tuple):
            host, port = target
            reader, writer = await asyncio.open_connection(host, port)
        else:
            reader, writer = await asyncio.open_unix_connection(target)
    except OSError as e:
        raise ConnectionUnavailable(
            f"Cannot connect to greetd at {address}: {e}"
        ) from e

    logger.info(f"Connected to greetd at {address}")
    return Transport(reader, writer, address=str(address))


async def open_transport(config) -> AnyTransport:
    """
    Select the transport variant once, at startup.

    Args:
        config: GreeterConfig providing ``socket_address`` and ``debug``

    Returns:
        A connected Transport, or a NullTransport when the daemon is
        unreachable and debug mode is enabled

    Raises:
        ConnectionUnavailable: If the daemon is unreachable outside debug mode
    """
    try:
        return await connect(config.socket_address)
    except ConnectionUnavailable as e:
        if not config.debug:
            raise
        logger.warning(f"{e} - running without connection")
        return NullTransport()
