"""
Tests for greetd/transport.py, greetd/dispatcher.py and greetd/listener.py.

Socket tests run against the in-process daemon from fake_greetd.
"""

import asyncio
import os
import struct
import tempfile
import unittest

from fake_greetd import FakeGreetd

from impolite.core.configs import GreeterConfig
from impolite.greetd.dispatcher import RequestDispatcher
from impolite.greetd.errors import (
    ConnectionLost,
    ConnectionUnavailable,
    DaemonConnectionError,
    ProtocolDecodeError,
)
from impolite.greetd.listener import ResponseListener
from impolite.greetd.protocol import (
    AuthMessage,
    AuthMessageKind,
    CancelSession,
    CreateSession,
    PostAuthMessageResponse,
    Success,
)
from impolite.greetd.transport import (
    NullTransport,
    Transport,
    connect,
    open_transport,
    parse_address,
)


def missing_socket_path():
    return os.path.join(tempfile.gettempdir(), f"impolite-missing-{os.getpid()}.sock")


class TestParseAddress(unittest.TestCase):
    """Address interpretation."""

    def test_paths_are_unix_sockets(self):
        for address in ("/run/greetd.sock", "relative.sock", "/tmp/dir:1/greetd.sock"):
            with self.subTest(address=address):
                self.assertEqual(parse_address(address), address)

    def test_host_port_is_tcp(self):
        self.assertEqual(parse_address("localhost:5000"), ("localhost", 5000))
        self.assertEqual(parse_address("[::1]:8080"), ("::1", 8080))

    def test_missing_address(self):
        for address in (None, "", "   "):
            with self.subTest(address=address):
                with self.assertRaises(ConnectionUnavailable):
                    parse_address(address)

    def test_malformed_addresses(self):
        for address in ("bad\x00path", "localhost:0", "localhost:99999"):
            with self.subTest(address=address):
                with self.assertRaises(ConnectionUnavailable):
                    parse_address(address)

    def test_unavailable_is_a_daemon_connection_error(self):
        with self.assertRaises(DaemonConnectionError) as context:
            parse_address("")
        self.assertEqual(context.exception.user_message, "cannot reach login service")


class TestConnect(unittest.IsolatedAsyncioTestCase):
    """Selecting and opening a transport."""

    async def test_connect_to_missing_socket(self):
        with self.assertRaises(ConnectionUnavailable):
            await connect(missing_socket_path())

    async def test_open_transport_raises_outside_debug(self):
        config = GreeterConfig(socket_address=missing_socket_path(), debug=False)
        with self.assertRaises(ConnectionUnavailable):
            await open_transport(config)

    async def test_open_transport_without_address_raises(self):
        with self.assertRaises(ConnectionUnavailable):
            await open_transport(GreeterConfig())

    async def test_open_transport_degrades_in_debug(self):
        config = GreeterConfig(socket_address=missing_socket_path(), debug=True)
        transport = await open_transport(config)
        self.assertIsInstance(transport, NullTransport)
        self.assertFalse(transport.present)
        await transport.close()

    async def test_open_transport_connects(self):
        async with FakeGreetd(lambda request: Success()) as daemon:
            transport = await open_transport(GreeterConfig(socket_address=daemon.path))
            self.assertIsInstance(transport, Transport)
            self.assertTrue(transport.present)
            self.assertEqual(transport.address, daemon.path)
            await transport.close()


class TestNullTransport(unittest.IsolatedAsyncioTestCase):
    """Degraded transport used without a daemon."""

    async def test_writes_are_dropped(self):
        _, write_half = NullTransport().split()
        await write_half.write_all(b"\x00\x00\x00\x00")

    async def test_reads_block_until_closed(self):
        transport = NullTransport()
        read_half, _ = transport.split()
        pending = asyncio.ensure_future(read_half.read(4))
        await asyncio.sleep(0.01)
        self.assertFalse(pending.done())

        await transport.close()
        self.assertEqual(await asyncio.wait_for(pending, 1), b"")

    async def test_listener_ends_cleanly_on_close(self):
        transport = NullTransport()
        read_half, _ = transport.split()
        inbox = asyncio.Queue()
        task = asyncio.ensure_future(ResponseListener(read_half, inbox).run())
        await transport.close()
        await asyncio.wait_for(task, 1)
        self.assertTrue(inbox.empty())


class TestDispatchAndListen(unittest.IsolatedAsyncioTestCase):
    """Requests out, responses in, over a real Unix socket."""

    async def test_round_trip(self):
        def handler(request):
            if request["type"] == "create_session":
                return AuthMessage(AuthMessageKind.SECRET, "Password: ")
            return Success()

        async with FakeGreetd(handler) as daemon:
            transport = await connect(daemon.path)
            read_half, write_half = transport.split()
            dispatcher = RequestDispatcher(write_half, asyncio.Queue())
            listener = ResponseListener(read_half, asyncio.Queue())
            responses = listener.responses()

            await dispatcher.send(CreateSession("alice"))
            self.assertEqual(
                await responses.__anext__(),
                AuthMessage(AuthMessageKind.SECRET, "Password: "),
            )
            await dispatcher.send(PostAuthMessageResponse("hunter2"))
            self.assertEqual(await responses.__anext__(), Success())

            self.assertEqual(dispatcher.sent, 2)
            self.assertEqual(listener.received, 2)
            self.assertEqual(
                daemon.requests,
                [
                    {"type": "create_session", "username": "alice"},
                    {"type": "post_auth_message_response", "response": "hunter2"},
                ],
            )
            await transport.close()

    async def test_dispatcher_preserves_queue_order(self):
        async with FakeGreetd(lambda request: Success()) as daemon:
            transport = await connect(daemon.path)
            read_half, write_half = transport.split()
            outbox = asyncio.Queue()
            inbox = asyncio.Queue()
            dispatcher = RequestDispatcher(write_half, outbox)
            listener = ResponseListener(read_half, inbox)
            dispatcher_task = asyncio.ensure_future(dispatcher.run())
            listener_task = asyncio.ensure_future(listener.run())

            for request in (CreateSession("alice"), PostAuthMessageResponse(None), CancelSession()):
                outbox.put_nowait(request)
            await asyncio.wait_for(outbox.join(), 1)
            for _ in range(3):
                self.assertEqual(await asyncio.wait_for(inbox.get(), 1), Success())

            self.assertEqual(
                daemon.request_types,
                ["create_session", "post_auth_message_response", "cancel_session"],
            )
            self.assertEqual(dispatcher.sent, 3)
            self.assertEqual(listener.received, 3)
            dispatcher_task.cancel()
            await transport.close()
            await asyncio.wait_for(listener_task, 1)
            await asyncio.gather(dispatcher_task, return_exceptions=True)

    async def test_listener_stops_when_daemon_hangs_up(self):
        async with FakeGreetd(lambda request: None) as daemon:
            transport = await connect(daemon.path)
            read_half, write_half = transport.split()
            listener = ResponseListener(read_half, asyncio.Queue())

            await RequestDispatcher(write_half, asyncio.Queue()).send(CreateSession("alice"))
            await asyncio.wait_for(listener.run(), 1)
            self.assertEqual(listener.received, 0)
            await transport.close()

    async def test_listener_surfaces_decode_errors(self):
        garbage = struct.pack("=I", 7) + b"garbage"

        async with FakeGreetd(lambda request: garbage) as daemon:
            transport = await connect(daemon.path)
            read_half, write_half = transport.split()
            listener = ResponseListener(read_half, asyncio.Queue())

            await RequestDispatcher(write_half, asyncio.Queue()).send(CreateSession("alice"))
            with self.assertRaises(ProtocolDecodeError):
                await asyncio.wait_for(listener.run(), 1)
            await transport.close()

    async def test_dispatcher_after_close_raises(self):
        async with FakeGreetd(lambda request: Success()) as daemon:
            transport = await connect(daemon.path)
            _, write_half = transport.split()
            dispatcher = RequestDispatcher(write_half, asyncio.Queue())
            await transport.close()

            with self.assertRaises(ConnectionLost):
                await dispatcher.send(CreateSession("alice"))
            with self.assertRaises(ConnectionLost):
                await dispatcher.send(CancelSession())
            self.assertEqual(dispatcher.sent, 0)


if __name__ == "__main__":
    unittest.main()
