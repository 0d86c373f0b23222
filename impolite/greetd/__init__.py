"""Client side of the greetd IPC protocol.

Architecture:
- protocol: Request/Response types and the length-prefixed JSON codec
- transport: Unix/TCP stream connection split into read and write halves,
  plus a null transport for running without a daemon
- dispatcher: RequestDispatcher writes queued requests one at a time
- listener: ResponseListener decodes frames into responses
- errors: typed failures (connection, framing, decoding, authentication)
"""

from impolite.greetd.dispatcher import RequestDispatcher
from impolite.greetd.errors import (
    AuthenticationFailure,
    ConnectionLost,
    ConnectionUnavailable,
    DaemonConnectionError,
    GreetdError,
    MalformedFrame,
    ProtocolDecodeError,
    ProtocolViolation,
)
from impolite.greetd.listener import ResponseListener
from impolite.greetd.protocol import (
    AuthMessage,
    AuthMessageKind,
    CancelSession,
    CreateSession,
    Error,
    ErrorKind,
    PostAuthMessageResponse,
    StartSession,
    Success,
    decode,
    encode,
    read_frame,
)
from impolite.greetd.transport import NullTransport, Transport, connect, open_transport

__all__ = [
    "AuthMessage",
    "AuthMessageKind",
    "AuthenticationFailure",
    "CancelSession",
    "ConnectionLost",
    "ConnectionUnavailable",
    "CreateSession",
    "DaemonConnectionError",
    "Error",
    "ErrorKind",
    "GreetdError",
    "MalformedFrame",
    "NullTransport",
    "PostAuthMessageResponse",
    "ProtocolDecodeError",
    "ProtocolViolation",
    "RequestDispatcher",
    "ResponseListener",
    "StartSession",
    "Success",
    "Transport",
    "connect",
    "decode",
    "encode",
    "open_transport",
    "read_frame",
]
