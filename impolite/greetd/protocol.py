"""Length-prefixed JSON protocol spoken by greetd.

Every message on the socket is one frame:

    +----------------------+------------------------------+
    | u32 length (native)  | <length> bytes of UTF-8 JSON |
    +----------------------+------------------------------+

The JSON body is an object tagged by its ``type`` key:

Requests (greeter -> greetd):
    {"type": "create_session", "username": str}
    {"type": "post_auth_message_response", "response": str | null}
    {"type": "start_session", "command": [str], "env": [str]}
    {"type": "cancel_session"}

Responses (greetd -> greeter):
    {"type": "success"}
    {"type": "error", "error_type": "auth_error" | "error", "description": str}
    {"type": "auth_message",
     "auth_message_type": "visible" | "secret" | "info" | "error",
     "auth_message": str}

The length prefix uses the host byte order, like greetd itself.
"""

import json
import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from impolite.greetd.errors import (
    ConnectionLost,
    MalformedFrame,
    ProtocolDecodeError,
)

HEADER = struct.Struct("=I")
HEADER_SIZE = HEADER.size
MAX_FRAME_SIZE = 1024 * 1024  # 1 MiB


class AuthMessageKind(str, Enum):
    """Whether a prompt needs an echoed, masked or no answer."""

    VISIBLE = "visible"
    SECRET = "secret"
    INFO = "info"
    ERROR = "error"

    @property
    def is_prompt(self) -> bool:
        return self in (AuthMessageKind.VISIBLE, AuthMessageKind.SECRET)


class ErrorKind(str, Enum):
    AUTH_ERROR = "auth_error"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CreateSession:
    """Begin authentication for a user."""
    username: str

    type = "create_session"


@dataclass(frozen=True)
class PostAuthMessageResponse:
    """Answer the pending prompt; ``None`` acknowledges a notice."""
    response: Optional[str] = None

    type = "post_auth_message_response"


@dataclass(frozen=True)
class StartSession:
    """Launch the authenticated session."""
    command: List[str] = field(default_factory=list)
    env: List[str] = field(default_factory=list)

    type = "start_session"


@dataclass(frozen=True)
class CancelSession:
    """Abort the attempt in progress."""

    type = "cancel_session"


Request = Union[CreateSession, PostAuthMessageResponse, StartSession, CancelSession]


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Success:
    type = "success"


@dataclass(frozen=True)
class Error:
    error_type: ErrorKind
    description: str

    type = "error"


@dataclass(frozen=True)
class AuthMessage:
    auth_message_type: AuthMessageKind
    auth_message: str

    type = "auth_message"


Response = Union[Success, Error, AuthMessage]


def request_to_dict(request: Request) -> Dict[str, Any]:
    """
    Build the JSON object for a request.

    The ``type`` tag always comes first, followed by the fields in the
    order they are declared.

    Args:
        request: Any request variant

    Returns:
        JSON-serialisable dictionary
    """
    if isinstance(request, CreateSession):
        return {"type": request.type, "username": request.username}
    if isinstance(request, PostAuthMessageResponse):
        return {"type": request.type, "response": request.response}
    if isinstance(request, StartSession):
        return {
            "type": request.type,
            "command": list(request.command),
            "env": list(request.env),
        }
    if isinstance(request, CancelSession):
        return {"type": request.type}
    raise TypeError(f"Not a greetd request: {request!r}")


def response_to_dict(response: Response) -> Dict[str, Any]:
    """Build the JSON object for a response (used by tests and fake daemons)."""
    if isinstance(response, Success):
        return {"type": response.type}
    if isinstance(response, Error):
        return {
            "type": response.type,
            "error_type": response.error_type.value,
            "description": response.description,
        }
    if isinstance(response, AuthMessage):
        return {
            "type": response.type,
            "auth_message_type": response.auth_message_type.value,
            "auth_message": response.auth_message,
        }
    raise TypeError(f"Not a greetd response: {response!r}")


def _require_str(obj: Dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str):
        raise ProtocolDecodeError(
            f"Field '{key}' must be a string in {obj.get('type')!r} message"
        )
    return value


def response_from_dict(obj: Any) -> Response:
    """
    Convert a parsed JSON value into a response.

    Unknown keys are ignored; everything else must match exactly.

    Raises:
        ProtocolDecodeError: If the value matches no response shape
    """
    if not isinstance(obj, dict):
        raise ProtocolDecodeError(f"Expected a JSON object, got {type(obj).__name__}")

    kind = obj.get("type")
    if kind == Success.type:
        return Success()
    if kind == Error.type:
        try:
            error_type = ErrorKind(_require_str(obj, "error_type"))
        except ValueError as e:
            raise ProtocolDecodeError(f"Unknown error_type: {obj['error_type']!r}") from e
        return Error(error_type=error_type, description=_require_str(obj, "description"))
    if kind == AuthMessage.type:
        try:
            message_type = AuthMessageKind(_require_str(obj, "auth_message_type"))
        except ValueError as e:
            raise ProtocolDecodeError(
                f"Unknown auth_message_type: {obj['auth_message_type']!r}"
            ) from e
        return AuthMessage(
            auth_message_type=message_type,
            auth_message=_require_str(obj, "auth_message"),
        )
    raise ProtocolDecodeError(f"Unknown response type: {kind!r}")


def encode_payload(request: Request) -> bytes:
    """Serialize a request body to compact UTF-8 JSON (no length prefix)."""
    return json.dumps(
        request_to_dict(request),
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def encode(request: Request) -> bytes:
    """
    Serialize a request to a complete frame for socket transmission.

    Args:
        request: Request to send

    Returns:
        Length prefix followed by the UTF-8 JSON payload
    """
    payload = encode_payload(request)
    return HEADER.pack(len(payload)) + payload


def decode_payload(payload: bytes) -> Response:
    """
    Deserialize a frame body.

    Raises:
        MalformedFrame: If the payload is not valid UTF-8
        ProtocolDecodeError: If the text is not a known response
    """
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedFrame(f"Frame payload is not valid UTF-8: {e}") from e

    try:
        obj = json.loads(text)
    except (ValueError, RecursionError) as e:
        # JSONDecodeError, oversized integer literals and runaway nesting
        raise ProtocolDecodeError(f"Frame payload is not usable JSON: {e}") from e

    return response_from_dict(obj)


def _frame_length(header: bytes) -> int:
    (length,) = HEADER.unpack(header)
    if length > MAX_FRAME_SIZE:
        raise MalformedFrame(f"Frame of {length} bytes exceeds {MAX_FRAME_SIZE}")
    return length


def decode(data: bytes) -> Response:
    """
    Decode exactly one complete frame held in a buffer.

    Raises:
        MalformedFrame: If the buffer is not exactly one frame
        ProtocolDecodeError: If the payload is not a known response
    """
    if len(data) < HEADER_SIZE:
        raise MalformedFrame(f"Frame shorter than its {HEADER_SIZE}-byte header")
    length = _frame_length(data[:HEADER_SIZE])
    payload = data[HEADER_SIZE:]
    if len(payload) != length:
        raise MalformedFrame(
            f"Frame announces {length} payload bytes but holds {len(payload)}"
        )
    return decode_payload(payload)


async def _read_exact(read_half: Any, size: int, at_boundary: bool) -> Optional[bytes]:
    """Read exactly ``size`` bytes, looping over short reads.

    Returns None only when the stream ends before the first byte of a
    frame; ending anywhere else is a lost connection.
    """
    buf = bytearray()
    while len(buf) < size:
        chunk = await read_half.read(size - len(buf))
        if not chunk:
            if at_boundary and not buf:
                return None
            raise ConnectionLost(
                f"Connection closed after {len(buf)} of {size} bytes"
            )
        buf += chunk
    return bytes(buf)


async def read_frame(read_half: Any) -> Optional[Response]:
    """
    Read and decode the next frame from a stream.

    Args:
        read_half: Object with ``async read(n) -> bytes`` that may return
            fewer bytes than requested and ``b""`` at end-of-stream

    Returns:
        The decoded response, or None on a clean end-of-stream

    Raises:
        ConnectionLost: If the stream ends in the middle of a frame
        MalformedFrame: If the frame is oversized or not UTF-8
        ProtocolDecodeError: If the payload is not a known response
    """
    header = await _read_exact(read_half, HEADER_SIZE, at_boundary=True)
    if header is None:
        return None
    length = _frame_length(header)
    payload = await _read_exact(read_half, length, at_boundary=False) if length else b""
    return decode_payload(payload)
