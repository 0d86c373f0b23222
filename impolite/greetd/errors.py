"""Exception hierarchy for the greetd client.

All greetd-specific exceptions inherit from :class:`GreetdError` so that
callers can catch a single base class when they do not care about the
specific failure mode.
"""

from typing import Optional


class GreetdError(Exception):
    """Base exception for all greetd client operations."""


class DaemonConnectionError(GreetdError):
    """Raised when the greetd socket cannot be used.

    This is distinct from the built-in :class:`ConnectionError` so callers
    can tell a missing login service apart from OS-level socket errors.
    """

    user_message = "cannot reach login service"


class ConnectionUnavailable(DaemonConnectionError):
    """Raised when the daemon address is missing, malformed or unreachable."""


class ConnectionLost(DaemonConnectionError):
    """Raised when an established connection ends or a write fails."""


class MalformedFrame(GreetdError):
    """Raised when a frame cannot be assembled or is not valid UTF-8."""


class ProtocolDecodeError(GreetdError):
    """Raised when a payload is UTF-8 but matches no known response shape."""


class ProtocolViolation(GreetdError):
    """A well-formed message arrived in a phase that does not expect it.

    The state machine records and logs these instead of raising them.
    """

    def __init__(self, phase: str, response: object) -> None:
        self.phase = phase
        self.response = response
        super().__init__(f"unexpected {response!r} while {phase}")


class AuthenticationFailure(GreetdError):
    """The daemon answered a request with an ``error`` response.

    ``str()`` of the exception is the daemon's description, verbatim.
    """

    def __init__(self, description: str, error_type: Optional[str] = None) -> None:
        self.description = description
        self.error_type = error_type
        super().__init__(description)
