"""Authentication state machine for a greetd login attempt.

The same ``success`` response means different things depending on what
was asked: after ``create_session`` it means no credentials are needed,
after a prompt answer it means the user is authenticated, and after
``start_session`` it means the session is launching. The machine
therefore tracks its own phase and interprets every response through
:func:`transition`, a total function over (phase, response kind).

Only one request is ever in flight. Responses are matched to requests
purely by arrival order, so anything but an error arriving with nothing
outstanding is a protocol violation and is ignored.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, List, NamedTuple, Optional, Sequence

from impolite.greetd.errors import (
    AuthenticationFailure,
    DaemonConnectionError,
    GreetdError,
    ProtocolViolation,
)
from impolite.greetd.protocol import (
    AuthMessage,
    AuthMessageKind,
    CancelSession,
    CreateSession,
    Error,
    PostAuthMessageResponse,
    Request,
    Response,
    StartSession,
    Success,
)

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    IDLE = "idle"
    AWAITING_SESSION_CREATION = "awaiting_session_creation"
    AWAITING_AUTH_RESPONSE = "awaiting_auth_response"
    AWAITING_LOGIN_RESULT = "awaiting_login_result"
    READY_TO_START_SESSION = "ready_to_start_session"
    FAILED = "failed"


class Action(Enum):
    """What the machine must do after a transition."""

    NONE = "none"
    ANSWER_PROMPT = "answer_prompt"
    ACKNOWLEDGE = "acknowledge"
    FAIL = "fail"
    SESSION_STARTED = "session_started"
    VIOLATION = "violation"


class Transition(NamedTuple):
    phase: Phase
    action: Action


AUTHENTICATING = frozenset(
    {
        Phase.AWAITING_SESSION_CREATION,
        Phase.AWAITING_AUTH_RESPONSE,
        Phase.AWAITING_LOGIN_RESULT,
    }
)


def transition(phase: Phase, response: Response) -> Transition:
    """
    Decide the next phase and action for an inbound response.

    Defined for every phase and every response variant; combinations the
    protocol never produces map to ``Action.VIOLATION`` and keep the
    current phase.
    """
    if phase is Phase.IDLE:
        return Transition(Phase.IDLE, Action.NONE)
    if phase is Phase.FAILED:
        return Transition(Phase.FAILED, Action.VIOLATION)

    if isinstance(response, Error):
        return Transition(Phase.FAILED, Action.FAIL)

    if phase is Phase.READY_TO_START_SESSION:
        if isinstance(response, Success):
            return Transition(Phase.IDLE, Action.SESSION_STARTED)
        return Transition(phase, Action.VIOLATION)

    if phase in AUTHENTICATING:
        if isinstance(response, Success):
            return Transition(Phase.READY_TO_START_SESSION, Action.NONE)
        if isinstance(response, AuthMessage):
            if response.auth_message_type.is_prompt:
                return Transition(Phase.AWAITING_AUTH_RESPONSE, Action.ANSWER_PROMPT)
            return Transition(phase, Action.ACKNOWLEDGE)
    return Transition(phase, Action.VIOLATION)


@dataclass
class AuthSession:
    """State of one login attempt, owned by the state machine."""

    phase: Phase = Phase.IDLE
    username: Optional[str] = None
    secret: Optional[str] = field(default=None, repr=False)
    last_response: Optional[Response] = None
    pending_prompt: Optional[AuthMessage] = None
    failure: Optional[GreetdError] = None
    notices: List[AuthMessage] = field(default_factory=list)
    violations: List[ProtocolViolation] = field(default_factory=list)


class AuthStateMachine:
    """
    Drives a login attempt from ``IDLE`` to a started session.

    Intent API (called by the front-end):
        begin_login, supply_auth_value, choose_session, cancel, release

    Observation API:
        phase, last_response, pending_prompt, failure_reason, started_command

    Requests are pushed onto ``outbox`` (anything with ``put_nowait``),
    responses are fed in through :meth:`handle_response`. With
    ``online=False`` (no daemon) requests are queued without waiting for
    answers, since none will ever come.
    """

    def __init__(self, outbox, online: bool = True):
        self.outbox = outbox
        self.online = online
        self.session = AuthSession()
        self.started_command: Optional[List[str]] = None

        self._in_flight: Optional[Request] = None
        self._backlog: Deque[Request] = deque()
        self._discard_current = False
        self._attempt_sent = False
        self._pending_command: Optional[List[str]] = None

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def phase(self) -> Phase:
        return self.session.phase

    @property
    def last_response(self) -> Optional[Response]:
        return self.session.last_response

    @property
    def pending_prompt(self) -> Optional[AuthMessage]:
        return self.session.pending_prompt

    @property
    def in_flight(self) -> Optional[Request]:
        return self._in_flight

    @property
    def failure_reason(self) -> Optional[str]:
        """Daemon description for auth failures, a generic text for lost connections."""
        failure = self.session.failure
        if failure is None:
            return None
        if isinstance(failure, DaemonConnectionError):
            return failure.user_message
        return str(failure)

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def begin_login(self, username: str, secret: Optional[str] = None) -> bool:
        """
        Start an attempt by sending ``create_session``.

        Allowed from ``IDLE`` and ``FAILED``. A daemon-side session left
        over from a failed attempt is cancelled first.

        Args:
            username: Account to authenticate
            secret: Optional secret answered to the first secret prompt

        Returns:
            True if the request was queued
        """
        if self.phase not in (Phase.IDLE, Phase.FAILED):
            logger.warning(f"Cannot begin login while {self.phase.value}")
            return False

        if self._attempt_sent:
            self._submit(CancelSession())
        last_response = self.session.last_response
        self.session = AuthSession(
            username=username,
            secret=secret,
            last_response=last_response,
        )
        self.started_command = None
        self._attempt_sent = False
        self._set_phase(Phase.AWAITING_SESSION_CREATION)
        self._submit(CreateSession(username=username))
        return True

    def supply_auth_value(self, value: Optional[str]) -> bool:
        """
        Answer the pending secret or visible prompt.

        Returns:
            False if no prompt is waiting for an answer
        """
        if self.session.pending_prompt is None:
            logger.warning(f"No prompt awaiting an answer while {self.phase.value}")
            return False

        self.session.pending_prompt = None
        self._set_phase(Phase.AWAITING_LOGIN_RESULT)
        self._submit(PostAuthMessageResponse(response=value))
        return True

    def choose_session(self, command: Sequence[str], env: Sequence[str] = ()) -> bool:
        """
        Ask greetd to start the chosen session.

        Only valid once authenticated and while nothing is outstanding.
        """
        if self.phase is not Phase.READY_TO_START_SESSION or self._in_flight is not None:
            logger.warning(f"Cannot start a session while {self.phase.value}")
            return False
        if not command:
            logger.warning("Refusing to start a session with an empty command")
            return False

        self._pending_command = list(command)
        self._submit(StartSession(command=list(command), env=list(env)))
        return True

    def cancel(self) -> bool:
        """
        Abandon the attempt and return to ``IDLE`` immediately.

        The outstanding response, if any, and the acknowledgement of the
        ``cancel_session`` request are discarded when they arrive.
        """
        if self.phase in (Phase.IDLE, Phase.FAILED):
            logger.warning(f"Nothing to cancel while {self.phase.value}")
            return False

        # Unsent requests of this attempt never reach greetd
        self._backlog = deque(r for r in self._backlog if isinstance(r, CancelSession))
        if self._attempt_sent:
            if self._in_flight is not None and not isinstance(self._in_flight, CancelSession):
                self._discard_current = True
            self._submit(CancelSession())

        self._reset()
        return True

    def release(self) -> bool:
        """
        Send ``cancel_session`` for the daemon session a failed attempt left behind.

        The phase stays ``FAILED`` and the failure reason is kept. A later
        ``begin_login`` does not cancel a second time.

        Returns:
            False unless the machine is ``FAILED`` with a session on greetd
        """
        if self.phase is not Phase.FAILED or not self._attempt_sent:
            return False
        self._attempt_sent = False
        self._submit(CancelSession())
        return True

    # ------------------------------------------------------------------
    # Inputs from the transport side
    # ------------------------------------------------------------------

    def handle_response(self, response: Response) -> Action:
        """
        Feed one decoded response into the machine.

        Never raises for unexpected input; violations are logged and
        recorded on the session.

        Returns:
            The action taken
        """
        if self.online:
            if self._in_flight is None:
                if self.phase is Phase.IDLE:
                    logger.debug(f"Ignoring {response!r} with no attempt in progress")
                    return Action.NONE
                if not isinstance(response, Error) or self.phase is Phase.FAILED:
                    self._record_violation(response)
                    return Action.VIOLATION
                # greetd errors end the attempt even when unsolicited
                logger.warning(f"Unsolicited error from greetd while {self.phase.value}")
                return self._apply(response)

            answered = self._in_flight
            self._in_flight = None
            discard = self._discard_current or isinstance(answered, CancelSession)
            self._discard_current = False
            if discard:
                logger.debug(f"Discarding {response!r} to abandoned {answered.type}")
                self._pump()
                return Action.NONE

        return self._apply(response)

    def connection_lost(self, error: DaemonConnectionError) -> None:
        """Surface a dropped daemon connection as a failed attempt."""
        self._in_flight = None
        self._backlog.clear()
        self._discard_current = False
        self._attempt_sent = False
        if self.phase in (Phase.IDLE, Phase.FAILED):
            return
        self.session.failure = error
        self.session.pending_prompt = None
        self._set_phase(Phase.FAILED)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(self, response: Response) -> Action:
        self.session.last_response = response
        next_phase, action = transition(self.phase, response)

        if action is Action.VIOLATION:
            self._record_violation(response)
        elif action is Action.FAIL:
            self.session.failure = AuthenticationFailure(
                response.description, response.error_type.value
            )
            self.session.pending_prompt = None
            self._pending_command = None
            logger.info(f"Login attempt failed: {response.description}")
            self._set_phase(next_phase)
        elif action is Action.SESSION_STARTED:
            self.started_command = self._pending_command
            self._pending_command = None
            self._reset()
            logger.info(f"Session started: {self.started_command}")
        elif action is Action.ANSWER_PROMPT:
            self.session.pending_prompt = response
            self._set_phase(next_phase)
            captured = self._captured_value(response)
            if captured is not None:
                self.supply_auth_value(captured)
        elif action is Action.ACKNOWLEDGE:
            self.session.notices.append(response)
            self._set_phase(next_phase)
            self._submit(PostAuthMessageResponse(response=None))
        else:
            self._set_phase(next_phase)

        self._pump()
        return action

    def _captured_value(self, prompt: AuthMessage) -> Optional[str]:
        if prompt.auth_message_type is AuthMessageKind.SECRET and self.session.secret is not None:
            value, self.session.secret = self.session.secret, None
            return value
        return None

    def _record_violation(self, response: Response) -> None:
        violation = ProtocolViolation(self.phase.value, response)
        self.session.violations.append(violation)
        logger.warning(f"Protocol violation: {violation}")

    def _set_phase(self, phase: Phase) -> None:
        if phase is not self.session.phase:
            logger.debug(f"Phase {self.session.phase.value} -> {phase.value}")
        self.session.phase = phase

    def _reset(self) -> None:
        self.session = AuthSession(last_response=self.session.last_response)
        self._attempt_sent = False
        self._pending_command = None

    def _submit(self, request: Request) -> None:
        if self.online and self._in_flight is not None:
            self._backlog.append(request)
            return
        self._put(request)

    def _pump(self) -> None:
        if self._in_flight is None and self._backlog:
            self._put(self._backlog.popleft())

    def _put(self, request: Request) -> None:
        if self.online:
            self._in_flight = request
        if not isinstance(request, CancelSession):
            self._attempt_sent = True
        self.outbox.put_nowait(request)
