"""Greeter driver: owns the event loop and the authentication state machine.

The response listener and request dispatcher run as background tasks and
only talk to the driver through two unbounded queues. The driver is the
single owner of the AuthStateMachine; it feeds it responses, asks the
user for input when the machine is waiting on the caller, and stops once
greetd has accepted ``start_session``.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from impolite.core.auth import Action, AuthStateMachine, Phase
from impolite.core.configs import GreeterConfig
from impolite.core.sessions import SessionEntry, list_sessions
from impolite.greetd.dispatcher import RequestDispatcher
from impolite.greetd.errors import (
    AuthenticationFailure,
    ConnectionLost,
    DaemonConnectionError,
)
from impolite.greetd.listener import ResponseListener
from impolite.greetd.protocol import AuthMessage, Response
from impolite.greetd.transport import AnyTransport, open_transport

logger = logging.getLogger(__name__)

CANCEL_FLUSH_TIMEOUT = 1.0


class TooManyAttempts(AuthenticationFailure):
    """Raised after ``max_attempts`` consecutive authentication failures."""


class Greeter:
    """
    Runs login attempts until a session has been started.

    Usage:
        greeter = Greeter(config, PromptManager(), UIManager())
        command = asyncio.run(greeter.run())
    """

    def __init__(
        self,
        config: GreeterConfig,
        prompts,
        ui,
        session_lister: Callable[..., List[SessionEntry]] = list_sessions,
    ):
        """
        Args:
            config: Effective greeter configuration
            prompts: Input source (see impolite.ui.prompts.PromptManager)
            ui: Output sink (see impolite.ui.output.UIManager)
            session_lister: Returns sessions offered once authenticated
        """
        self.config = config
        self.prompts = prompts
        self.ui = ui
        self.session_lister = session_lister

        self.machine: Optional[AuthStateMachine] = None
        self.transport: Optional[AnyTransport] = None
        self._inbox: "asyncio.Queue[Response]" = asyncio.Queue()
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._listener_task: Optional[asyncio.Task] = None
        self._dispatcher_task: Optional[asyncio.Task] = None

    async def run(self) -> List[str]:
        """
        Connect to greetd and log a user in.

        Returns:
            The command greetd agreed to start

        Raises:
            ConnectionUnavailable: If greetd is unreachable outside debug mode
            DaemonConnectionError: If the connection drops mid-attempt
            MalformedFrame / ProtocolDecodeError: If greetd sends garbage
            TooManyAttempts: After max_attempts failed logins
            KeyboardInterrupt / EOFError: If the user aborts at a prompt
        """
        self.transport = await open_transport(self.config)
        if not self.transport.present:
            self.ui.warning("Login service not available - running without connection")

        read_half, write_half = self.transport.split()
        listener = ResponseListener(read_half, self._inbox)
        dispatcher = RequestDispatcher(write_half, self._outbox)
        self.machine = AuthStateMachine(self._outbox, online=self.transport.present)

        self._listener_task = asyncio.create_task(listener.run())
        self._dispatcher_task = asyncio.create_task(dispatcher.run())
        try:
            return await self._login_loop()
        except (KeyboardInterrupt, EOFError):
            await self._cancel_attempt()
            raise
        finally:
            await self._shutdown()

    async def _login_loop(self) -> List[str]:
        failures = 0
        while True:
            username = await self.prompts.ask_username()
            self.machine.begin_login(username)

            command = await self._drive_attempt()
            if command is not None:
                return command

            failure = self.machine.session.failure
            if isinstance(failure, DaemonConnectionError):
                self.ui.error(self.machine.failure_reason)
                raise failure

            failures += 1
            self.ui.error(self.machine.failure_reason or "Login failed")
            if failures >= self.config.max_attempts:
                if self.machine.release():
                    await self._flush_outbox()
                raise TooManyAttempts(
                    f"Giving up after {failures} failed login attempts"
                )

    async def _drive_attempt(self) -> Optional[List[str]]:
        """Advance one attempt until it starts a session or fails."""
        machine = self.machine
        while True:
            if machine.phase is Phase.FAILED:
                return None
            if machine.phase is Phase.IDLE:
                if machine.started_command is not None:
                    self.ui.success(f"Starting {' '.join(machine.started_command)}")
                    return machine.started_command
                # Cancelled underneath us; start over
                return None

            if machine.phase is Phase.AWAITING_AUTH_RESPONSE and machine.pending_prompt is not None:
                value = await self.prompts.ask_auth_value(machine.pending_prompt)
                machine.supply_auth_value(value)
                continue
            if machine.phase is Phase.READY_TO_START_SESSION and machine.in_flight is None:
                await self._choose_session()
                continue

            try:
                response = await self._next_response()
            except DaemonConnectionError as e:
                logger.warning(f"Lost greetd connection: {e}")
                machine.connection_lost(e)
                continue

            action = machine.handle_response(response)
            if action is Action.ACKNOWLEDGE and isinstance(response, AuthMessage):
                self.ui.notice(response)
            elif action is Action.NONE and machine.phase is Phase.READY_TO_START_SESSION:
                self.ui.success("Authenticated")

    async def _choose_session(self) -> None:
        entries = self.session_lister(self.config.session_dirs)
        if not entries and not self.config.default_command:
            self.ui.warning("No desktop sessions found; enter a command to run")
        command, env = await self.prompts.choose_session(
            entries, self.config.default_command
        )
        self.machine.choose_session(command, list(self.config.default_env) + list(env))

    async def _next_response(self) -> Response:
        """
        Wait for the next response, or for a background task to die.

        Raises:
            ConnectionLost: If greetd closed the connection or a write failed
            MalformedFrame / ProtocolDecodeError: Propagated from the listener
        """
        getter = asyncio.ensure_future(self._inbox.get())
        tasks = {self._listener_task, self._dispatcher_task}
        try:
            done, _ = await asyncio.wait({getter, *tasks}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not getter.done():
                getter.cancel()
        if getter in done:
            return getter.result()

        for task in done:
            error = task.exception()
            if error is not None:
                raise error
        raise ConnectionLost("greetd closed the connection")

    async def _cancel_attempt(self) -> None:
        """Best-effort cancel_session when the user aborts mid-attempt."""
        if self.machine is None or not self.machine.cancel():
            return
        await self._flush_outbox()

    async def _flush_outbox(self) -> None:
        """Wait until queued requests have been written, within a bound."""
        if not self.transport.present or self._dispatcher_task.done():
            return
        try:
            await asyncio.wait_for(self._outbox.join(), CANCEL_FLUSH_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Timed out sending cancel_session")

    async def _shutdown(self) -> None:
        tasks = [t for t in (self._listener_task, self._dispatcher_task) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self.transport is not None:
            await self.transport.close()
