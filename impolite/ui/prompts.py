"""
User prompts for the login flow.
Implemented with prompt_toolkit so they can be awaited inside the
greeter's event loop.
"""

import shlex
from typing import List, Optional, Sequence, Tuple

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.validation import Validator

from impolite.core.sessions import SessionEntry
from impolite.greetd.protocol import AuthMessage, AuthMessageKind


def _not_blank(text: str) -> bool:
    return bool(text.strip())


class PromptManager:
    """
    Collects username, prompt answers and the session choice.

    Ctrl+C and Ctrl+D propagate as KeyboardInterrupt / EOFError so the
    greeter can cancel the attempt.
    """

    def __init__(self) -> None:
        self.username_session = PromptSession(history=InMemoryHistory())
        self.session = PromptSession()

    async def ask_username(self) -> str:
        username = await self.username_session.prompt_async(
            "login: ",
            validator=Validator.from_callable(
                _not_blank, error_message="Username cannot be empty"
            ),
        )
        return username.strip()

    async def ask_auth_value(self, prompt: AuthMessage) -> str:
        """
        Answer a PAM prompt, masking input for secret prompts.

        Args:
            prompt: The pending secret or visible auth message
        """
        message = prompt.auth_message or "Password:"
        if not message.endswith(" "):
            message += " "
        return await self.session.prompt_async(
            message,
            is_password=prompt.auth_message_type is AuthMessageKind.SECRET,
        )

    async def choose_session(
        self,
        entries: Sequence[SessionEntry],
        default_command: Optional[List[str]] = None,
    ) -> Tuple[List[str], List[str]]:
        """
        Let the user pick a session or type a command.

        A number selects a listed session; any other input is treated as a
        command line. Empty input selects the default (configured command,
        or the first listed session).

        Returns:
            (command, env) to send with start_session
        """
        for i, entry in enumerate(entries, start=1):
            print(f"  {i}) {entry.name}")

        if default_command:
            default_label = " ".join(default_command)
        elif entries:
            default_label = entries[0].name
        else:
            default_label = ""

        completer = WordCompleter([e.name for e in entries], sentence=True)
        while True:
            answer = await self.session.prompt_async(
                f"session [{default_label}]: ", completer=completer
            )
            choice = pick_session(answer, entries, default_command)
            if choice is not None:
                return choice
            print("Please choose a listed session or enter a command")


def pick_session(
    answer: str,
    entries: Sequence[SessionEntry],
    default_command: Optional[List[str]] = None,
) -> Optional[Tuple[List[str], List[str]]]:
    """Resolve a session prompt answer to (command, env), or None if invalid."""
    answer = answer.strip()
    if not answer:
        if default_command:
            return list(default_command), []
        if entries:
            return list(entries[0].command), entries[0].env
        return None

    if answer.isdigit():
        index = int(answer) - 1
        if 0 <= index < len(entries):
            return list(entries[index].command), entries[index].env
        return None

    for entry in entries:
        if entry.name.lower() == answer.lower():
            return list(entry.command), entry.env

    try:
        command = shlex.split(answer)
    except ValueError:
        return None
    return (command, []) if command else None
