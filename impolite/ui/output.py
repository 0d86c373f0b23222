"""
UI output management with color-coded terminal output.
Status lines only; the greeter does not draw a full-screen interface.
"""

import sys
from typing import Optional, TextIO

from impolite.greetd.protocol import AuthMessage, AuthMessageKind


TEXT_COLOR_MAPPING = {
    "blue": "36;1",
    "yellow": "33;1",
    "green": "32;1",
    "red": "31;1",
    "gray": "90",
}


def get_colored_text(text: str, color: str) -> str:
    """
    Get colored text.

    Raises:
        ValueError: If the specified color is not supported
    """
    if color not in TEXT_COLOR_MAPPING:
        raise ValueError(
            f"Unsupported color: {color}. Available colors: {', '.join(TEXT_COLOR_MAPPING.keys())}"
        )

    color_str = TEXT_COLOR_MAPPING[color]
    return f"\u001b[{color_str}m{text}\u001b[0m"


class UIManager:
    """Manages colored terminal output for the greeter."""

    def __init__(self, file: Optional[TextIO] = None, color: Optional[bool] = None):
        """
        Args:
            file: Stream to write to (default: stdout)
            color: Force colors on/off; default is on for terminals
        """
        self.file = file
        self.color = color

    def success(self, message: str) -> None:
        """Print success message in green."""
        self._print_colored(message, "green")

    def error(self, message: str) -> None:
        """Print error message in red."""
        self._print_colored(message, "red")

    def warning(self, message: str) -> None:
        """Print warning message in yellow."""
        self._print_colored(message, "yellow")

    def info(self, message: str) -> None:
        """Print info message in blue."""
        self._print_colored(message, "blue")

    def dim(self, text: str) -> None:
        """Print dimmed text in gray."""
        self._print_colored(text, "gray")

    def notice(self, message: AuthMessage) -> None:
        """Show a non-interactive PAM message (info or error)."""
        text = message.auth_message.rstrip()
        if not text:
            return
        if message.auth_message_type is AuthMessageKind.ERROR:
            self.error(text)
        else:
            self.info(text)

    def _use_color(self) -> bool:
        if self.color is not None:
            return self.color
        stream = self.file or sys.stdout
        return hasattr(stream, "isatty") and stream.isatty()

    def _print_colored(self, text: str, color: str, end: str = "\n") -> None:
        if self._use_color():
            try:
                text = get_colored_text(text, color)
            except ValueError:
                # Fall back to plain text if color is invalid
                pass
        print(text, end=end, file=self.file or sys.stdout)
        if self.file:
            self.file.flush()
