"""
UI output management with color-coded terminal output.
"""

import sys
from typing import Optional, TextIO


TEXT_COLOR_MAPPING = {
    "blue": "36;1",
    "yellow": "33;1",
    "pink": "38;5;200",
    "green": "32;1",
    "red": "31;1",
    "gray": "90",
}


def get_colored_text(text: str, color: str) -> str:
    """
    Get colored text.

    Args:
        text: The text to color
        color: The color to use

    Returns:
        Colored text string

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
    """Colored terminal output for wb. Errors go to stderr."""

    def __init__(self, color: bool = True):
        self.color = color

    def success(self, message: str) -> None:
        self._print_colored(message, "green")

    def error(self, message: str) -> None:
        self._print_colored(message, "red", file=sys.stderr)

    def warning(self, message: str) -> None:
        self._print_colored(message, "yellow", file=sys.stderr)

    def info(self, message: str) -> None:
        self._print_colored(message, "blue")

    def description(self, text: str) -> None:
        """Print actor descriptions in pink."""
        self._print_colored(text, "pink")

    def dim(self, text: str) -> None:
        self._print_colored(text, "gray")

    def _print_colored(
        self,
        text: str,
        color: str,
        end: str = "\n",
        file: Optional[TextIO] = None
    ) -> None:
        """
        Print text with color highlighting.

        Args:
            text: The text to print
            color: Color to use
            end: String to append at the end
            file: Optional file object to write to
        """
        output = get_colored_text(text, color) if self.color else text
        print(output, end=end, file=file)
        if file:
            file.flush()
