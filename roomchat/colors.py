"""Per-user colours for chat lines shown in a terminal."""

from __future__ import annotations

from roomchat.protocol import BUFFER_SIZE

RESET = "\x1b[0m"
RED = "\x1b[31m"
GREEN = "\x1b[32m"
YELLOW = "\x1b[33m"
BLUE = "\x1b[34m"
MAGENTA = "\x1b[35m"
CYAN = "\x1b[36m"
BRIGHT_RED = "\x1b[91m"
BRIGHT_GREEN = "\x1b[92m"
BRIGHT_YELLOW = "\x1b[93m"
BRIGHT_BLUE = "\x1b[94m"
BRIGHT_MAGENTA = "\x1b[95m"
BRIGHT_CYAN = "\x1b[96m"

PALETTE = (
    RED,
    GREEN,
    YELLOW,
    BLUE,
    MAGENTA,
    CYAN,
    BRIGHT_RED,
    BRIGHT_GREEN,
    BRIGHT_YELLOW,
    BRIGHT_BLUE,
    BRIGHT_MAGENTA,
    BRIGHT_CYAN,
)
MAX_USERS = 100


class ColorPicker:
    """Hands out palette colours to user names, one fixed colour per name."""

    def __init__(self) -> None:
        self._colors: dict[str, str] = {}

    def color_for(self, name: str) -> str:
        """Return the colour of ``name``, assigning the next one on first sight.

        Once ``MAX_USERS`` names have colours, new names get the reset code.
        """
        color = self._colors.get(name)
        if color is not None:
            return color
        if len(self._colors) >= MAX_USERS:
            return RESET
        color = PALETTE[len(self._colors) % len(PALETTE)]
        self._colors[name] = color
        return color


def colorize_message(message: str, picker: ColorPicker) -> str:
    """Colour a ``[name] text`` line by its name; other lines pass unchanged.

    A coloured line is cut at its first newline.
    """
    start = message.find("[")
    end = message.find("]")
    if start < 0 or end < 0 or end <= start:
        return message
    color = picker.color_for(message[start + 1 : end])
    line = message[:BUFFER_SIZE].split("\n", 1)[0]
    return f"{color}{line}{RESET}"