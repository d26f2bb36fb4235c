from __future__ import annotations

from rich.console import Console
from rich.text import Text
from rich.theme import Theme

THEME = Theme(
    {
        "prompt.number": "cyan",
        "debug": "bright_black",
        "error": "bright_red",
        "warning": "dim magenta",
        "success": "bright_green",
        "status": "dim green",
        "dim": "bright_black",
    }
)


def make_console(**kwargs) -> Console:
    return Console(theme=THEME, **kwargs)


def styled(text: str, style: str) -> Text:
    # Text, not markup: tool output and paths may contain "[...]".
    return Text(text, style=style)


def color_debug(text: str) -> Text:
    return styled(text, "debug")


def color_error(text: str) -> Text:
    return styled(text, "error")


def color_warning(text: str) -> Text:
    return styled(text, "warning")


def color_success(text: str) -> Text:
    return styled(text, "success")


def color_status(text: str) -> Text:
    return styled(text, "status")
