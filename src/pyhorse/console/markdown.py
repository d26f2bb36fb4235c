from __future__ import annotations

from rich.console import Console
from rich.errors import MarkupError
from rich.markdown import Markdown


def render_markdown(console: Console, text: str) -> bool:
    """Render ``text`` as markdown; fall back to plain text if that fails.

    Returns False when the fallback was used.
    """
    try:
        console.print()
        console.print(Markdown(text))
        console.print()
        return True
    except (MarkupError, ValueError, TypeError, IndexError, KeyError):
        console.print(text, markup=False, highlight=False, emoji=False)
        console.print()
        return False
