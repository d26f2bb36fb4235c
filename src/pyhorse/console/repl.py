from __future__ import annotations

from rich.text import Text

from ..app_context import AppContext
from ..llm.openai_compat import ProviderError
from ..runner import run_agent_once
from ..usage import UsageStats, format_token_count
from .colors import color_error, color_status, color_success
from .markdown import render_markdown

EXIT_WORDS = {"exit", "quit"}


def format_prompt(usage: UsageStats) -> Text:
    """``in 1.2k (300 cached), out 450> `` with the numbers highlighted."""
    t = Text()
    t.append("in ", style="dim")
    t.append(format_token_count(usage.input_tokens), style="prompt.number")
    if usage.cached_input_tokens > 0:
        t.append(" (", style="dim")
        t.append(format_token_count(usage.cached_input_tokens), style="prompt.number")
        t.append(" cached)", style="dim")
    t.append(", out ", style="dim")
    t.append(format_token_count(usage.output_tokens), style="prompt.number")
    t.append("> ")
    return t


def run_repl(ctx: AppContext) -> None:
    console = ctx.console
    console.print(color_success(">> Ready! Type your queries (Ctrl+C or Ctrl+D to exit)"))
    console.print()

    while True:
        try:
            user = console.input(format_prompt(ctx.usage.snapshot()))
        except (EOFError, KeyboardInterrupt):
            console.print()
            console.print(color_status(">> Goodbye!"))
            break

        query = user.strip()
        if not query:
            continue
        if query.lower() in EXIT_WORDS:
            console.print(color_status(">> Goodbye!"))
            break

        try:
            answer = run_agent_once(ctx, query)
        except ProviderError as e:
            ctx.progress.print(color_error(f">> Error: {e}\n"))
            continue
        except KeyboardInterrupt:
            # Cancels the pending call (and its child process) but keeps the session.
            ctx.progress.print(color_error(">> Interrupted\n"))
            continue
        render_markdown(console, answer)
