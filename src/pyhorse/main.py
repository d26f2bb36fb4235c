from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import typer
from rich.align import Align
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import __version__
from .app_context import AppContext
from .config.preamble import Preamble
from .console.colors import color_error, make_console
from .console.markdown import render_markdown
from .console.repl import run_repl
from .events.store import EventStore, list_sessions
from .llm.factory import DEFAULT_CONFIG, load_provider_registry
from .llm.openai_compat import ProviderError
from .runner import run_agent_once
from .tools.dispatcher import ToolDispatcher
from .tools.validation import ALLOWED_COMMANDS, FORBIDDEN_OPERATORS, CommandValidator


app = typer.Typer(add_completion=False, help="pyhorse: ask an LLM about a directory through read-only tools.")
console = make_console()


def _resolve_cwd(cwd: Path | None) -> Path:
    cwd = Path(str(cwd or Path.cwd())).expanduser()
    if not cwd.is_absolute():
        cwd = Path.cwd() / cwd
    cwd = cwd.resolve()
    # Tools never write, so the target directory is never created here.
    if not cwd.is_dir():
        raise typer.BadParameter(f"--dir must be an existing directory, got: {cwd}")
    return cwd


def _build_context(
    cwd: Path | None,
    provider: str | None,
    config: Path,
    model: str | None,
    max_turns: int | None,
    behavior_config: Path | None,
    trace: bool | None,
    stream: bool,
) -> tuple[AppContext, Preamble]:
    cwd = _resolve_cwd(cwd)
    try:
        ctx, _, preamble = AppContext.from_env(
            cwd,
            provider,
            config,
            model=model,
            max_turns=max_turns,
            behavior_config=behavior_config,
            trace=trace,
            stream=stream,
            console=console,
        )
    except (FileNotFoundError, ValueError) as e:
        console.print(color_error(f">> Error: {e}"))
        raise typer.Exit(code=2)
    return ctx, preamble


def _print_header(ctx: AppContext, preamble: Preamble) -> None:
    table = Table.grid(padding=(0, 2))
    table.add_row("📁 [bold green]dir[/bold green]", f"[bright_cyan]{ctx.cwd}[/bright_cyan]")
    table.add_row("🆔 [bold green]session[/bold green]", f"[bright_cyan]{ctx.session_id}[/bright_cyan]")
    table.add_row("🧠 [bold green]model[/bold green]", f"[bright_cyan]{ctx.provider.model}[/bright_cyan]")
    table.add_row("📜 [bold green]preamble[/bold green]", f"[bright_cyan]{preamble.source or '(default)'}[/bright_cyan]")
    console.print(
        Align.center(
            Panel(
                table,
                title=f"[bold magenta]pyhorse {__version__}[/bold magenta]",
                border_style="bright_blue",
            )
        )
    )
    if preamble.listing_error:
        console.print(color_error(f">> Directory listing failed: {preamble.listing_error}"))


_DIR_OPT = typer.Option(None, "--dir", "--cwd", "-d", help="Directory the assistant may explore. Defaults to current directory.")
_PROVIDER_OPT = typer.Option(None, "--provider", help="Provider name registered in YAML (optional when only one is configured).")
_CONFIG_OPT = typer.Option(DEFAULT_CONFIG, "--config", help="YAML config path (default: ./pyhorse.yaml).")
_MODEL_OPT = typer.Option(None, "--model", help="Override the provider's model.")
_MAX_TURNS_OPT = typer.Option(None, "--max-turns", help="Max LLM/tool iterations per query.")
_BEHAVIOR_OPT = typer.Option(None, "--behavior-config", help="Optional behavior JSON (pyhorse.json) path.")
_TRACE_OPT = typer.Option(None, "--trace/--no-trace", help="Print tool results in panels.")
_STREAM_OPT = typer.Option(False, "--stream", help="Stream tokens while generating.")


@app.command()
def repl(
    cwd: Path = _DIR_OPT,
    provider: str = _PROVIDER_OPT,
    config: Path = _CONFIG_OPT,
    model: str = _MODEL_OPT,
    max_turns: int = _MAX_TURNS_OPT,
    behavior_config: Path = _BEHAVIOR_OPT,
    trace: bool = _TRACE_OPT,
    stream: bool = _STREAM_OPT,
):
    """Interactive session: ask questions about the directory until Ctrl+C / Ctrl+D."""
    ctx, preamble = _build_context(cwd, provider, config, model, max_turns, behavior_config, trace, stream)
    _print_header(ctx, preamble)
    run_repl(ctx)


@app.command()
def run(
    prompt: str = typer.Option(..., "--prompt", "-p", help="User prompt to run once."),
    cwd: Path = _DIR_OPT,
    provider: str = _PROVIDER_OPT,
    config: Path = _CONFIG_OPT,
    model: str = _MODEL_OPT,
    max_turns: int = _MAX_TURNS_OPT,
    behavior_config: Path = _BEHAVIOR_OPT,
    trace: bool = _TRACE_OPT,
    stream: bool = _STREAM_OPT,
):
    """Answer a single prompt and exit."""
    ctx, preamble = _build_context(cwd, provider, config, model, max_turns, behavior_config, trace, stream)
    _print_header(ctx, preamble)
    console.print(Text.assemble("\n", ("You: ", "bold"), prompt, "\n"))
    try:
        answer = run_agent_once(ctx, prompt)
    except ProviderError as e:
        console.print(color_error(f">> Error: {e}"))
        raise typer.Exit(code=1)
    console.print("\n[bold]Assistant:[/bold]\n")
    render_markdown(console, answer)


@app.command()
def tools(
    cwd: Path = _DIR_OPT,
    as_json: bool = typer.Option(False, "--json", help="Print the OpenAI tool schemas as JSON."),
):
    """Show the tools offered to the model and the bash allow-list."""
    dispatcher = ToolDispatcher(cwd=_resolve_cwd(cwd))
    if as_json:
        console.print_json(json.dumps(dispatcher.tools_openai(), ensure_ascii=False))
        return

    table = Table(title="Tools", show_lines=True)
    table.add_column("name", style="bold cyan")
    table.add_column("parameters")
    table.add_column("description")
    for spec in dispatcher.specs():
        props = spec.parameters.get("properties", {})
        required = set(spec.parameters.get("required", []))
        params = ", ".join(p if p in required else f"{p}?" for p in props)
        table.add_row(spec.name, params, spec.description)
    console.print(table)
    console.print(f"[bold]bash allow-list:[/bold] {', '.join(sorted(ALLOWED_COMMANDS))}")
    console.print(Text.assemble(("forbidden operators: ", "bold"), " ".join(FORBIDDEN_OPERATORS)))


@app.command()
def check(
    command: str = typer.Argument(..., help="Command string to validate (nothing is executed)."),
):
    """Run a bash tool command through the validator without executing it."""
    verdict = CommandValidator().validate(command)
    if verdict.approved:
        console.print("[success]Approved[/success]")
        return
    kind = verdict.kind.value if verdict.kind is not None else "Rejected"
    console.print(Text.assemble(("Rejected ", "error"), (f"({kind}): ", "error"), verdict.message()))
    raise typer.Exit(code=1)


def _session_or_latest(session: str | None) -> str:
    if session:
        return session
    sessions = list_sessions()
    if not sessions:
        console.print(color_error(">> No recorded sessions."))
        raise typer.Exit(code=1)
    return sessions[-1]


@app.command()
def events(
    session: str = typer.Option(None, "--session", help="Session id to inspect (default: most recent)."),
    tail: int = typer.Option(200, "--tail", help="Show last N events."),
):
    """Show recent structured events (LLM calls, tool calls) recorded for a session."""
    session = _session_or_latest(session)
    es = EventStore.open(session)
    evs = list(es.iter_events())
    evs = evs[-tail:] if tail and tail > 0 else evs
    console.print(Panel.fit(f"session: {session}\nfile: {es.path}\nevents: {len(evs)}", title="Events"))
    for e in evs:
        ts = datetime.fromtimestamp(e.ts).strftime("%Y-%m-%d %H:%M:%S")
        body = Text(json.dumps(e.data, ensure_ascii=False, indent=2)[:4000])
        console.print(Panel.fit(body, title=f"{ts}  {e.type}"))


def summarize_events(evs) -> dict:
    llm_res = [e for e in evs if e.type == "llm.response"]
    tool_call = [e for e in evs if e.type == "tool.call"]
    tool_res = [e for e in evs if e.type == "tool.result"]

    def _avg_ms(items):
        vals = []
        for e in items:
            ms = (e.data or {}).get("elapsed_ms")
            if isinstance(ms, (int, float)) and ms >= 0:
                vals.append(float(ms))
        return (sum(vals) / len(vals)) if vals else None

    freq: dict[str, int] = {}
    for e in tool_call:
        t = (e.data or {}).get("tool")
        if t:
            freq[t] = freq.get(t, 0) + 1

    states: dict[str, int] = {}
    for e in tool_res:
        s = (e.data or {}).get("state")
        if s:
            states[s] = states.get(s, 0) + 1

    usage_total = None
    for e in reversed(llm_res):
        usage_total = (e.data or {}).get("usage_total")
        if usage_total:
            break

    return {
        "llm_requests": sum(1 for e in evs if e.type == "llm.request"),
        "llm_responses": len(llm_res),
        "llm_errors": sum(1 for e in evs if e.type == "llm.error"),
        "llm_avg_ms": _avg_ms(llm_res),
        "tool_calls": len(tool_call),
        "tool_results": len(tool_res),
        "tool_rejected": sum(1 for e in evs if e.type == "tool.rejected"),
        "tool_avg_ms": _avg_ms(tool_res),
        "tool_states": states,
        "top_tools": sorted(freq.items(), key=lambda x: x[1], reverse=True),
        "usage_total": usage_total,
    }


@app.command()
def stats(
    session: str = typer.Option(None, "--session", help="Session id to summarize (default: most recent)."),
):
    """Show a compact summary for a session (latency, rejections, tool usage, tokens)."""
    session = _session_or_latest(session)
    es = EventStore.open(session)
    s = summarize_events(list(es.iter_events()))

    lines = []
    lines.append(f"session: {session}")
    lines.append(f"events_file: {es.path}")
    lines.append(f"llm_requests: {s['llm_requests']}  llm_responses: {s['llm_responses']}  llm_errors: {s['llm_errors']}")
    if s["llm_avg_ms"] is not None:
        lines.append(f"llm_avg_latency_ms: {s['llm_avg_ms']:.1f}")
    lines.append(f"tool_calls: {s['tool_calls']}  tool_results: {s['tool_results']}  tool_rejected: {s['tool_rejected']}")
    if s["tool_avg_ms"] is not None:
        lines.append(f"tool_avg_latency_ms: {s['tool_avg_ms']:.1f}")
    if s["tool_states"]:
        lines.append("tool_states: " + ", ".join(f"{k}={v}" for k, v in sorted(s["tool_states"].items())))
    if s["top_tools"]:
        lines.append("top_tools:")
        for name, c in s["top_tools"]:
            lines.append(f"  - {name}: {c}")
    if s["usage_total"]:
        u = s["usage_total"]
        lines.append(
            f"tokens: in {u.get('input_tokens', 0)} ({u.get('cached_input_tokens', 0)} cached), "
            f"out {u.get('output_tokens', 0)}"
        )

    console.print(Panel.fit(Text("\n".join(lines)), title="Stats"))


@app.command()
def providers(
    config: Path = _CONFIG_OPT,
):
    """List providers registered in the YAML config."""
    try:
        reg = load_provider_registry(config)
    except (FileNotFoundError, ValueError) as e:
        console.print(color_error(f">> Error: {e}"))
        raise typer.Exit(code=2)
    for name in reg.names():
        cfg = reg.get(name)
        console.print(f"[bold cyan]{name}[/bold cyan]  {cfg.model}  [dim]{cfg.base_url}[/dim]")


if __name__ == "__main__":
    app()
