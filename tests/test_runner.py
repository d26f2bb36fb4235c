"""Tests for the agent loop, driven by a scripted fake provider."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Any

import pytest
from rich.console import Console

from pyhorse import runner
from pyhorse.app_context import AppContext
from pyhorse.console.colors import THEME
from pyhorse.events.store import EventStore
from pyhorse.llm.openai_compat import ProviderError
from pyhorse.runner import PROVIDER_ATTEMPTS, run_agent_once
from pyhorse.session.models import AssistantTurn, ToolCall
from pyhorse.usage import UsageStats


class FakeProvider:
    """Returns the scripted turns in order; an Exception entry is raised instead."""

    model = "fake-model"

    def __init__(self, turns: list[Any]) -> None:
        self.turns = list(turns)
        self.calls: list[list[dict[str, Any]]] = []

    def chat(self, messages, tools=None, *, stream=False, on_token=None) -> AssistantTurn:
        self.calls.append([dict(m) for m in messages])
        item = self.turns.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _ctx(workdir: Path, provider: FakeProvider, tmp_path: Path) -> tuple[AppContext, io.StringIO]:
    buf = io.StringIO()
    console = Console(file=buf, theme=THEME, force_terminal=False, width=120)
    ctx = AppContext.build(
        workdir,
        provider,
        preamble="You are a test assistant.",
        console=console,
        events=EventStore(session_id="s1", path=tmp_path / "events.jsonl"),
        show_progress=False,
    )
    return ctx, buf


def _usage(i: int, o: int, c: int = 0) -> UsageStats:
    return UsageStats(input_tokens=i, output_tokens=o, cached_input_tokens=c)


def test_plain_answer(workdir: Path, tmp_path: Path) -> None:
    provider = FakeProvider([AssistantTurn(text="Hello!", usage=_usage(10, 2))])
    ctx, _ = _ctx(workdir, provider, tmp_path)

    assert run_agent_once(ctx, "hi") == "Hello!"
    assert [m.role for m in ctx.history] == ["user", "assistant"]
    assert provider.calls[0][0] == {"role": "system", "content": "You are a test assistant."}
    assert ctx.usage.snapshot() == _usage(10, 2)


def test_tool_call_then_answer(workdir: Path, tmp_path: Path) -> None:
    provider = FakeProvider(
        [
            AssistantTurn(
                tool_calls=[ToolCall(id="c1", name="read_file", arguments={"path": "README.md"})],
                usage=_usage(100, 10, 50),
            ),
            AssistantTurn(text="It is a demo.", usage=_usage(200, 20, 150)),
        ]
    )
    ctx, buf = _ctx(workdir, provider, tmp_path)

    assert run_agent_once(ctx, "what is this?") == "It is a demo."
    assert [m.role for m in ctx.history] == ["user", "assistant", "tool", "assistant"]
    assert ctx.history[2].tool_call_id == "c1"
    assert "A small project." in (ctx.history[2].content or "")
    # Tool result is sent back on the second request.
    assert provider.calls[1][-1]["role"] == "tool"
    assert ">> read_file(README.md)" in buf.getvalue()

    assert ctx.usage.snapshot() == _usage(300, 30, 200)
    assert ctx.usage.turns == 2


def test_tool_calls_run_in_order(workdir: Path, tmp_path: Path) -> None:
    provider = FakeProvider(
        [
            AssistantTurn(
                tool_calls=[
                    ToolCall(id="a", name="read_file", arguments={"path": "docs/notes.txt", "start_line": 1, "end_line": 1}),
                    ToolCall(id="b", name="bash", arguments={"command": "rm -rf /"}),
                    ToolCall(id="c", name="read_file", arguments={"path": "README.md", "end_line": 1}),
                ]
            ),
            AssistantTurn(text="done"),
        ]
    )
    ctx, buf = _ctx(workdir, provider, tmp_path)
    run_agent_once(ctx, "go")

    tool_msgs = [m for m in ctx.history if m.role == "tool"]
    assert [m.tool_call_id for m in tool_msgs] == ["a", "b", "c"]
    assert tool_msgs[0].content == "line 1"
    assert (tool_msgs[1].content or "").startswith("Command not in whitelist: rm.")
    assert tool_msgs[2].content == "# Demo"
    assert ">> Error: Command not in whitelist: rm." in buf.getvalue()


def test_missing_tool_call_ids_are_filled(workdir: Path, tmp_path: Path) -> None:
    provider = FakeProvider(
        [
            AssistantTurn(tool_calls=[ToolCall(id="", name="read_file", arguments={"path": "README.md"})]),
            AssistantTurn(text="ok"),
        ]
    )
    ctx, _ = _ctx(workdir, provider, tmp_path)
    run_agent_once(ctx, "go")
    assistant = ctx.history[1]
    assert assistant.tool_calls and assistant.tool_calls[0]["id"]
    assert ctx.history[2].tool_call_id == assistant.tool_calls[0]["id"]


def test_usage_recorded_without_usage_block(workdir: Path, tmp_path: Path) -> None:
    provider = FakeProvider([AssistantTurn(text="hi")])
    ctx, _ = _ctx(workdir, provider, tmp_path)
    run_agent_once(ctx, "hi")
    assert ctx.usage.turns == 1
    assert ctx.usage.snapshot() == UsageStats()


def test_transient_provider_error_is_retried(workdir: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(runner.time, "sleep", lambda s: None)
    provider = FakeProvider([ProviderError("503"), AssistantTurn(text="recovered", usage=_usage(5, 1))])
    ctx, _ = _ctx(workdir, provider, tmp_path)

    assert run_agent_once(ctx, "hi") == "recovered"
    assert ctx.usage.turns == 1
    types = [e.type for e in ctx.events.iter_events()]
    assert types == ["llm.request", "llm.error", "llm.response"]


def test_provider_failure_rolls_back_history(workdir: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(runner.time, "sleep", lambda s: None)
    provider = FakeProvider(
        [AssistantTurn(text="first", usage=_usage(1, 1))] + [ProviderError("down")] * PROVIDER_ATTEMPTS
    )
    ctx, _ = _ctx(workdir, provider, tmp_path)
    run_agent_once(ctx, "one")
    before = list(ctx.history)

    with pytest.raises(ProviderError):
        run_agent_once(ctx, "two")
    assert ctx.history == before
    assert ctx.usage.turns == 1
    assert ctx.progress.active is None


def test_max_turns_exhausted(workdir: Path, tmp_path: Path) -> None:
    call = ToolCall(id="x", name="read_file", arguments={"path": "README.md"})
    provider = FakeProvider([AssistantTurn(tool_calls=[call]) for _ in range(2)])
    ctx, _ = _ctx(workdir, provider, tmp_path)
    assert run_agent_once(ctx, "loop", max_turns=2) == "Reached max turns (2) without a final answer."


def test_history_is_valid_openai_sequence(workdir: Path, tmp_path: Path) -> None:
    provider = FakeProvider(
        [
            AssistantTurn(tool_calls=[ToolCall(id="c1", name="bash", arguments={"command": "ls"})]),
            AssistantTurn(text="ok"),
        ]
    )
    ctx, _ = _ctx(workdir, provider, tmp_path)
    run_agent_once(ctx, "list")
    runner._validate_openai_messages(runner._build_messages(ctx))
