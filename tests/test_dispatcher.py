"""Tests for request routing and the per-call state machine."""

from __future__ import annotations

from pathlib import Path

import pytest

from pyhorse.events.store import EventStore
from pyhorse.tools.base import (
    TERMINAL_STATES,
    BashCommandRequest,
    CallState,
    ReadFileRequest,
    SearchDocsRequest,
)
from pyhorse.tools.builtin_tools.bash_tool import BashTool
from pyhorse.tools.dispatcher import ToolDispatcher
from pyhorse.tools.validation import ALLOWED_COMMANDS, CommandValidator


@pytest.fixture()
def events(tmp_path: Path) -> EventStore:
    return EventStore(session_id="test", path=tmp_path / "events.jsonl")


@pytest.fixture()
def recorder():
    states: list[CallState] = []
    return states, lambda req, state: states.append(state)


def _dispatcher(workdir: Path, events: EventStore, recorder, **kw) -> ToolDispatcher:
    return ToolDispatcher(cwd=workdir, events=events, on_transition=recorder[1], **kw)


def test_success_walks_every_state(workdir: Path, events: EventStore, recorder) -> None:
    d = _dispatcher(workdir, events, recorder)
    res = d.dispatch(ReadFileRequest(path="README.md"))

    assert res.state is CallState.SUCCEEDED
    assert not res.is_error
    assert recorder[0] == [
        CallState.RECEIVED,
        CallState.VALIDATING,
        CallState.APPROVED,
        CallState.EXECUTING,
        CallState.SUCCEEDED,
        CallState.REPORTED,
    ]


def test_rejection_never_executes(workdir: Path, events: EventStore, recorder) -> None:
    d = _dispatcher(workdir, events, recorder)
    res = d.dispatch(BashCommandRequest(command="rg pattern | wc -l"))

    assert res.state is CallState.REJECTED
    assert res.is_error
    assert res.error_kind == "DisallowedOperator"
    assert res.content == "Forbidden pattern in command: |"
    assert CallState.APPROVED not in recorder[0]
    assert CallState.EXECUTING not in recorder[0]
    assert recorder[0][-2:] == [CallState.REJECTED, CallState.REPORTED]


def test_path_escape_is_rejected(workdir: Path, events: EventStore, recorder) -> None:
    res = _dispatcher(workdir, events, recorder).dispatch(ReadFileRequest(path="../../etc/passwd"))
    assert res.state is CallState.REJECTED
    assert res.error_kind == "PathEscape"


def test_execution_failure_is_failed(workdir: Path, events: EventStore, recorder) -> None:
    res = _dispatcher(workdir, events, recorder).dispatch(ReadFileRequest(path="docs"))
    assert res.state is CallState.FAILED
    assert res.error_kind == "IOError"


def test_timeout_is_timed_out(workdir: Path, events: EventStore, recorder) -> None:
    bash = BashTool(validator=CommandValidator(allowed=ALLOWED_COMMANDS | {"sleep"}), timeout=0.5)
    res = _dispatcher(workdir, events, recorder, bash=bash).dispatch(BashCommandRequest(command="sleep 10"))
    assert res.state is CallState.TIMED_OUT
    assert res.error_kind == "Timeout"
    assert "timed out" in res.content


def test_empty_query_is_rejected(workdir: Path, events: EventStore, recorder) -> None:
    res = _dispatcher(workdir, events, recorder).dispatch(SearchDocsRequest(query=""))
    assert res.state is CallState.REJECTED
    assert res.error_kind == "EmptyQuery"


def test_malformed_glob_is_rejected_not_raised(workdir: Path, events: EventStore, recorder, fake_bin) -> None:
    fake_bin("rga", "true")
    res = _dispatcher(workdir, events, recorder).dispatch(SearchDocsRequest(query="x", path="docs/a**"))
    assert res.state is CallState.REJECTED
    assert CallState.EXECUTING not in recorder[0]


def test_compiling_magic_file_is_rejected(workdir: Path, events: EventStore, recorder) -> None:
    (workdir / "magic").write_text("0 string x demo\n", encoding="utf-8")
    res = _dispatcher(workdir, events, recorder).dispatch(BashCommandRequest(command="file -C -m magic"))
    assert res.state is CallState.REJECTED
    assert res.error_kind == "DisallowedArgument"
    assert not (workdir / "magic.mgc").exists()


def test_every_outcome_is_terminal(workdir: Path, events: EventStore, recorder) -> None:
    d = _dispatcher(workdir, events, recorder)
    for req in [ReadFileRequest(path="README.md"), BashCommandRequest(command="rm -rf /"), ReadFileRequest(path="docs")]:
        assert d.dispatch(req).state in TERMINAL_STATES


def test_unknown_request_type_is_a_programming_error(workdir: Path) -> None:
    with pytest.raises(TypeError):
        ToolDispatcher(cwd=workdir).dispatch(object())  # type: ignore[arg-type]


def test_dispatch_call_unknown_tool(workdir: Path, events: EventStore, recorder) -> None:
    res = _dispatcher(workdir, events, recorder).dispatch_call("write_file", {"path": "x"})
    assert res.state is CallState.REJECTED
    assert res.content == "Tool write_file not found."
    assert recorder[0] == [CallState.RECEIVED, CallState.REJECTED, CallState.REPORTED]


@pytest.mark.parametrize(
    "name, args",
    [
        ("read_file", {}),
        ("read_file", {"path": 3}),
        ("read_file", {"path": "x", "start_line": -1}),
        ("read_file", {"path": "x", "start_line": True}),
        ("bash", "ls"),
        ("search_docs", {"query": "x", "path": 5}),
    ],
)
def test_dispatch_call_invalid_arguments(workdir: Path, events: EventStore, recorder, name, args) -> None:
    res = _dispatcher(workdir, events, recorder).dispatch_call(name, args)
    assert res.state is CallState.REJECTED
    assert res.error_kind == "InvalidArguments"
    assert res.content.startswith(f"Invalid arguments for {name}:")


def test_dispatch_call_accepts_numeric_strings(workdir: Path) -> None:
    res = ToolDispatcher(cwd=workdir).dispatch_call("read_file", {"path": "docs/notes.txt", "start_line": "2", "end_line": "3"})
    assert res.content == "line 2\nline 3"


def test_events_are_recorded(workdir: Path, events: EventStore) -> None:
    d = ToolDispatcher(cwd=workdir, events=events)
    d.dispatch_call("read_file", {"path": "README.md"})
    d.dispatch_call("bash", {"command": "rm -rf /"})

    evs = list(events.iter_events())
    assert [e.type for e in evs] == ["tool.call", "tool.result", "tool.call", "tool.rejected"]
    assert evs[1].data["state"] == "succeeded"
    assert isinstance(evs[1].data["elapsed_ms"], int)
    assert evs[3].data["kind"] == "DisallowedCommand"


def test_tool_schemas(workdir: Path) -> None:
    names = [t["function"]["name"] for t in ToolDispatcher(cwd=workdir).tools_openai()]
    assert names == ["read_file", "bash", "search_docs"]
