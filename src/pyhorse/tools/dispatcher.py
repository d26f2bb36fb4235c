from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from .base import (
    BashCommandRequest,
    CallState,
    ReadFileRequest,
    SearchDocsRequest,
    Tool,
    ToolContext,
    ToolRequest,
    ToolResult,
    parse_tool_request,
)
from .builtin_tools.bash_tool import BashTool
from .builtin_tools.file_read import ReadFileTool
from .builtin_tools.search_docs import SearchDocsTool
from ..errors import ExecutionError, ExecutionKind, ValidationError
from ..events.store import EventStore
from ..util.subprocess import DEFAULT_TIMEOUT


@dataclass
class ToolDispatcher:
    """Routes one ToolRequest to its tool and normalizes the outcome.

    Per call: RECEIVED -> VALIDATING -> REJECTED | APPROVED -> EXECUTING ->
    SUCCEEDED | FAILED | TIMED_OUT -> REPORTED. The terminal state is kept on
    the returned ToolResult. Each request runs at most once; retrying is up
    to the caller.
    """

    cwd: Path
    timeout: float = DEFAULT_TIMEOUT
    events: EventStore | None = None
    read_file: ReadFileTool = field(default_factory=ReadFileTool)
    bash: BashTool = field(default_factory=BashTool)
    search_docs: SearchDocsTool = field(default_factory=SearchDocsTool)
    # Observer for state transitions (tests, tracing).
    on_transition: Callable[[ToolRequest | None, CallState], None] | None = None

    def __post_init__(self) -> None:
        self.cwd = Path(self.cwd).resolve()
        self._ctx = ToolContext(cwd=self.cwd, timeout=self.timeout)

    def specs(self):
        return [self.read_file.spec, self.bash.spec, self.search_docs.spec]

    def tools_openai(self) -> list[dict[str, Any]]:
        return [s.to_openai() for s in self.specs()]

    def _enter(self, req: ToolRequest | None, state: CallState) -> None:
        if self.on_transition is not None:
            self.on_transition(req, state)

    def _event(self, event_type: str, data: dict[str, Any]) -> None:
        if self.events:
            self.events.append(event_type, data)

    def tool_for(self, req: ToolRequest) -> Tool:
        if isinstance(req, ReadFileRequest):
            return self.read_file
        if isinstance(req, BashCommandRequest):
            return self.bash
        if isinstance(req, SearchDocsRequest):
            return self.search_docs
        raise TypeError(f"Unhandled tool request: {type(req).__name__}")

    def _rejected(self, name: str, e: ValidationError) -> ToolResult:
        self._event("tool.rejected", {"tool": name, "kind": e.kind.value, "reason": e.message[:2000]})
        return ToolResult(content=e.message, is_error=True, state=CallState.REJECTED, error_kind=e.kind.value)

    def dispatch(self, req: ToolRequest) -> ToolResult:
        tool = self.tool_for(req)
        name = tool.spec.name
        self._enter(req, CallState.RECEIVED)
        self._event("tool.call", {"tool": name, "args": dict(req.__dict__)})
        t0 = time.perf_counter()

        try:
            self._enter(req, CallState.VALIDATING)
            prepared = tool.prepare(self._ctx, req)
            self._enter(req, CallState.APPROVED)

            self._enter(req, CallState.EXECUTING)
            res = tool.run(self._ctx, prepared)
            state = CallState.SUCCEEDED
        except ValidationError as e:
            res = self._rejected(name, e)
            state = CallState.REJECTED
        except ExecutionError as e:
            state = CallState.TIMED_OUT if e.kind is ExecutionKind.TIMEOUT else CallState.FAILED
            res = ToolResult(content=e.message, is_error=True, state=state, error_kind=e.kind.value)
        res.state = state
        self._enter(req, state)

        if state is not CallState.REJECTED:
            self._event(
                "tool.result",
                {
                    "tool": name,
                    "state": state.value,
                    "is_error": res.is_error,
                    "error_kind": res.error_kind,
                    "truncated": res.truncated,
                    "elapsed_ms": int((time.perf_counter() - t0) * 1000),
                    "content_len": len(res.content or ""),
                    "content_preview": (res.content or "")[:4000],
                },
            )
        self._enter(req, CallState.REPORTED)
        return res

    def dispatch_call(self, tool_name: str, args: Any) -> ToolResult:
        """Entry point for provider tool calls: parse, then dispatch."""
        try:
            req = parse_tool_request(tool_name, args)
        except ValidationError as e:
            self._enter(None, CallState.RECEIVED)
            res = self._rejected(tool_name, e)
            self._enter(None, CallState.REJECTED)
            self._enter(None, CallState.REPORTED)
            return res
        return self.dispatch(req)
