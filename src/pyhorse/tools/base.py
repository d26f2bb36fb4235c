from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Protocol, Union

from ..errors import ValidationError, ValidationKind

@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: dict[str, Any]   # JSONSchema

    def to_openai(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class CallState(str, Enum):
    RECEIVED = "received"
    VALIDATING = "validating"
    REJECTED = "rejected"
    APPROVED = "approved"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    REPORTED = "reported"


TERMINAL_STATES = frozenset({CallState.REJECTED, CallState.SUCCEEDED, CallState.FAILED, CallState.TIMED_OUT})


@dataclass
class ToolResult:
    content: str
    is_error: bool = False
    state: CallState = CallState.SUCCEEDED
    error_kind: Optional[str] = None
    truncated: bool = False


@dataclass(frozen=True)
class ToolContext:
    cwd: Path
    timeout: float = 30


class Tool(Protocol):
    """A tool runs in two phases.

    ``prepare`` validates the request and returns whatever ``run`` needs; it
    spawns nothing and opens nothing. ``run`` does the work.
    """

    spec: ToolSpec
    def prepare(self, ctx: ToolContext, req: Any) -> Any: ...
    def run(self, ctx: ToolContext, prepared: Any) -> "ToolResult": ...

    def execute(self, ctx: ToolContext, req: Any) -> "ToolResult":
        return self.run(ctx, self.prepare(ctx, req))


# ---- requests (closed set) ----

@dataclass(frozen=True)
class ReadFileRequest:
    path: str
    start_line: Optional[int] = None
    end_line: Optional[int] = None


@dataclass(frozen=True)
class BashCommandRequest:
    command: str


@dataclass(frozen=True)
class SearchDocsRequest:
    query: str
    path: Optional[str] = None


ToolRequest = Union[ReadFileRequest, BashCommandRequest, SearchDocsRequest]

REQUEST_TYPES: dict[str, type] = {
    "read_file": ReadFileRequest,
    "bash": BashCommandRequest,
    "search_docs": SearchDocsRequest,
}


def _invalid(tool: str, msg: str) -> ValidationError:
    return ValidationError(ValidationKind.INVALID_ARGUMENTS, f"Invalid arguments for {tool}: {msg}")


def _req_str(tool: str, args: dict[str, Any], key: str) -> str:
    v = args.get(key)
    if not isinstance(v, str):
        raise _invalid(tool, f"'{key}' must be a string")
    return v


def _opt_str(tool: str, args: dict[str, Any], key: str) -> Optional[str]:
    v = args.get(key)
    if v is None:
        return None
    if not isinstance(v, str):
        raise _invalid(tool, f"'{key}' must be a string")
    return v


def _opt_line(tool: str, args: dict[str, Any], key: str) -> Optional[int]:
    v = args.get(key)
    if v is None:
        return None
    # Models sometimes send numbers as strings.
    if isinstance(v, str) and v.strip().isdigit():
        v = int(v.strip())
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        raise _invalid(tool, f"'{key}' must be a non-negative integer")
    return v


def parse_tool_request(name: str, args: Any) -> ToolRequest:
    """Build a ToolRequest from a provider tool call (name + parsed JSON args)."""
    if name not in REQUEST_TYPES:
        raise ValidationError(ValidationKind.UNKNOWN_TOOL, f"Tool {name} not found.")
    if args is None:
        args = {}
    if not isinstance(args, dict):
        raise _invalid(name, "arguments must be a JSON object")

    if name == "read_file":
        return ReadFileRequest(
            path=_req_str(name, args, "path"),
            start_line=_opt_line(name, args, "start_line"),
            end_line=_opt_line(name, args, "end_line"),
        )
    if name == "bash":
        return BashCommandRequest(command=_req_str(name, args, "command"))
    return SearchDocsRequest(query=_req_str(name, args, "query"), path=_opt_str(name, args, "path"))


def request_display_arg(req: ToolRequest) -> str:
    """The one argument worth showing in a ">> tool(arg)" line."""
    if isinstance(req, ReadFileRequest):
        return req.path
    if isinstance(req, BashCommandRequest):
        return req.command
    if isinstance(req, SearchDocsRequest):
        return req.query if req.path is None else f"{req.query}, {req.path}"
    raise TypeError(f"Unhandled tool request: {type(req).__name__}")
