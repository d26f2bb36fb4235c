from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from .console.colors import color_debug, color_error
from .console.progress import ProgressTracker
from .errors import ValidationError
from .session.models import AssistantTurn
from .tools.base import ToolResult, parse_tool_request, request_display_arg
from .usage import UsageAccumulator, UsageStats


def truncate_display(s: str, max_len: int) -> str:
    if len(s) <= max_len:
        return s
    return s[:max_len] + "..."


def display_args(tool_name: str, args: Any) -> str:
    try:
        return request_display_arg(parse_tool_request(tool_name, args))
    except ValidationError:
        try:
            return json.dumps(args, ensure_ascii=False)
        except (TypeError, ValueError):
            return str(args)


@dataclass
class ProgressHook:
    """Callbacks the agent loop fires around provider turns and tool calls.

    Prints tool calls and tool errors, and feeds provider usage into the
    session accumulator. All printing goes through the tracker so it never
    interleaves with a spinner frame.
    """

    progress: ProgressTracker
    usage: UsageAccumulator

    def on_tool_call(self, tool_name: str, args: Any) -> None:
        shown = truncate_display(display_args(tool_name, args), 200)
        self.progress.print(color_debug(f"\n>> {tool_name}({shown})"))

    def on_tool_result(self, tool_name: str, result: ToolResult) -> None:
        if result.is_error:
            self.progress.print(color_error(f">> Error: {truncate_display(result.content, 500)}"))

    def on_completion_response(self, turn: AssistantTurn) -> UsageStats:
        # Exactly one record per successful provider turn, even without a usage block.
        return self.usage.record(turn.usage or UsageStats())
