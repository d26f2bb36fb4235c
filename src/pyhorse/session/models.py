from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Literal

from ..usage import UsageStats

Role = Literal["system", "user", "assistant", "tool"]

@dataclass
class Message:
    role: Role
    # content can be null in some OpenAI-compatible APIs when tool_calls are present
    content: str | None
    tool_call_id: str | None = None
    # Assistant-only: OpenAI-compatible tool call representation
    tool_calls: list[dict[str, Any]] | None = None

    def to_openai(self) -> dict[str, Any]:
        d: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_call_id:
            d["tool_call_id"] = self.tool_call_id
        if self.role == "assistant" and self.tool_calls is not None:
            d["tool_calls"] = self.tool_calls
        return d

@dataclass
class ToolCall:
    id: str
    name: str
    arguments: Any  # parsed json; not necessarily a dict if the model misbehaves

@dataclass
class AssistantTurn:
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    # Kept off screen and out of the history.
    reasoning_content: str | None = None
    usage: UsageStats | None = None
