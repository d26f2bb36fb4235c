"""Tests for OpenAI-compatible response parsing (no network)."""

from __future__ import annotations

import json

import pytest

from pyhorse.llm.openai_compat import OpenAICompatProvider, ProviderError
from pyhorse.usage import UsageStats


def test_parse_response_with_tool_calls_and_usage() -> None:
    turn = OpenAICompatProvider.parse_response(
        {
            "choices": [
                {
                    "message": {
                        "content": None,
                        "reasoning_content": "thinking...",
                        "tool_calls": [
                            {"id": "call_1", "function": {"name": "bash", "arguments": "{\"command\": \"ls\"}"}},
                            {"id": "call_2", "function": {"name": "read_file", "arguments": "not json"}},
                        ],
                    }
                }
            ],
            "usage": {"prompt_tokens": 12, "completion_tokens": 3, "prompt_tokens_details": {"cached_tokens": 8}},
        }
    )
    assert turn.text == ""
    assert turn.reasoning_content == "thinking..."
    assert [(t.id, t.name, t.arguments) for t in turn.tool_calls] == [
        ("call_1", "bash", {"command": "ls"}),
        ("call_2", "read_file", {}),
    ]
    assert turn.usage == UsageStats(input_tokens=12, output_tokens=3, cached_input_tokens=8)


def test_parse_stream_accumulates_text_tools_and_usage() -> None:
    chunks = [
        {"choices": [{"delta": {"content": "Hel"}}]},
        {"choices": [{"delta": {"content": "lo"}}]},
        {"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "c1", "function": {"name": "bash", "arguments": "{\"comm"}}]}}]},
        {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": "and\": \"ls\"}"}}]}}]},
        {"choices": [], "usage": {"prompt_tokens": 7, "completion_tokens": 2}},
    ]
    lines = [f"data: {json.dumps(c)}\n".encode() for c in chunks] + [b": keep-alive\n", b"data: [DONE]\n"]
    tokens: list[str] = []

    turn = OpenAICompatProvider.parse_stream(lines, on_token=tokens.append)

    assert tokens == ["Hel", "lo"]
    assert turn.text == "Hello"
    assert turn.tool_calls[0].name == "bash"
    assert turn.tool_calls[0].arguments == {"command": "ls"}
    assert turn.usage == UsageStats(input_tokens=7, output_tokens=2)


def test_missing_api_key_is_provider_error() -> None:
    p = OpenAICompatProvider(model="m", base_url="http://localhost:1", api_key="")
    with pytest.raises(ProviderError):
        p.chat([{"role": "user", "content": "hi"}])
