from __future__ import annotations

import json
import urllib.request
import urllib.error
from dataclasses import dataclass
from typing import Any, Callable

from ..session.models import AssistantTurn, ToolCall
from ..usage import UsageStats


class ProviderError(RuntimeError):
    pass


def _parse_args(arg_str: Any) -> Any:
    try:
        return json.loads(arg_str) if isinstance(arg_str, str) else (arg_str or {})
    except json.JSONDecodeError:
        # best-effort: empty args; the dispatcher reports what is missing
        return {}


@dataclass
class OpenAICompatProvider:
    """
    Minimal OpenAI-compatible Chat Completions client.
    Works with OpenAI and many compatible gateways (OpenRouter, vLLM, LM Studio, etc.)
    """
    model: str
    base_url: str
    api_key: str
    provider_name: str = "openai"
    temperature: float = 0.2
    request_timeout: float = 120

    def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        *,
        stream: bool = False,
        on_token: Callable[[str], None] | None = None,
    ) -> AssistantTurn:
        if not self.api_key:
            raise ProviderError("Missing API key. Set PYHORSE_API_KEY in the provider config.")

        url = self.base_url.rstrip("/") + "/chat/completions"
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
        }
        if stream:
            payload["stream"] = True
            payload["stream_options"] = {"include_usage": True}
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        data = json.dumps(payload).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        req = urllib.request.Request(url, data=data, headers=headers, method="POST")
        try:
            if not stream:
                with urllib.request.urlopen(req, timeout=self.request_timeout) as resp:
                    raw = resp.read().decode("utf-8", errors="replace")
                return self.parse_response(json.loads(raw))
            with urllib.request.urlopen(req, timeout=self.request_timeout) as resp:
                return self.parse_stream(resp, on_token=on_token)
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace") if hasattr(e, "read") else ""
            raise ProviderError(f"Provider HTTPError {e.code}: {e.reason}\n{body}") from e
        except urllib.error.URLError as e:
            raise ProviderError(f"Provider URLError: {e}") from e
        except OSError as e:
            # Read timeouts and dropped connections mid-response.
            raise ProviderError(f"Provider connection error: {e}") from e
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Malformed provider response: {e}") from e

    @staticmethod
    def parse_response(obj: dict[str, Any]) -> AssistantTurn:
        choice = obj["choices"][0]
        msg = choice["message"]

        turn = AssistantTurn(
            text=msg.get("content") or "",
            reasoning_content=msg.get("reasoning_content"),
            usage=UsageStats.from_openai(obj.get("usage")),
        )
        for tc in msg.get("tool_calls") or []:
            fn = tc.get("function", {})
            turn.tool_calls.append(
                ToolCall(id=tc.get("id", ""), name=fn.get("name") or "", arguments=_parse_args(fn.get("arguments") or "{}"))
            )
        return turn

    @staticmethod
    def parse_stream(lines, *, on_token: Callable[[str], None] | None = None) -> AssistantTurn:
        # OpenAI-compatible servers stream SSE lines of the form:
        #   data: {"choices":[{"delta":{...}}]}
        # ending with:
        #   data: [DONE]
        # With include_usage the last chunk has empty choices and a usage block.
        text_parts: list[str] = []
        reasoning_parts: list[str] = []
        # tool_calls are streamed as deltas by index; accumulate into strings.
        tc_by_index: dict[int, dict[str, Any]] = {}
        usage: UsageStats | None = None

        def _handle_delta(delta: dict[str, Any]) -> None:
            if delta.get("content"):
                chunk = str(delta["content"])
                text_parts.append(chunk)
                if on_token:
                    on_token(chunk)
            # Some providers stream reasoning separately; never shown.
            if delta.get("reasoning_content"):
                reasoning_parts.append(str(delta["reasoning_content"]))
            for tc in delta.get("tool_calls") or []:
                idx = int(tc.get("index", 0))
                cur = tc_by_index.setdefault(idx, {"id": "", "name": "", "arguments": ""})
                if tc.get("id"):
                    cur["id"] = tc.get("id")
                fn = tc.get("function") or {}
                if fn.get("name"):
                    cur["name"] = fn.get("name")
                if fn.get("arguments"):
                    cur["arguments"] += str(fn.get("arguments"))

        for raw_line in lines:
            if isinstance(raw_line, bytes):
                raw_line = raw_line.decode("utf-8", errors="replace")
            line = raw_line.strip()
            if not line.startswith("data:"):
                continue
            data_str = line[len("data:"):].strip()
            if data_str == "[DONE]":
                break
            try:
                ev = json.loads(data_str)
            except json.JSONDecodeError:
                continue
            if ev.get("usage"):
                usage = UsageStats.from_openai(ev["usage"])
            choices = ev.get("choices") or []
            if choices:
                _handle_delta(choices[0].get("delta") or {})

        turn = AssistantTurn(
            text="".join(text_parts),
            reasoning_content="".join(reasoning_parts) if reasoning_parts else None,
            usage=usage,
        )
        for idx in sorted(tc_by_index.keys()):
            tc = tc_by_index[idx]
            turn.tool_calls.append(
                ToolCall(id=str(tc.get("id") or ""), name=str(tc.get("name") or ""), arguments=_parse_args(tc.get("arguments") or "{}"))
            )
        return turn
