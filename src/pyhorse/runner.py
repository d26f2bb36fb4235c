from __future__ import annotations

import json
import time
import uuid

from rich.panel import Panel
from rich.text import Text

from .app_context import AppContext
from .llm.openai_compat import ProviderError
from .session.models import AssistantTurn, Message

PROVIDER_ATTEMPTS = 3


def _prompt_char_count(messages: list[dict]) -> int:
    total = 0
    for m in messages:
        c = m.get("content")
        if isinstance(c, str):
            total += len(c)
        tc = m.get("tool_calls")
        if tc:
            total += len(json.dumps(tc, ensure_ascii=False))
    return total


def _validate_openai_messages(messages: list[dict]) -> None:
    """A tool message must follow an assistant message with tool_calls (or
    another tool message answering the same batch) and carry a tool_call_id.
    """
    for i, m in enumerate(messages):
        if m.get("role") != "tool":
            continue
        j = i - 1
        while j >= 0 and messages[j].get("role") == "tool":
            j -= 1
        if j < 0 or messages[j].get("role") != "assistant" or not messages[j].get("tool_calls"):
            raise RuntimeError(f"Invalid messages: tool message at index {i} has no preceding assistant tool_calls")
        if not m.get("tool_call_id"):
            raise RuntimeError(f"Invalid messages: tool message at index {i} missing tool_call_id")


def _build_messages(ctx: AppContext) -> list[dict]:
    out = [{"role": "system", "content": ctx.preamble}]
    out.extend(m.to_openai() for m in ctx.history)
    return out


def _chat_with_retries(ctx: AppContext, messages: list[dict], tools: list[dict], step: int) -> AssistantTurn:
    last_err: Exception | None = None
    for attempt in range(PROVIDER_ATTEMPTS):
        t0 = time.perf_counter()
        try:
            with ctx.progress.begin_progress("Processing"):
                if ctx.stream:
                    def _on_token(tok: str) -> None:
                        # First token clears the spinner; the rest just print.
                        if ctx.progress.active is not None:
                            ctx.progress.stop()
                        ctx.console.print(tok, end="", markup=False, highlight=False)

                    turn = ctx.provider.chat(messages, tools=tools, stream=True, on_token=_on_token)
                    if turn.text:
                        ctx.console.print()
                else:
                    turn = ctx.provider.chat(messages, tools=tools)
        except ProviderError as e:
            last_err = e
            if ctx.events:
                ctx.events.append("llm.error", {"step": step, "attempt": attempt + 1, "error": str(e)[:2000]})
            if attempt + 1 < PROVIDER_ATTEMPTS:
                time.sleep(0.5 * (2 ** attempt))
            continue

        usage_total = ctx.hook.on_completion_response(turn)
        if ctx.events:
            ctx.events.append(
                "llm.response",
                {
                    "step": step,
                    "elapsed_ms": int((time.perf_counter() - t0) * 1000),
                    "usage": turn.usage.to_dict() if turn.usage else None,
                    "usage_total": usage_total.to_dict(),
                    "text": (turn.text or "")[:4000],
                    "tool_calls": [{"id": tc.id, "name": tc.name, "arguments": tc.arguments} for tc in turn.tool_calls],
                },
            )
        return turn

    raise ProviderError(f"LLM call failed after {PROVIDER_ATTEMPTS} attempts: {last_err}")


def run_agent_once(ctx: AppContext, user_prompt: str, max_turns: int | None = None) -> str:
    """Answer one user query, running tool calls until the model replies with text.

    On provider failure the history is rolled back to where it was before
    the query and the ProviderError propagates.
    """
    max_turns = max_turns or ctx.max_turns
    checkpoint = len(ctx.history)
    ctx.history.append(Message(role="user", content=user_prompt))
    tools = ctx.dispatcher.tools_openai()
    final_text = ""

    try:
        for step in range(max_turns):
            messages = _build_messages(ctx)
            _validate_openai_messages(messages)
            if ctx.events:
                ctx.events.append(
                    "llm.request",
                    {
                        "step": step,
                        "model": ctx.provider.model,
                        "messages_count": len(messages),
                        "tools_count": len(tools),
                        "prompt_chars": _prompt_char_count(messages),
                    },
                )

            turn = _chat_with_retries(ctx, messages, tools, step)

            if turn.text:
                final_text = turn.text
            if not turn.tool_calls:
                ctx.history.append(Message(role="assistant", content=turn.text or ""))
                if turn.text:
                    return turn.text
                # Empty reply (e.g. reasoning only): ask again.
                continue

            assistant_tool_calls = []
            for i, tc in enumerate(turn.tool_calls):
                if not tc.id:
                    tc.id = f"tc_{ctx.session_id}_{step}_{i}_{uuid.uuid4().hex[:8]}"
                assistant_tool_calls.append({
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": json.dumps(tc.arguments, ensure_ascii=False)},
                })
            ctx.history.append(Message(role="assistant", content=turn.text or None, tool_calls=assistant_tool_calls))

            # Sequential, in the order the model asked for them.
            for tc in turn.tool_calls:
                ctx.hook.on_tool_call(tc.name, tc.arguments)
                with ctx.progress.begin_progress("Executing tool"):
                    res = ctx.dispatcher.dispatch_call(tc.name, tc.arguments)
                ctx.hook.on_tool_result(tc.name, res)

                if ctx.trace:
                    ctx.progress.print(
                        Panel.fit(
                            Text(res.content[:1200] + ("..." if len(res.content) > 1200 else "")),
                            title=f"tool:{tc.name} ({res.state.value})",
                            border_style="red" if res.is_error else "green",
                        )
                    )
                ctx.history.append(Message(role="tool", content=res.content, tool_call_id=tc.id))
    except BaseException:
        del ctx.history[checkpoint:]
        raise

    return final_text or f"Reached max turns ({max_turns}) without a final answer."
