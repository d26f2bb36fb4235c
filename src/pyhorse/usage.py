from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class UsageStats:
    input_tokens: int = 0
    output_tokens: int = 0
    cached_input_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "UsageStats") -> "UsageStats":
        return UsageStats(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cached_input_tokens=self.cached_input_tokens + other.cached_input_tokens,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cached_input_tokens": self.cached_input_tokens,
        }

    @staticmethod
    def from_openai(obj: Any) -> "UsageStats | None":
        """Parse an OpenAI-style ``usage`` block.

        Cached prompt tokens are reported as ``prompt_tokens_details.cached_tokens``
        by OpenAI and as ``prompt_cache_hit_tokens`` by DeepSeek.
        """
        if not isinstance(obj, dict):
            return None

        def _int(v: Any) -> int:
            return v if isinstance(v, int) and not isinstance(v, bool) and v >= 0 else 0

        details = obj.get("prompt_tokens_details")
        cached = _int(details.get("cached_tokens")) if isinstance(details, dict) else 0
        cached = cached or _int(obj.get("prompt_cache_hit_tokens"))
        return UsageStats(
            input_tokens=_int(obj.get("prompt_tokens")),
            output_tokens=_int(obj.get("completion_tokens")),
            cached_input_tokens=cached,
        )


class UsageAccumulator:
    """Session-wide token totals.

    Shared by the agent loop and the provider hooks. Every update happens
    under one lock, held only for the addition itself, so a snapshot always
    matches the last fully recorded turn.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total = UsageStats()
        self._last = UsageStats()
        self._turns = 0

    def record(self, delta: UsageStats) -> UsageStats:
        with self._lock:
            self._total = self._total + delta
            self._last = delta
            self._turns += 1
            return self._total

    def snapshot(self) -> UsageStats:
        with self._lock:
            return self._total

    def last_turn(self) -> UsageStats:
        with self._lock:
            return self._last

    @property
    def turns(self) -> int:
        with self._lock:
            return self._turns


def format_token_count(count: int) -> str:
    if count < 1000:
        return str(count)
    return f"{count / 1000:.1f}k"
