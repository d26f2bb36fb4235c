from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

MAX_BYTES = 50 * 1024
MAX_LINES = 1000

TRUNCATION_MARKER = "[truncated]"


@dataclass(frozen=True)
class Bounded:
    text: str
    truncated: bool


def _marker(note: str | None) -> str:
    return f"[truncated - {note}]" if note else TRUNCATION_MARKER


def _cut_utf8(s: str, max_bytes: int) -> str:
    # Drop any partial trailing character.
    return s.encode("utf-8")[:max(0, max_bytes)].decode("utf-8", errors="ignore")


def bound_lines(
    lines: Iterable[str],
    *,
    max_bytes: int = MAX_BYTES,
    max_lines: int = MAX_LINES,
    note: str | None = None,
    force_truncated: bool = False,
) -> Bounded:
    """Join ``lines`` with newlines while staying under both ceilings.

    Lines are kept whole; the only exception is a first line that alone
    exceeds the byte ceiling, which is cut at a character boundary. When
    anything is dropped the marker is appended on its own line and the whole
    returned text, marker included, fits in ``max_bytes``.

    ``lines`` may be a lazy iterator; it is consumed only until a ceiling is
    hit.
    """
    marker = _marker(note)

    kept: list[str] = []
    used = 0
    head: str | None = None
    truncated = force_truncated
    for line in lines:
        if len(kept) >= max_lines:
            truncated = True
            break
        cost = len(line.encode("utf-8")) + (1 if kept else 0)
        if used + cost > max_bytes:
            truncated = True
            if not kept:
                head = line
            break
        kept.append(line)
        used += cost

    if truncated:
        # Only now make room for the marker: drop whole lines from the end.
        budget = max_bytes - len(("\n\n" + marker).encode("utf-8"))
        if kept and used > budget:
            head = kept[0]
        while kept and used > budget:
            last = kept.pop()
            used -= len(last.encode("utf-8")) + (1 if kept else 0)
        if not kept and head:
            kept.append(_cut_utf8(head, budget))

    text = "\n".join(kept)
    if truncated:
        text = f"{text}\n\n{marker}" if text else marker
    return Bounded(text=text, truncated=truncated)


def bound_text(text: str, **kwargs) -> Bounded:
    # Split on "\n" only; "\r", form feeds and the like stay in the line.
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return bound_lines(lines, **kwargs)
