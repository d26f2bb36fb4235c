from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

DEFAULT_MAX_TURNS = 20


@dataclass
class BehaviorConfig:
    """Behavior config loaded from JSON (pyhorse.json)."""

    default_provider: str | None = None
    model: str | None = None
    max_turns: int = DEFAULT_MAX_TURNS
    # Relative to the target directory; AGENTS.md when unset.
    preamble_file: str | None = None
    trace: bool = False

    loaded_from: Path | None = None
