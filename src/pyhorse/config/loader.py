from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from .models import BehaviorConfig

APP_NAME = "pyhorse"


def _candidate_paths(cwd: Path) -> list[Path]:
    # project-level (higher priority)
    return [
        cwd / ".pyhorse.json",
        cwd / "pyhorse.json",
    ]


def _global_candidate_paths() -> list[Path]:
    return [Path(user_config_dir(APP_NAME)) / "pyhorse.json"]


def _load_json(p: Path) -> dict[str, Any] | None:
    try:
        obj = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    return obj if isinstance(obj, dict) else None


def _merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge_dicts(out[k], v)  # type: ignore
        else:
            out[k] = v
    return out


def _opt_str(v: Any) -> str | None:
    return v.strip() if isinstance(v, str) and v.strip() else None


def load_behavior_config(*, cwd: Path, explicit_path: Path | None = None) -> BehaviorConfig:
    """Load behavior config.

    Merge order: global < project < explicit_path. Unknown keys and values of
    the wrong type are ignored.
    """
    merged: dict[str, Any] = {}
    loaded_from: Path | None = None

    for p in _global_candidate_paths():
        if p.is_file():
            obj = _load_json(p)
            if obj is not None:
                merged = _merge_dicts(merged, obj)
                loaded_from = p

    for p in _candidate_paths(cwd):
        if p.is_file():
            obj = _load_json(p)
            if obj is not None:
                merged = _merge_dicts(merged, obj)
                loaded_from = p
                break  # first match wins for project-level

    if explicit_path is not None:
        p = explicit_path.expanduser().resolve()
        if not p.is_file():
            raise FileNotFoundError(f"Behavior config not found: {p}")
        obj = _load_json(p)
        if obj is None:
            raise ValueError(f"Behavior config is not a JSON object: {p}")
        merged = _merge_dicts(merged, obj)
        loaded_from = p

    cfg = BehaviorConfig(loaded_from=loaded_from)
    cfg.default_provider = _opt_str(merged.get("default_provider"))
    cfg.model = _opt_str(merged.get("model"))
    cfg.preamble_file = _opt_str(merged.get("preamble_file"))

    mt = merged.get("max_turns")
    if isinstance(mt, int) and not isinstance(mt, bool) and mt > 0:
        cfg.max_turns = mt

    tr = merged.get("trace")
    if isinstance(tr, bool):
        cfg.trace = tr

    return cfg
