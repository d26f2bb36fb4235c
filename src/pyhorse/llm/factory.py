from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import yaml

from .openai_compat import OpenAICompatProvider


_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")

DEFAULT_CONFIG = Path("pyhorse.yaml")


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    base_url: str
    model: str
    api_key: str


class ProviderRegistry:
    def __init__(self) -> None:
        self._items: Dict[str, ProviderConfig] = {}

    def add(self, cfg: ProviderConfig) -> None:
        key = cfg.name.strip().lower()
        if not key:
            raise ValueError("Provider name cannot be empty.")
        self._items[key] = cfg

    def get(self, name: str | None) -> ProviderConfig:
        key = (name or "").strip().lower()
        if not key:
            # A single configured provider needs no --provider.
            if len(self._items) == 1:
                return next(iter(self._items.values()))
            raise ValueError("Missing --provider.")
        if key not in self._items:
            known = ", ".join(sorted(self._items.keys())) or "(none)"
            raise ValueError(f"Unknown provider '{name}'. Known providers: {known}")
        return self._items[key]

    def names(self) -> list[str]:
        return sorted(self._items.keys())


def _expand_env_placeholders(s: str) -> str:
    def repl(m: re.Match) -> str:
        var = m.group(1)
        val = os.getenv(var)
        if not val:
            raise ValueError(f"API key placeholder '${{{var}}}' not found in environment or is empty.")
        return val

    return _ENV_PATTERN.sub(repl, s)


def load_provider_registry(yaml_path: str | Path) -> ProviderRegistry:
    p = Path(yaml_path).expanduser().resolve()
    if not p.exists():
        raise FileNotFoundError(f"Config YAML not found: {p}")

    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    providers = data.get("providers") if isinstance(data, dict) else None
    if not isinstance(providers, dict) or not providers:
        raise ValueError("YAML must contain a non-empty 'providers:' mapping.")

    reg = ProviderRegistry()

    for name, cfg in providers.items():
        if not isinstance(cfg, dict):
            raise ValueError(f"providers.{name} must be a mapping/dict.")

        fields = {
            "PYHORSE_BASE_URL": cfg.get("PYHORSE_BASE_URL"),
            "PYHORSE_MODEL": cfg.get("PYHORSE_MODEL"),
            "PYHORSE_API_KEY": cfg.get("PYHORSE_API_KEY"),
        }
        missing = [k for k, v in fields.items() if not v or not str(v).strip()]
        if missing:
            raise ValueError(f"providers.{name} missing required field(s): {', '.join(missing)}")

        base_url, model, api_key = (str(v).strip() for v in fields.values())
        api_key = _expand_env_placeholders(api_key)

        reg.add(ProviderConfig(name=str(name), base_url=base_url, model=model, api_key=api_key))

    return reg


def resolve_provider(
    reg: ProviderRegistry,
    provider: Optional[str],
    model: Optional[str] = None,
) -> OpenAICompatProvider:
    """Build the client for ``provider``; ``model`` overrides the YAML model."""
    cfg = reg.get(provider)
    return OpenAICompatProvider(
        model=model or cfg.model,
        base_url=cfg.base_url,
        api_key=cfg.api_key,
        provider_name=cfg.name,
    )
