from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from rich.console import Console

from .config.loader import load_behavior_config
from .config.models import BehaviorConfig
from .config.preamble import Preamble, load_preamble
from .console.colors import make_console
from .console.progress import ProgressTracker
from .events.store import EventStore
from .hooks import ProgressHook
from .llm.factory import load_provider_registry, resolve_provider
from .session.models import AssistantTurn, Message
from .tools.dispatcher import ToolDispatcher
from .usage import UsageAccumulator


class ChatProvider(Protocol):
    model: str

    def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        *,
        stream: bool = False,
        on_token: Callable[[str], None] | None = None,
    ) -> AssistantTurn: ...


@dataclass
class AppContext:
    """Everything one REPL session shares. Lives for the whole process."""

    cwd: Path
    provider: ChatProvider
    dispatcher: ToolDispatcher
    console: Console
    progress: ProgressTracker
    usage: UsageAccumulator
    hook: ProgressHook
    preamble: str
    session_id: str
    history: list[Message] = field(default_factory=list)
    events: EventStore | None = None
    max_turns: int = 20
    trace: bool = False
    stream: bool = False

    @staticmethod
    def build(
        cwd: Path,
        provider: ChatProvider,
        *,
        preamble: str,
        console: Console | None = None,
        events: EventStore | None = None,
        session_id: str | None = None,
        max_turns: int = 20,
        trace: bool = False,
        stream: bool = False,
        show_progress: bool = True,
    ) -> "AppContext":
        cwd = Path(cwd).resolve()
        console = console or make_console()
        progress = ProgressTracker(console, enabled=show_progress)
        usage = UsageAccumulator()
        return AppContext(
            cwd=cwd,
            provider=provider,
            dispatcher=ToolDispatcher(cwd=cwd, events=events),
            console=console,
            progress=progress,
            usage=usage,
            hook=ProgressHook(progress=progress, usage=usage),
            preamble=preamble,
            session_id=session_id or (events.session_id if events else uuid.uuid4().hex[:12]),
            events=events,
            max_turns=max_turns,
            trace=trace,
            stream=stream,
        )

    @staticmethod
    def from_env(
        cwd: Path,
        provider: Optional[str],
        config_path: Path,
        *,
        model: Optional[str] = None,
        max_turns: Optional[int] = None,
        behavior_config: Optional[Path] = None,
        trace: Optional[bool] = None,
        stream: bool = False,
        console: Console | None = None,
    ) -> tuple["AppContext", BehaviorConfig, Preamble]:
        """Wire up a session from config files; CLI arguments win over config."""
        behavior = load_behavior_config(cwd=cwd, explicit_path=behavior_config)
        reg = load_provider_registry(config_path)
        provider_client = resolve_provider(
            reg,
            provider or behavior.default_provider,
            model=model or behavior.model,
        )
        preamble = load_preamble(cwd, behavior.preamble_file)

        session_id = uuid.uuid4().hex[:12]
        ctx = AppContext.build(
            cwd,
            provider_client,
            preamble=preamble.text,
            console=console,
            events=EventStore.open(session_id),
            session_id=session_id,
            max_turns=max_turns or behavior.max_turns,
            trace=behavior.trace if trace is None else trace,
            stream=stream,
        )
        return ctx, behavior, preamble
