from __future__ import annotations
from dataclasses import dataclass
from glob import has_magic
from pathlib import Path

from ..base import Tool, ToolSpec, ToolResult, ToolContext, SearchDocsRequest
from ...errors import ExecutionError, ExecutionKind, ValidationError, ValidationKind
from ...util.fs import resolve_path, is_within, display_path, InvalidPath, PathNotFound
from ...util.subprocess import run_cmd, interpret_exit, which
from ...util.truncate import bound_text

RGA = "rga"
MAX_COUNT = 100
CONTEXT_LINES = 2
INSTALL_HINT = "rga command not found. Please install ripgrep-all: https://github.com/phiresky/ripgrep-all"


@dataclass
class SearchDocsTool(Tool):
    executable: str = RGA
    spec: ToolSpec = ToolSpec(
        name="search_docs",
        description=(
            "Search through documents (PDFs, Word docs, Excel, etc.) using ripgrep-all. "
            "Automatically handles binary formats and extracts text. "
            "Use this when you need to find content in non-text files. "
            "Do not use it until other tools have been tried."
        ),
        parameters={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query/pattern to find in documents"},
                "path": {
                    "type": "string",
                    "description": "Optional path or glob pattern to search in (defaults to current directory)",
                },
            },
            "required": ["query"],
        },
    )

    def targets(self, ctx: ToolContext, path: str | None) -> list[str]:
        """Expand ``path`` (plain or glob) into guarded paths relative to cwd."""
        if not path:
            return ["."]
        if not has_magic(path):
            return [display_path(ctx.cwd, resolve_path(ctx.cwd, path))]

        # Guard the literal part first so "../*" is an escape, not an empty match.
        anchor = Path(path)
        while has_magic(str(anchor)):
            anchor = anchor.parent
        resolve_path(ctx.cwd, str(anchor), must_exist=False)

        base = Path(ctx.cwd).resolve()
        try:
            if Path(path).is_absolute():
                matches = sorted(Path("/").glob(path.lstrip("/")))
            else:
                matches = sorted(base.glob(path))
            resolved = [m.resolve() for m in matches]
        except (ValueError, NotImplementedError, OSError, RuntimeError) as e:
            # e.g. "docs/a**": "**" must be a whole path component.
            raise InvalidPath(path, str(e)) from e
        out = [display_path(base, rp) for rp in resolved if is_within(base, rp)]
        if not out:
            raise PathNotFound(path)
        return out

    def prepare(self, ctx: ToolContext, req: SearchDocsRequest) -> list[str]:
        if not req.query.strip():
            raise ValidationError(ValidationKind.EMPTY_QUERY, "Search query is empty")
        # Checked before the path so a missing rga is reported as such even
        # when the path does not match anything.
        if which(self.executable) is None:
            raise ExecutionError(ExecutionKind.TOOL_NOT_INSTALLED, INSTALL_HINT)

        return [
            self.executable,
            "-i",
            "--max-count", str(MAX_COUNT),
            "--context", str(CONTEXT_LINES),
            "--color", "never",
            # Keep a leading "-" in the query from being read as a flag.
            "-e", req.query,
            "--",
            *self.targets(ctx, req.path),
        ]

    def run(self, ctx: ToolContext, argv: list[str]) -> ToolResult:
        try:
            res = run_cmd(argv, cwd=str(ctx.cwd), timeout=ctx.timeout)
            stdout = interpret_exit(res, no_match_codes=(1,))
        except ExecutionError as e:
            if e.kind is ExecutionKind.TOOL_NOT_INSTALLED:
                raise ExecutionError(ExecutionKind.TOOL_NOT_INSTALLED, INSTALL_HINT) from e
            if e.kind is ExecutionKind.NONZERO_EXIT:
                raise ExecutionError(
                    ExecutionKind.NONZERO_EXIT,
                    f"Search failed with exit code {e.exit_code}: {e.stderr.strip()}",
                    exit_code=e.exit_code,
                    stderr=e.stderr,
                ) from e
            raise
        if stdout is None:
            return ToolResult("No matches found")
        bounded = bound_text(stdout, force_truncated=res.truncated)
        return ToolResult(bounded.text, truncated=bounded.truncated)
