from __future__ import annotations
from dataclasses import dataclass
from itertools import islice
from pathlib import Path

from ..base import Tool, ToolSpec, ToolResult, ToolContext, ReadFileRequest
from ...errors import ExecutionError, ExecutionKind
from ...util.fs import resolve_path
from ...util.truncate import MAX_BYTES, MAX_LINES, bound_lines

TRUNCATION_NOTE = "file exceeds 50KB or 1000 lines limit"

@dataclass
class ReadFileTool(Tool):
    max_bytes: int = MAX_BYTES
    max_lines: int = MAX_LINES
    spec: ToolSpec = ToolSpec(
        name="read_file",
        description=(
            "Read the contents of a file. Paths are relative to the working directory. "
            "Use start_line and end_line to read specific portions of large files."
        ),
        parameters={
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The path to the file to read, relative to the working directory"},
                "start_line": {"type": "integer", "description": "Optional starting line number (1-indexed)"},
                "end_line": {"type": "integer", "description": "Optional ending line number (1-indexed, inclusive)"},
            },
            "required": ["path"],
        },
    )

    def prepare(self, ctx: ToolContext, req: ReadFileRequest) -> tuple[Path, ReadFileRequest]:
        return resolve_path(ctx.cwd, req.path), req

    def run(self, ctx: ToolContext, prepared: tuple[Path, ReadFileRequest]) -> ToolResult:
        p, req = prepared
        if not p.is_file():
            raise ExecutionError(ExecutionKind.IO, f"Not a file: {req.path}")

        start = max((req.start_line or 1) - 1, 0)
        end = req.end_line
        try:
            with p.open("r", encoding="utf-8", errors="replace", newline=None) as f:
                lines = (line.rstrip("\n") for line in f)
                selected = islice(lines, start, end)
                bounded = bound_lines(
                    selected,
                    max_bytes=self.max_bytes,
                    max_lines=self.max_lines,
                    note=TRUNCATION_NOTE,
                )
        except OSError as e:
            raise ExecutionError(ExecutionKind.IO, f"IO error: {e}") from e
        return ToolResult(bounded.text, truncated=bounded.truncated)
