from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..errors import ExecutionError, ValidationError
from ..util.fs import resolve_path
from ..util.subprocess import run_cmd
from ..util.truncate import bound_text

DEFAULT_PREAMBLE = (
    "You are a helpful search assistant. You can read files and execute safe bash commands "
    "to help users explore and understand their codebase."
)
AGENTS_FILE = "AGENTS.md"
LISTING_ARGV = ["find", ".", "-maxdepth", "3", "-type", "f"]
LISTING_TIMEOUT = 30


@dataclass
class Preamble:
    text: str
    source: Path | None = None
    # Set when the directory listing could not be gathered.
    listing_error: str | None = None


def gather_directory_context(base_dir: Path) -> str:
    """List files up to three levels deep, bounded like any tool output."""
    res = run_cmd(LISTING_ARGV, cwd=str(base_dir), timeout=LISTING_TIMEOUT)
    if res.returncode != 0:
        return "(Directory listing unavailable)"
    return bound_text(res.stdout, force_truncated=res.truncated).text


def load_preamble(base_dir: Path, preamble_file: str | None = None) -> Preamble:
    """AGENTS.md (or ``preamble_file``) from the target directory plus a file listing."""
    source: Path | None = None
    try:
        candidate = resolve_path(base_dir, preamble_file or AGENTS_FILE)
    except ValidationError:
        candidate = None
    if candidate is not None and candidate.is_file():
        text = candidate.read_text(encoding="utf-8", errors="replace")
        source = candidate
    else:
        text = DEFAULT_PREAMBLE

    try:
        listing = gather_directory_context(base_dir)
    except ExecutionError as e:
        return Preamble(text=text, source=source, listing_error=e.message)

    text += "\n\n## Available Files\n\n"
    text += "The following files are available in the working directory:\n\n"
    text += listing
    return Preamble(text=text, source=source)
