from __future__ import annotations
from dataclasses import dataclass, field
import shlex

from ..base import Tool, ToolSpec, ToolResult, ToolContext, BashCommandRequest
from ..validation import ALLOWED_COMMANDS, CommandValidator
from ...errors import ValidationError, ValidationKind
from ...util.fs import resolve_path
from ...util.subprocess import run_cmd, interpret_exit
from ...util.truncate import bound_text

# Exit status 1 means "nothing matched" only for these.
NO_MATCH_COMMANDS = frozenset({"grep", "rg"})


def _path_candidates(arg: str) -> list[str]:
    """Every part of ``arg`` that the command could open as a path.

    Plain arguments are taken whole. Values can also ride on a flag:
    ``--ignore-file=/etc/x``, ``-f/etc/passwd``, or after a bundle like
    ``-rf/etc/passwd``.
    """
    if arg.startswith("--"):
        _, sep, value = arg.partition("=")
        return [value] if sep and value else []
    if arg.startswith("-") and len(arg) > 1:
        out = [arg[2:]] if len(arg) > 2 else []
        for anchor in ("/", "~"):
            i = arg.find(anchor, 2)
            if i > 0:
                out.append(arg[i:])
        return [c for c in out if c]
    return [arg]


@dataclass
class BashTool(Tool):
    validator: CommandValidator = field(default_factory=CommandValidator)
    timeout: float | None = None
    spec: ToolSpec = ToolSpec(
        name="bash",
        description=(
            "Execute a read-only bash command. Only the following commands are allowed: "
            f"{', '.join(sorted(ALLOWED_COMMANDS))}. Pipes, redirects and command chaining "
            "with |, ;, &&, ||, backticks or $(...) are not allowed. Arguments are not "
            "expanded by a shell (no globs or variables)."
        ),
        parameters={
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "The bash command to execute"},
            },
            "required": ["command"],
        },
    )

    def prepare(self, ctx: ToolContext, req: BashCommandRequest) -> list[str]:
        """Validate ``req`` and return the argv to run; raises ValidationError."""
        self.validator.validate(req.command).raise_for_rejection(self.validator.allowed)
        try:
            argv = shlex.split(req.command)
        except ValueError as e:
            raise ValidationError(ValidationKind.INVALID_ARGUMENTS, f"Cannot parse command: {e}") from e
        # Reading outside the tree is refused even for allow-listed commands.
        # Every candidate goes through the guard, so a symlink inside the tree
        # that points out of it is an escape as well.
        for arg in argv[1:]:
            for candidate in _path_candidates(arg):
                resolve_path(ctx.cwd, candidate, must_exist=False)
        return argv

    def run(self, ctx: ToolContext, argv: list[str]) -> ToolResult:
        timeout = self.timeout if self.timeout is not None else ctx.timeout
        res = run_cmd(argv, cwd=str(ctx.cwd), timeout=timeout)

        no_match = (1,) if argv[0] in NO_MATCH_COMMANDS else ()
        stdout = interpret_exit(res, no_match_codes=no_match)
        if stdout is None:
            return ToolResult("No matches found")

        output = stdout
        if res.stderr:
            if output:
                output += "\n--- stderr ---\n"
            output += res.stderr
        bounded = bound_text(output, force_truncated=res.truncated)
        return ToolResult(bounded.text, truncated=bounded.truncated)
