from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from ..errors import ValidationError, ValidationKind

# Read-only inspection commands. Matched case-sensitively against the first token.
ALLOWED_COMMANDS: frozenset[str] = frozenset(
    {"grep", "find", "cat", "head", "tail", "ls", "tree", "wc", "file", "rg"}
)

# Checked against the whole raw string, in this order. Two-character operators
# come before their one-character prefixes so the reported operator is the
# one the caller actually wrote.
FORBIDDEN_OPERATORS: tuple[str, ...] = ("&&", "||", "$(", ">>", "<<", "|", ";", "`", ">", "<")

# Flags that would let an allow-listed command write files, run programs or
# follow symlinks out of the working directory.
FORBIDDEN_ARGUMENTS: Mapping[str, frozenset[str]] = {
    "find": frozenset({
        "-exec", "-execdir", "-ok", "-okdir", "-delete",
        "-fprint", "-fprint0", "-fprintf", "-fls",
        "-L", "-follow",
    }),
    "rg": frozenset({"--pre", "--pre-glob", "--follow"}),
    "tree": frozenset({"--output", "--dereference"}),
    "file": frozenset({"--compile"}),
    "grep": frozenset({"--dereference-recursive"}),
    "ls": frozenset({"--dereference"}),
}

# Short options may be bundled ("tree -ao out"), so these letters are refused
# anywhere in a single-dash cluster. tree -R reruns itself with -o.
FORBIDDEN_SHORT_FLAGS: Mapping[str, str] = {
    "tree": "oRl",
    "file": "C",
    "grep": "R",
    "rg": "L",
    "ls": "L",
}


@dataclass(frozen=True)
class Verdict:
    approved: bool
    kind: ValidationKind | None = None
    detail: str | None = None

    @staticmethod
    def approve() -> "Verdict":
        return Verdict(approved=True)

    @staticmethod
    def reject(kind: ValidationKind, detail: str) -> "Verdict":
        return Verdict(approved=False, kind=kind, detail=detail)

    def message(self, allowed: frozenset[str] = ALLOWED_COMMANDS) -> str:
        if self.approved:
            return "Approved"
        if self.kind is ValidationKind.DISALLOWED_COMMAND:
            return f"Command not in whitelist: {self.detail}. Allowed commands: {', '.join(sorted(allowed))}"
        if self.kind is ValidationKind.DISALLOWED_OPERATOR:
            return f"Forbidden pattern in command: {self.detail}"
        if self.kind is ValidationKind.DISALLOWED_ARGUMENT:
            return f"Forbidden argument in command: {self.detail}"
        if self.kind is ValidationKind.EMPTY_COMMAND:
            return "Empty command"
        return f"Rejected: {self.detail}"

    def raise_for_rejection(self, allowed: frozenset[str] = ALLOWED_COMMANDS) -> None:
        if self.approved:
            return
        if self.kind is None:
            raise ValueError("Rejected verdict without a kind")
        raise ValidationError(self.kind, self.message(allowed))


def _argument_flag(arg: str) -> str:
    # "--pre=cmd" and "--pre cmd" are the same flag.
    return arg.split("=", 1)[0] if arg.startswith("--") else arg


@dataclass(frozen=True)
class CommandValidator:
    """Syntactic gate for bash tool commands.

    The operator scan covers the entire string, the allow-list covers the
    executable and the argument denial covers the flags of that executable.
    Any one of them rejects on its own. The
    executor never hands the string to a shell, so catching smuggled operators
    is all the parsing needed.
    """

    allowed: frozenset[str] = ALLOWED_COMMANDS
    forbidden_operators: tuple[str, ...] = FORBIDDEN_OPERATORS
    forbidden_arguments: Mapping[str, frozenset[str]] = field(default_factory=lambda: dict(FORBIDDEN_ARGUMENTS))
    forbidden_short_flags: Mapping[str, str] = field(default_factory=lambda: dict(FORBIDDEN_SHORT_FLAGS))

    def validate(self, raw: str) -> Verdict:
        trimmed = (raw or "").strip()
        if not trimmed:
            return Verdict.reject(ValidationKind.EMPTY_COMMAND, "")

        for op in self.forbidden_operators:
            if op in trimmed:
                return Verdict.reject(ValidationKind.DISALLOWED_OPERATOR, op)

        tokens = trimmed.split()
        name = tokens[0]
        if name not in self.allowed:
            return Verdict.reject(ValidationKind.DISALLOWED_COMMAND, name)

        denied = self.forbidden_arguments.get(name, frozenset())
        letters = self.forbidden_short_flags.get(name, "")
        for arg in tokens[1:]:
            arg = arg.strip("'\"")
            flag = _argument_flag(arg)
            if flag in denied:
                return Verdict.reject(ValidationKind.DISALLOWED_ARGUMENT, f"{name} {flag}")
            if arg.startswith("-") and not arg.startswith("--"):
                for letter in letters:
                    if letter in arg[1:]:
                        return Verdict.reject(ValidationKind.DISALLOWED_ARGUMENT, f"{name} -{letter}")

        return Verdict.approve()
