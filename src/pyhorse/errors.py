from __future__ import annotations

from enum import Enum


class ValidationKind(str, Enum):
    DISALLOWED_COMMAND = "DisallowedCommand"
    DISALLOWED_OPERATOR = "DisallowedOperator"
    DISALLOWED_ARGUMENT = "DisallowedArgument"
    EMPTY_COMMAND = "EmptyCommand"
    PATH_ESCAPE = "PathEscape"
    PATH_NOT_FOUND = "NotFound"
    INVALID_PATH = "InvalidPath"
    EMPTY_QUERY = "EmptyQuery"
    INVALID_ARGUMENTS = "InvalidArguments"
    UNKNOWN_TOOL = "UnknownTool"


class ExecutionKind(str, Enum):
    TIMEOUT = "Timeout"
    SPAWN_FAILURE = "SpawnFailure"
    TOOL_NOT_INSTALLED = "ToolNotInstalled"
    NONZERO_EXIT = "NonZeroExit"
    IO = "IOError"


class ToolError(RuntimeError):
    """Base class for recoverable tool-call failures.

    Every subclass carries a ``kind`` so the dispatcher can report a stable
    identifier next to the human-readable message.
    """

    kind: Enum

    def __init__(self, kind: Enum, message: str):
        super().__init__(message)
        self.kind = kind

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(ToolError):
    """The request was refused before anything ran."""

    kind: ValidationKind


class ExecutionError(ToolError):
    """The request was approved but running it failed."""

    kind: ExecutionKind

    def __init__(self, kind: ExecutionKind, message: str, *, exit_code: int | None = None, stderr: str = ""):
        super().__init__(kind, message)
        self.exit_code = exit_code
        self.stderr = stderr
