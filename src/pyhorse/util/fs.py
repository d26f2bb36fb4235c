from __future__ import annotations
from pathlib import Path

from ..errors import ValidationError, ValidationKind


class FsError(ValidationError):
    pass


class PathEscape(FsError):
    def __init__(self, requested: str):
        super().__init__(ValidationKind.PATH_ESCAPE, f"Path escapes working directory: {requested}")
        self.requested = requested


class PathNotFound(FsError):
    def __init__(self, requested: str):
        super().__init__(ValidationKind.PATH_NOT_FOUND, f"File not found: {requested}")
        self.requested = requested


class InvalidPath(FsError):
    def __init__(self, requested: str, reason: str):
        super().__init__(ValidationKind.INVALID_PATH, f"Invalid path {requested!r}: {reason}")
        self.requested = requested


def is_within(base: Path, p: Path) -> bool:
    try:
        p.relative_to(base)
    except ValueError:
        return False
    return True


def resolve_path(cwd: Path, path_str: str, *, must_exist: bool = True) -> Path:
    """Resolve ``path_str`` against ``cwd`` and keep it inside ``cwd``.

    Symlinks are resolved before the containment check, so a link inside the
    tree that points elsewhere is an escape. Escape is reported before
    existence: ``../../etc/passwd`` is always PathEscape.
    """
    if "\x00" in path_str:
        raise InvalidPath(path_str, "embedded null byte")
    try:
        base = Path(cwd).resolve()
        # An absolute request replaces the base when joined.
        p = (base / Path(path_str).expanduser()).resolve()
    except (OSError, ValueError, RuntimeError) as e:
        raise InvalidPath(path_str, str(e)) from e

    if not is_within(base, p):
        raise PathEscape(path_str)
    if must_exist and not p.exists():
        raise PathNotFound(path_str)
    return p


def display_path(cwd: Path, p: Path) -> str:
    base = Path(cwd).resolve()
    if is_within(base, p):
        rel = p.relative_to(base)
        return str(rel) if str(rel) != "." else "."
    return str(p)
