from __future__ import annotations
import os
import shutil
import signal
import subprocess
import threading
from dataclasses import dataclass
from typing import IO, Collection, Mapping, Optional, Sequence

from ..errors import ExecutionError, ExecutionKind

DEFAULT_TIMEOUT = 30
# Per stream; the tools bound what they report far below this.
MAX_CAPTURE_BYTES = 1024 * 1024

EXIT_NOT_FOUND = 127

# Only what a read-only inspection command needs to find itself and decode text.
_ENV_PASSTHROUGH = ("PATH", "HOME", "LANG", "LC_ALL", "LC_CTYPE", "TERM", "SYSTEMROOT", "TMPDIR")


@dataclass
class CmdResult:
    returncode: int
    stdout: str
    stderr: str
    truncated: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def minimal_env(source: Mapping[str, str] | None = None) -> dict[str, str]:
    source = os.environ if source is None else source
    return {k: source[k] for k in _ENV_PASSTHROUGH if source.get(k)}


def which(executable: str, env: Mapping[str, str] | None = None) -> Optional[str]:
    env = minimal_env() if env is None else env
    return shutil.which(executable, path=env.get("PATH"))


def _drain(stream: IO[bytes], sink: bytearray, limit: int, overflow: list[bool]) -> None:
    # Keep reading past the limit so the child never blocks on a full pipe.
    try:
        while True:
            chunk = stream.read1(65536)
            if not chunk:
                break
            room = limit - len(sink)
            if room > 0:
                sink += chunk[:room]
            if len(chunk) > room:
                overflow[0] = True
    except (OSError, ValueError):
        pass
    finally:
        try:
            stream.close()
        except OSError:
            pass


def _kill_tree(proc: subprocess.Popen) -> None:
    if proc.poll() is not None:
        return
    try:
        if os.name != "nt":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except (ProcessLookupError, PermissionError):
        proc.kill()
    proc.wait()


def run_cmd(
    cmd: Sequence[str],
    cwd: str,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    *,
    env: Mapping[str, str] | None = None,
    max_capture_bytes: int = MAX_CAPTURE_BYTES,
) -> CmdResult:
    """Run ``cmd`` as an argument vector; never through a shell.

    The child gets its own session so that a timeout (or Ctrl+C while
    waiting) kills everything it started. Raises ExecutionError for timeout,
    missing executable and spawn failures; a nonzero exit is returned as is,
    see ``interpret_exit``.
    """
    argv = list(cmd)
    if not argv:
        raise ExecutionError(ExecutionKind.SPAWN_FAILURE, "Empty argument vector.")
    try:
        proc = subprocess.Popen(
            argv,
            cwd=cwd,
            env=dict(minimal_env() if env is None else env),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            shell=False,
            start_new_session=(os.name != "nt"),
        )
    except FileNotFoundError as e:
        raise ExecutionError(
            ExecutionKind.TOOL_NOT_INSTALLED,
            f"Executable not found: {argv[0]}",
            exit_code=EXIT_NOT_FOUND,
        ) from e
    except OSError as e:
        raise ExecutionError(ExecutionKind.SPAWN_FAILURE, f"Failed to start {argv[0]}: {e}") from e

    out_buf, err_buf = bytearray(), bytearray()
    overflow = [False]
    readers = [
        threading.Thread(target=_drain, args=(proc.stdout, out_buf, max_capture_bytes, overflow), daemon=True),
        threading.Thread(target=_drain, args=(proc.stderr, err_buf, max_capture_bytes, overflow), daemon=True),
    ]
    for t in readers:
        t.start()

    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_tree(proc)
        for t in readers:
            t.join(timeout=1.0)
        raise ExecutionError(ExecutionKind.TIMEOUT, f"Command timed out after {timeout:g} seconds")
    except BaseException:
        _kill_tree(proc)
        raise

    for t in readers:
        # A grandchild that escaped the group could hold the pipes open.
        t.join(timeout=1.0)

    return CmdResult(
        returncode=proc.returncode,
        stdout=out_buf.decode("utf-8", errors="replace"),
        stderr=err_buf.decode("utf-8", errors="replace"),
        truncated=overflow[0],
    )


def interpret_exit(res: CmdResult, *, no_match_codes: Collection[int] = ()) -> str | None:
    """Map an exit status to tool semantics.

    Returns stdout on success, None for a "no matches" status, and raises
    ExecutionError otherwise. Which codes mean "no matches" depends on the
    tool (grep/rg/rga use 1); nothing else gets that treatment.
    """
    if res.returncode == 0:
        return res.stdout
    if res.returncode in no_match_codes:
        return None
    if res.returncode == EXIT_NOT_FOUND:
        raise ExecutionError(
            ExecutionKind.TOOL_NOT_INSTALLED,
            "Executable not found (exit code 127).",
            exit_code=res.returncode,
            stderr=res.stderr,
        )
    detail = (res.stderr or res.stdout).strip()
    message = f"Command failed with exit code {res.returncode}"
    if detail:
        message += f": {detail}"
    raise ExecutionError(
        ExecutionKind.NONZERO_EXIT,
        message,
        exit_code=res.returncode,
        stderr=res.stderr,
    )
