"""Shared fixtures for the pyhorse test suite."""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from pyhorse.tools.base import ToolContext


@pytest.fixture()
def workdir(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    (root / "docs").mkdir(parents=True)
    (root / "README.md").write_text("# Demo\n\nA small project.\n", encoding="utf-8")
    (root / "docs" / "notes.txt").write_text("\n".join(f"line {i}" for i in range(1, 21)) + "\n", encoding="utf-8")
    return root


@pytest.fixture()
def ctx(workdir: Path) -> ToolContext:
    return ToolContext(cwd=workdir.resolve(), timeout=10)


@pytest.fixture()
def fake_bin(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Directory placed alone on PATH; ``make(name, body)`` drops a shell script in it."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    monkeypatch.setenv("PATH", str(bin_dir))

    def make(name: str, body: str) -> Path:
        p = bin_dir / name
        p.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
        p.chmod(p.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return p

    if os.name == "nt":
        pytest.skip("shell script fakes are POSIX only")
    return make
