"""Filesystem helpers."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from pathlib import Path

__all__ = ["atomic_write_text", "atomic_write_many"]


def _write_temp(path: Path, content: str, *, encoding: str) -> Path:
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
    return tmp_path


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Write text to path atomically using temp file + replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = _write_temp(path, content, encoding=encoding)
    try:
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


def atomic_write_many(contents: Mapping[Path, str], *, encoding: str = "utf-8") -> None:
    """Write several files so that either all of them change or none do.

    Every temp file is staged before the first replace. If a replace fails
    midway, files already replaced are restored from their previous content.
    """
    originals: dict[Path, str] = {}
    staged: dict[Path, Path] = {}
    try:
        for path, content in contents.items():
            originals[path] = path.read_bytes().decode(encoding)
            staged[path] = _write_temp(path, content, encoding=encoding)

        done: list[Path] = []
        try:
            for path, tmp_path in staged.items():
                os.replace(tmp_path, path)
                done.append(path)
        except OSError:
            for path in done:
                atomic_write_text(path, originals[path], encoding=encoding)
            raise
    finally:
        for tmp_path in staged.values():
            tmp_path.unlink(missing_ok=True)
