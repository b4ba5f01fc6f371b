"""Filesystem helpers."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Sequence


def ensure_parent(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _stage(path: Path, data: str, encoding: str) -> Path:
    ensure_parent(path)
    tmp = tempfile.NamedTemporaryFile(
        "w",
        encoding=encoding,
        delete=False,
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
        newline="\n",
    )
    try:
        with tmp:
            tmp.write(data)
    except OSError:
        Path(tmp.name).unlink(missing_ok=True)
        raise
    return Path(tmp.name)


def write_texts_atomic(
    files: Sequence[tuple[Path, str]], *, encoding: str = "utf-8"
) -> list[Path]:
    """Write every file or none of them.

    All contents are staged next to their targets before any target is touched.
    If moving one into place fails, targets already moved are put back the way
    they were and the error propagates.
    """

    staged: list[tuple[Path, Path]] = []
    placed: list[tuple[Path, Path | None]] = []
    try:
        for path, data in files:
            staged.append((_stage(path, data, encoding), path))
        for tmp_path, path in staged:
            backup = None
            if path.is_file():
                backup = path.with_name(f".{path.name}.bak")
                path.replace(backup)
            try:
                tmp_path.replace(path)
            except OSError:
                if backup is not None:
                    backup.replace(path)
                raise
            placed.append((path, backup))
    except OSError:
        for path, backup in reversed(placed):
            if backup is not None:
                backup.replace(path)
            else:
                path.unlink(missing_ok=True)
        raise
    finally:
        for tmp_path, _ in staged:
            tmp_path.unlink(missing_ok=True)

    for _, backup in placed:
        if backup is not None:
            backup.unlink(missing_ok=True)
    return [path for _, path in staged]


def is_writable_dir(path: Path) -> bool:
    """Return True when ``path`` exists (or can be created) and accepts writes."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    return path.is_dir() and os.access(path, os.W_OK)


__all__ = ["ensure_parent", "write_texts_atomic", "is_writable_dir"]
