# firstrun/core/fileio.py
"""
File helpers for state that must never be observed half-written.
"""
import os
import tempfile
from pathlib import Path


def atomic_write_text(path: Path, content: str, mode: int | None = None) -> None:
    """
    Write ``content`` to ``path`` all-or-nothing.

    Writes a temporary file in the same directory, fsyncs it and renames it
    over ``path``; the directory is fsynced afterwards so the rename itself
    survives a crash. Raises OSError on failure, leaving ``path`` untouched.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise

    dir_fd = os.open(path.parent, os.O_RDONLY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)
