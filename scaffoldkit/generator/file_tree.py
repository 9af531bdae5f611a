"""Reading a project into a virtual file tree and writing it back.

``write_file_tree`` is the default writer handed to ``Generator``: it deletes
files that were present in the initial snapshot but are gone from the final
tree, then writes every remaining entry.  ``read_files`` pre-seeds a tree
from an existing project when a plugin is invoked on it.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any

from scaffoldkit.config import Config

from .templates import is_binary

async def write_file_tree(
    directory: str | Path,
    files: dict[str, Any],
    previous_files: dict[str, Any] | None = None,
    include: set[str] | None = None,
    *,
    config: Config | None = None,
) -> None:
    """Persist *files* under *directory*.

    Args:
        directory: Project root.
        files: Final tree (relative POSIX path -> text or bytes).
        previous_files: Initial snapshot; entries missing from *files* are
            deleted from disk.
        include: Optional whitelist of paths to write.
        config: Settings; ``skip_write`` turns the call into a no-op.
    """
    config = config or Config.from_env()
    if config.skip_write:
        return
    await asyncio.to_thread(_write_tree, Path(directory), files, previous_files, include)


def _write_tree(
    root: Path,
    files: dict[str, Any],
    previous_files: dict[str, Any] | None,
    include: set[str] | None,
) -> None:
    if previous_files:
        for name in previous_files:
            if name not in files:
                (root / name).unlink(missing_ok=True)

    for name, content in files.items():
        if include is not None and name not in include:
            continue
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")


async def read_files(
    context: str | Path, *, config: Config | None = None
) -> dict[str, str | bytes]:
    """Load every file under *context* into a tree, skipping ignored directories."""
    config = config or Config.from_env()
    return await asyncio.to_thread(_read_tree, Path(context), set(config.ignored_dirs))


def _read_tree(root: Path, ignored: set[str]) -> dict[str, str | bytes]:
    files: dict[str, str | bytes] = {}
    if not root.is_dir():
        return files
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in ignored)
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            raw = path.read_bytes()
            key = path.relative_to(root).as_posix()
            files[key] = _decode(raw)
    return files


def _decode(raw: bytes) -> str | bytes:
    if is_binary(raw):
        return raw
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw
