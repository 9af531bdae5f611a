"""Shared utility functions for scaffoldkit.

Provides Rich-based console logging, plugin-id helpers, manifest key
ordering, and path helpers used across the generator and the invoke runner.
"""

from __future__ import annotations

import re
from typing import Any

from rich.console import Console
from rich.markup import escape

console = Console()
err_console = Console(stderr=True)

# ---------------------------------------------------------------------------
# Console logging
# ---------------------------------------------------------------------------


def _tag(tag: str | None) -> str:
    if not tag:
        return ""
    return f"[dim white on bright_black] {escape(tag)} [/dim white on bright_black]"


def _format(label: str, msg: str) -> str:
    """Prefix the first line of *msg* with *label*, keeping the rest aligned."""
    lines = escape(str(msg)).split("\n")
    head = f"{label} {lines[0]}" if label else lines[0]
    return "\n".join([head, *lines[1:]])


def log(msg: str = "", tag: str | None = None) -> None:
    """Print a plain message, optionally with a tag badge."""
    console.print(_format(_tag(tag), msg) if tag else escape(str(msg)))


def info(msg: str, tag: str | None = None) -> None:
    """Print a blue ``INFO`` message."""
    console.print(_format("[black on blue] INFO [/black on blue]" + _tag(tag), msg))


def done(msg: str, tag: str | None = None) -> None:
    """Print a green ``DONE`` message."""
    console.print(_format("[black on green] DONE [/black on green]" + _tag(tag), msg))


def warn(msg: str, tag: str | None = None) -> None:
    """Print a yellow ``WARN`` message to stderr."""
    err_console.print(
        _format("[black on yellow] WARN [/black on yellow]" + _tag(tag), f"{msg}")
    )


def error(msg: str, tag: str | None = None) -> None:
    """Print a red ``ERROR`` message to stderr."""
    err_console.print(
        _format("[white on red] ERROR [/white on red]" + _tag(tag), f"{msg}"),
        style="red",
    )


# ---------------------------------------------------------------------------
# Plugin ids
# ---------------------------------------------------------------------------

PLUGIN_RE = re.compile(r"^(@scaffoldkit/|scaffoldkit-|@[\w-]+(\.)?[\w-]+/scaffoldkit-)cli-plugin-")
SCOPE_RE = re.compile(r"^@[\w-]+(\.)?[\w-]+/")


def is_plugin(plugin_id: str) -> bool:
    """Return ``True`` if *plugin_id* follows the plugin naming convention.

    Examples::

        is_plugin("@scaffoldkit/cli-plugin-babel")       -> True
        is_plugin("scaffoldkit-cli-plugin-foo")          -> True
        is_plugin("@acme/scaffoldkit-cli-plugin-foo")    -> True
        is_plugin("lodash")                              -> False
    """
    return bool(PLUGIN_RE.match(plugin_id))


def to_short_plugin_id(plugin_id: str) -> str:
    """Strip the plugin prefix: ``@scaffoldkit/cli-plugin-babel`` -> ``babel``."""
    return PLUGIN_RE.sub("", plugin_id)


def matches_plugin_id(input_id: str, full_id: str) -> bool:
    """Return ``True`` if *input_id* names *full_id* in full, short, or scoped-short form."""
    short = PLUGIN_RE.sub("", full_id)
    return (
        full_id == input_id
        or short == input_id
        or short == SCOPE_RE.sub("", input_id)
    )


# ---------------------------------------------------------------------------
# Manifest helpers
# ---------------------------------------------------------------------------


def sort_object(
    obj: dict[str, Any] | None,
    key_order: list[str] | None = None,
    dont_sort_by_unicode: bool = False,
) -> dict[str, Any] | None:
    """Return a copy of *obj* with *key_order* keys first and the rest sorted.

    Keys in *key_order* that are absent from *obj* are skipped.  Remaining
    keys are sorted by code point unless *dont_sort_by_unicode* is set, in
    which case they keep their insertion order.  ``None`` passes through.
    """
    if obj is None:
        return None
    remaining = dict(obj)
    res: dict[str, Any] = {}
    for key in key_order or []:
        if key in remaining:
            res[key] = remaining.pop(key)
    keys = list(remaining)
    if not dont_sort_by_unicode:
        keys.sort()
    for key in keys:
        res[key] = remaining[key]
    return res


def ensure_eol(text: str) -> str:
    """Append a newline unless *text* already ends with one."""
    if not text.endswith("\n"):
        return text + "\n"
    return text


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def normalize_path(path: str) -> str:
    """Convert *path* to forward slashes and drop a leading ``./``."""
    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def normalize_file_paths(files: dict[str, Any]) -> dict[str, Any]:
    """Rewrite every key of *files* into canonical form, in place.

    An entry whose key changes replaces whatever is already stored under the
    canonical key, so exactly one entry survives per logical path.
    """
    for name in list(files):
        normalized = normalize_path(name)
        if normalized != name:
            files[normalized] = files.pop(name)
    return files
