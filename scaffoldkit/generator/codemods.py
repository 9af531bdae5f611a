"""Default source injection engine.

Text-level codemods used by ``Generator.resolve_files`` to merge the
injection ledger into generated files:

- :func:`inject_imports` adds import statements after the last existing
  top-level import.
- :func:`inject_options` adds properties to the root options object
  (``new Vue({``, ``createApp({``, ``defineConfig({`` or ``export default {``).

Both skip entries already present in the source.  For single-file components
(``*.vue``) only the ``<script>`` block is edited.  Syntactic validity of the
result is the plugin author's concern.
"""

from __future__ import annotations

import re
from typing import Callable, Protocol

_SCRIPT_BLOCK_RE = re.compile(r"(<script\b[^>]*>)(.*?)(</script>)", re.DOTALL)
_IMPORT_END_RE = re.compile(r"""(['"][^'"]+['"]\s*;?\s*(//.*|/\*.*\*/\s*)?$)""")
_ROOT_OPTIONS_RE = re.compile(
    r"(new\s+Vue\s*\(\s*\{|createApp\s*\(\s*\{|defineConfig\s*\(\s*\{|export\s+default\s*\{)"
)


class Injector(Protocol):
    """Interface of the injection engine the generator delegates to."""

    def inject_imports(self, path: str, source: str, imports: list[str]) -> str: ...

    def inject_options(self, path: str, source: str, injections: list[str]) -> str: ...


class TextInjector:
    """The default :class:`Injector`, backed by the module-level codemods."""

    def inject_imports(self, path: str, source: str, imports: list[str]) -> str:
        return inject_imports(path, source, imports)

    def inject_options(self, path: str, source: str, injections: list[str]) -> str:
        return inject_options(path, source, injections)


# ---------------------------------------------------------------------------
# Imports
# ---------------------------------------------------------------------------


def inject_imports(path: str, source: str, imports: list[str]) -> str:
    """Insert *imports* after the last import statement of *source*."""
    return _on_script(path, source, lambda script: _inject_imports(script, imports))


def _inject_imports(source: str, imports: list[str]) -> str:
    lines = source.split("\n")
    existing: set[str] = set()
    last_import_end = -1

    i = 0
    while i < len(lines):
        if lines[i].startswith("import ") or lines[i].startswith("import{") or lines[i] == "import":
            start = i
            # multi-line ``import {\n a,\n b\n} from 'x'``
            while i < len(lines) - 1 and not _IMPORT_END_RE.search(lines[i]):
                i += 1
            existing.add(_normalize_statement(" ".join(lines[start : i + 1])))
            last_import_end = i
        i += 1

    pending = []
    for statement in imports:
        key = _normalize_statement(statement)
        if key not in existing:
            existing.add(key)
            pending.append(statement)
    if not pending:
        return source

    insert_at = last_import_end + 1
    if last_import_end < 0:
        # keep a leading blank-line separation from the first statement
        return "\n".join([*pending, "", *lines]) if source.strip() else "\n".join(pending) + "\n"
    lines[insert_at:insert_at] = pending
    return "\n".join(lines)


def _normalize_statement(statement: str) -> str:
    text = re.sub(r"\s+", " ", statement).strip().rstrip(";").strip()
    return text.replace('"', "'")


# ---------------------------------------------------------------------------
# Root options
# ---------------------------------------------------------------------------


def inject_options(path: str, source: str, injections: list[str]) -> str:
    """Add *injections* as the first properties of the root options object."""
    return _on_script(path, source, lambda script: _inject_options(script, injections))


def _inject_options(source: str, injections: list[str]) -> str:
    match = _ROOT_OPTIONS_RE.search(source)
    if not match:
        return source

    body = source[match.end() :]
    pending = [item for item in injections if not _has_property(body, item)]
    if not pending:
        return source

    indent = _detect_indent(body)
    inserted = "".join(f"\n{indent}{item}," for item in pending)
    if body.lstrip().startswith("}"):
        # empty object: drop the dangling comma, close on its own line
        inserted = inserted.rstrip(",") + "\n"
        return source[: match.end()] + inserted + body.lstrip()
    return source[: match.end()] + inserted + body


def _has_property(body: str, item: str) -> bool:
    escaped = re.escape(item.strip().rstrip(","))
    return re.search(rf"(^|[\s,{{]){escaped}\s*(,|\n|}})", body) is not None


def _detect_indent(body: str) -> str:
    match = re.match(r"\s*?\n([ \t]+)\S", body)
    return match.group(1) if match else "  "


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _on_script(path: str, source: str, edit: Callable[[str], str]) -> str:
    """Apply *edit* to the whole source, or to the ``<script>`` block of a ``.vue`` file."""
    if not path.endswith(".vue"):
        return edit(source)
    match = _SCRIPT_BLOCK_RE.search(source)
    if not match:
        return source
    script = edit(match.group(2))
    return source[: match.start(2)] + script + source[match.end(2) :]
