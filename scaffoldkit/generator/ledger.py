"""Deferred injection ledger.

Plugins never edit a file's imports or root options directly.  They record
what they want in the ledger, keyed by target path, and the generator applies
every recorded entry once after all plugins have run.  Entries keep insertion
order across plugins and duplicates are dropped when they are added.
"""

from __future__ import annotations

from collections.abc import Iterable

from scaffoldkit.utils import normalize_path


class InjectionLedger:
    """Ordered map of ``path -> ordered set`` for imports and option fragments."""

    def __init__(self) -> None:
        # dict keys double as an insertion-ordered set
        self._imports: dict[str, dict[str, None]] = {}
        self._options: dict[str, dict[str, None]] = {}

    # -- Recording ---------------------------------------------------------

    def add_imports(self, path: str, imports: str | Iterable[str]) -> None:
        _add(self._imports, path, imports)

    def add_options(self, path: str, options: str | Iterable[str]) -> None:
        _add(self._options, path, options)

    # -- Queries -----------------------------------------------------------

    def imports_for(self, path: str) -> list[str]:
        return list(self._imports.get(normalize_path(path), ()))

    def options_for(self, path: str) -> list[str]:
        return list(self._options.get(normalize_path(path), ()))

    def paths(self) -> list[str]:
        """Every path with at least one pending entry, in first-seen order."""
        seen = dict.fromkeys(self._imports)
        seen.update(dict.fromkeys(self._options))
        return list(seen)

    def __repr__(self) -> str:
        return f"InjectionLedger(imports={self._imports!r}, options={self._options!r})"


def _add(
    table: dict[str, dict[str, None]], path: str, entries: str | Iterable[str]
) -> None:
    if isinstance(entries, str):
        entries = [entries]
    bucket = table.setdefault(normalize_path(path), {})
    for entry in entries:
        bucket.setdefault(entry, None)
