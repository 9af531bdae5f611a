"""Manifest field -> standalone config file transforms.

A ``ConfigTransform`` describes, per file format, the candidate filenames a
manifest field (``babel``, ``postcss``, ``eslintConfig``...) may be written
to.  The format order in the descriptor is the preference order, and so is
the filename order inside each format.

Formats:

- ``js``    -- ``module.exports = <JS literal>``
- ``json``  -- two-space indented JSON
- ``yaml``  -- YAML block style
- ``lines`` -- one entry per line (``.browserslistrc`` style)
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Callable, NamedTuple

import yaml

from .errors import ConfigTransformError


class TransformResult(NamedTuple):
    filename: str
    content: str


class _FileFormat(NamedTuple):
    read: Callable[[str], Any]
    write: Callable[[Any], str]


# ---------------------------------------------------------------------------
# ConfigTransform
# ---------------------------------------------------------------------------


class ConfigTransform:
    """Converts the value of one manifest field into a config file.

    Args:
        file: Mapping of format name to candidate filenames, e.g.
            ``{"js": ["postcss.config.js"], "json": [".postcssrc.json"]}``.
    """

    def __init__(self, file: dict[str, list[str]]) -> None:
        self.file_descriptor = file

    def transform(
        self,
        value: Any,
        check_existing: bool,
        files: dict[str, Any],
        context: str | Path,
        key: str = "",
    ) -> TransformResult:
        """Render *value* into ``(filename, content)``.

        With *check_existing*, a candidate already present in the file tree
        (or on disk under *context*) is preferred over the default, and its
        current value is merged with *value* so user settings survive.
        """
        found = self.find_file(files, context) if check_existing else None
        if found is None:
            file_type, filename = self.get_default_file()
            source = None
        else:
            file_type, filename, source = found

        fmt = _FORMATS.get(file_type)
        if fmt is None:
            raise ConfigTransformError(key, file_type)

        existing = fmt.read(source) if source else None
        if existing is not None:
            value = deep_merge(existing, value)
        return TransformResult(filename, fmt.write(value))

    def find_file(
        self, files: dict[str, Any], context: str | Path
    ) -> tuple[str, str, str] | None:
        """Return ``(type, filename, source)`` of the first candidate that exists."""
        for file_type, filenames in self.file_descriptor.items():
            for filename in filenames:
                in_tree = files.get(filename)
                if isinstance(in_tree, str):
                    return file_type, filename, in_tree
                full_path = Path(context) / filename
                if full_path.is_file():
                    return file_type, filename, full_path.read_text(encoding="utf-8")
        return None

    def get_default_file(self) -> tuple[str, str]:
        file_type = next(iter(self.file_descriptor))
        return file_type, self.file_descriptor[file_type][0]

    def __repr__(self) -> str:
        return f"ConfigTransform(file={self.file_descriptor!r})"


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------

DEFAULT_CONFIG_TRANSFORMS: dict[str, ConfigTransform] = {
    "babel": ConfigTransform(file={"js": ["babel.config.js"]}),
    "postcss": ConfigTransform(
        file={
            "js": ["postcss.config.js"],
            "json": [".postcssrc.json", ".postcssrc"],
            "yaml": [".postcssrc.yaml", ".postcssrc.yml"],
        }
    ),
    "eslintConfig": ConfigTransform(
        file={
            "js": [".eslintrc.js"],
            "json": [".eslintrc", ".eslintrc.json"],
            "yaml": [".eslintrc.yaml", ".eslintrc.yml"],
        }
    ),
    "jest": ConfigTransform(file={"js": ["jest.config.js"]}),
    "browserslist": ConfigTransform(file={"lines": [".browserslistrc"]}),
}

# Plugins can never replace these.
RESERVED_CONFIG_TRANSFORMS: dict[str, ConfigTransform] = {
    "scaffoldkit": ConfigTransform(file={"js": ["scaffoldkit.config.js"]}),
}


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------


def deep_merge(existing: Any, value: Any) -> Any:
    """Merge *value* on top of *existing*.

    Mappings merge recursively, lists concatenate without duplicates, and
    anything else is replaced by *value*.
    """
    if isinstance(existing, dict) and isinstance(value, dict):
        merged = dict(existing)
        for key, item in value.items():
            merged[key] = deep_merge(merged[key], item) if key in merged else item
        return merged
    if isinstance(existing, list) and isinstance(value, list):
        merged_list = list(existing)
        for item in value:
            if item not in merged_list:
                merged_list.append(item)
        return merged_list
    return value


# ---------------------------------------------------------------------------
# JS literal serialisation
# ---------------------------------------------------------------------------

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][\w$]*$")
_MODULE_EXPORTS_RE = re.compile(r"^\s*module\.exports\s*=\s*(.*?);?\s*$", re.DOTALL)


def _js_string(text: str) -> str:
    escaped = (
        text.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f"'{escaped}'"


def stringify_js(value: Any, indent: int = 2, _level: int = 0) -> str:
    """Serialise *value* as a JavaScript literal.

    ``{"presets": ["a"]}`` becomes::

        {
          presets: [
            'a'
          ]
        }
    """
    pad = " " * (indent * (_level + 1))
    closing_pad = " " * (indent * _level)

    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return json.dumps(value)
    if isinstance(value, str):
        return _js_string(value)
    if isinstance(value, (list, tuple)):
        if not value:
            return "[]"
        items = [pad + stringify_js(item, indent, _level + 1) for item in value]
        return "[\n" + ",\n".join(items) + "\n" + closing_pad + "]"
    if isinstance(value, dict):
        if not value:
            return "{}"
        entries = []
        for key, item in value.items():
            key = str(key)
            rendered_key = key if _IDENTIFIER_RE.match(key) else _js_string(key)
            entries.append(f"{pad}{rendered_key}: {stringify_js(item, indent, _level + 1)}")
        return "{\n" + ",\n".join(entries) + "\n" + closing_pad + "}"
    return _js_string(str(value))


# ---------------------------------------------------------------------------
# Format readers / writers
# ---------------------------------------------------------------------------


def _read_js(source: str) -> Any:
    # Only plain ``module.exports = <literal>`` files can be read back; YAML
    # flow syntax accepts unquoted keys and single-quoted strings.
    match = _MODULE_EXPORTS_RE.match(source)
    if not match:
        return None
    try:
        return yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        return None


def _write_js(value: Any) -> str:
    return f"module.exports = {stringify_js(value, 2)}"


def _read_json(source: str) -> Any:
    return json.loads(source)


def _write_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def _read_yaml(source: str) -> Any:
    return yaml.safe_load(source)


def _write_yaml(value: Any) -> str:
    return yaml.safe_dump(value, default_flow_style=False, sort_keys=False, allow_unicode=True)


def _read_lines(source: str) -> list[str]:
    return [line.strip() for line in source.split("\n") if line.strip()]


def _write_lines(value: Any) -> str:
    if isinstance(value, str):
        return value
    return "\n".join(str(line) for line in value)


_FORMATS: dict[str, _FileFormat] = {
    "js": _FileFormat(_read_js, _write_js),
    "json": _FileFormat(_read_json, _write_json),
    "yaml": _FileFormat(_read_yaml, _write_yaml),
    "lines": _FileFormat(_read_lines, _write_lines),
}
