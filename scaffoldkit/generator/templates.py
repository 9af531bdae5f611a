"""Jinja2 template rendering for plugin-contributed files.

Provides the TemplateRenderer class used by ``GeneratorAPI.render`` and by
file middlewares.  Rendering never touches the disk output: results land in
the generator's virtual file tree.  Binary files found in a template
directory are passed through untouched.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders Jinja2 templates into strings.

    With a *template_dir*, templates can be referenced by relative path and
    may ``{% include %}`` each other.  Without one, only inline strings and
    absolute files can be rendered.
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        self.template_dir = Path(template_dir) if template_dir is not None else None
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)) if self.template_dir else None,
            autoescape=select_autoescape([], default_for_string=False),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    # -- Rendering ---------------------------------------------------------

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render a template relative to the template directory."""
        template = self.env.get_template(template_path)
        return template.render(**context)

    def render_string(self, template_string: str, context: dict[str, Any]) -> str:
        """Render an inline template string with the provided context."""
        template = self.env.from_string(template_string)
        return template.render(**context)

    def render_file(self, path: str | Path, context: dict[str, Any]) -> str | bytes:
        """Render the file at *path*, or return its raw bytes if it is binary."""
        raw = Path(path).read_bytes()
        if is_binary(raw):
            return raw
        return self.render_string(raw.decode("utf-8"), context)

    # -- Utility -----------------------------------------------------------

    def list_templates(self, prefix: str = "") -> list[str]:
        """Return every file under *prefix* as sorted POSIX paths relative to the root."""
        if self.template_dir is None:
            return []
        search_dir = self.template_dir / prefix if prefix else self.template_dir
        if not search_dir.is_dir():
            return []
        return sorted(
            p.relative_to(self.template_dir).as_posix()
            for p in search_dir.rglob("*")
            if p.is_file()
        )


def template_target_path(raw_path: str) -> str:
    """Map a template's relative path to the path it renders to.

    Dotfiles cannot be published inside packages, so templates use a leading
    underscore instead: ``_gitignore`` -> ``.gitignore`` and ``__init__`` ->
    ``_init__``.  A trailing ``.j2`` suffix is dropped.
    """
    parts = []
    for name in raw_path.split("/"):
        if name.startswith("__"):
            name = name[1:]
        elif name.startswith("_"):
            name = "." + name[1:]
        parts.append(name)
    target = "/".join(parts)
    if target.endswith(".j2"):
        target = target[: -len(".j2")]
    return target


def is_binary(data: bytes) -> bool:
    """Heuristic: NUL bytes or undecodable UTF-8 in the first 8 KiB."""
    chunk = data[:8192]
    if b"\0" in chunk:
        return True
    try:
        chunk.decode("utf-8")
    except UnicodeDecodeError as exc:
        # a multi-byte sequence cut at the chunk boundary is still text
        return exc.start < len(chunk) - 3
    return False

