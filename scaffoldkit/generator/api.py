"""The handle a plugin receives in ``apply`` and ``hooks``.

Every plugin gets its own ``GeneratorAPI`` bound to its id, its options, and
the shared root options.  All of a plugin's effects go through this object:
manifest edits, template rendering (as file middlewares), deferred import and
root-option injections, and hook registration.
"""

from __future__ import annotations

import inspect
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from nodesemver import satisfies, valid_range

from scaffoldkit import utils

from .config_transform import ConfigTransform, deep_merge, stringify_js
from .templates import TemplateRenderer, template_target_path

if TYPE_CHECKING:
    from .generator import Generator

FileMiddleware = Callable[..., Any]

_DEPENDENCY_FIELDS = ("dependencies", "devDependencies")
_NON_SEMVER_RANGE_RE = re.compile(
    r"^(?:git\+|git://|github:|gitlab:|bitbucket:|file:|link:|npm:|workspace:|https?://|[\w.-]+/[\w.-]+(?:#.*)?$)"
)
_VERSION_RE = re.compile(r"(\d+)(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?")


@dataclass(frozen=True)
class ExitLog:
    """A message queued by a plugin for the end of the run."""

    id: str
    msg: str | None
    type: str = "log"


class GeneratorAPI:
    """Plugin-facing API bound to one plugin.

    Args:
        plugin_id: Full id of the plugin this handle belongs to.
        generator: The owning ``Generator``.
        options: The plugin's own options (empty during hook discovery).
        root_options: Project-wide options shared by every plugin.
    """

    def __init__(
        self,
        plugin_id: str,
        generator: "Generator",
        options: dict[str, Any],
        root_options: dict[str, Any],
    ) -> None:
        self.id = plugin_id
        self.generator = generator
        self.options = options
        self.root_options = root_options
        self.plugins_data = [
            {"id": p.id, "name": utils.to_short_plugin_id(p.id)}
            for p in generator.plugins
            if p.id != generator.config.service_plugin_id
        ]
        self._entry_file: str | None = None

    def __repr__(self) -> str:
        return f"GeneratorAPI(id={self.id!r})"

    # -- Queries -----------------------------------------------------------

    @property
    def plugin_short_id(self) -> str:
        return utils.to_short_plugin_id(self.id)

    @property
    def invoking(self) -> bool:
        """``True`` when the plugin is added to an existing project."""
        return self.generator.invoking

    @property
    def entry_file(self) -> str:
        """``src/main.ts`` if the project has one, otherwise ``src/main.js``."""
        if self._entry_file is None:
            has_ts = "src/main.ts" in self.generator.files or Path(self.resolve("src/main.ts")).exists()
            self._entry_file = "src/main.ts" if has_ts else "src/main.js"
        return self._entry_file

    def resolve(self, *paths: str) -> str:
        """Resolve *paths* against the project directory."""
        return str(Path(self.generator.context, *paths))

    def has_plugin(self, plugin_id: str, version: str | None = None) -> bool:
        return self.generator.has_plugin(plugin_id, version)

    # -- Config transforms -------------------------------------------------

    def add_config_transform(self, key: str, options: dict[str, Any] | None) -> None:
        """Register how manifest field *key* is extracted into its own file.

        ``options`` is ``{"file": {format: [filenames]}}``.  Reserved keys
        cannot be overridden.
        """
        reserved = key in self.generator.reserved_config_transforms
        if reserved or not options or not options.get("file"):
            if reserved:
                utils.warn(f"Reserved config transform '{key}'")
            return
        self.generator.config_transforms[key] = ConfigTransform(file=options["file"])

    # -- Manifest ----------------------------------------------------------

    def extend_package(
        self,
        fields: dict[str, Any] | Callable[[dict[str, Any]], dict[str, Any]],
        *,
        prune: bool = False,
        merge: bool = True,
        warn_incompatible_versions: bool = True,
        force_overwrite: bool = False,
    ) -> None:
        """Merge *fields* into the project manifest.

        Dependency fields use version-aware merging; other mappings are
        deep-merged and lists concatenated without duplicates unless
        ``merge=False``.  With ``prune``, ``None`` values remove their key.
        """
        pkg = self.generator.pkg
        to_merge = fields(pkg) if callable(fields) else fields

        for key, value in to_merge.items():
            existing = pkg.get(key)
            if isinstance(value, dict) and key in _DEPENDENCY_FIELDS:
                pkg[key] = merge_deps(
                    self.id,
                    existing or {},
                    value,
                    self.generator.dep_sources,
                    prune=prune,
                    warn_incompatible_versions=warn_incompatible_versions,
                    force_overwrite=force_overwrite,
                )
            elif not merge or key not in pkg:
                pkg[key] = value
            elif isinstance(value, (list, dict)) and type(value) is type(existing):
                pkg[key] = deep_merge(existing, value)
            else:
                pkg[key] = value

        if prune:
            _prune(pkg)

    # -- Files -------------------------------------------------------------

    def render(
        self,
        source: str | Path | dict[str, str] | FileMiddleware,
        additional_data: dict[str, Any] | None = None,
    ) -> None:
        """Render templates into the file tree.

        *source* may be a template directory (every file rendered to the same
        relative path), a ``{target_path: template_path}`` mapping, or a file
        middleware ``(files, render) -> None``.  Relative template paths are
        resolved against the calling module's directory.  Rendered files that
        are only whitespace are not written.
        """
        if callable(source):
            self._inject_file_middleware(source)
            return

        base_dir = _caller_dir()
        if isinstance(source, (str, Path)):
            template_dir = base_dir / source

            def render_dir(files: dict[str, Any], render: Callable[..., str]) -> None:
                data = self._resolve_data(additional_data)
                renderer = TemplateRenderer(template_dir)
                for raw_path in renderer.list_templates():
                    content = renderer.render_file(template_dir / raw_path, data)
                    if isinstance(content, bytes) or content.strip():
                        files[template_target_path(raw_path)] = content

            self._inject_file_middleware(render_dir)
        elif isinstance(source, dict):
            mapping = dict(source)

            def render_map(files: dict[str, Any], render: Callable[..., str]) -> None:
                data = self._resolve_data(additional_data)
                renderer = TemplateRenderer()
                for target_path, template_path in mapping.items():
                    content = renderer.render_file(base_dir / template_path, data)
                    if isinstance(content, bytes) or content.strip():
                        files[target_path] = content

            self._inject_file_middleware(render_map)

    def post_process_files(self, cb: Callable[[dict[str, Any]], Any]) -> None:
        """Run *cb* on the whole tree after imports and options are injected."""
        self.generator.post_process_files_cbs.append(cb)

    def gen_js_config(self, value: Any) -> str:
        return f"module.exports = {stringify_js(value, 2)}"

    # -- Deferred injections -----------------------------------------------

    def inject_imports(self, file: str, imports: str | list[str]) -> None:
        """Queue import statements for *file*; applied once all plugins ran."""
        self.generator.imports.add_imports(file, imports)

    def inject_root_options(self, file: str, options: str | list[str]) -> None:
        """Queue root-option properties for *file*; applied once all plugins ran."""
        self.generator.imports.add_options(file, options)

    # -- Hooks -------------------------------------------------------------

    def on_create_complete(self, cb: Callable[[], Any]) -> None:
        self.after_invoke(cb)

    def after_invoke(self, cb: Callable[[], Any]) -> None:
        """Run *cb* once generation completes, for this plugin's invocation."""
        self.generator.after_invoke_cbs.append(cb)

    def after_any_invoke(self, cb: Callable[[], Any]) -> None:
        """Run *cb* after any plugin is invoked in this project."""
        self.generator.after_any_invoke_cbs.append(cb)

    def exit_log(self, msg: str | None, type: str = "log") -> None:
        """Queue *msg* to be printed when the run finishes."""
        self.generator.exit_logs.append(ExitLog(id=self.id, msg=msg, type=type))

    # -- Internals ---------------------------------------------------------

    def _inject_file_middleware(self, middleware: FileMiddleware) -> None:
        self.generator.file_middlewares.append(middleware)

    def _resolve_data(self, additional_data: dict[str, Any] | None) -> dict[str, Any]:
        return {
            "options": self.options,
            "root_options": self.root_options,
            "plugins": self.plugins_data,
            **(additional_data or {}),
        }


# ---------------------------------------------------------------------------
# Dependency merging
# ---------------------------------------------------------------------------


def merge_deps(
    generator_id: str,
    source_deps: dict[str, Any],
    deps_to_inject: dict[str, Any],
    sources: dict[str, str],
    *,
    prune: bool = False,
    warn_incompatible_versions: bool = True,
    force_overwrite: bool = False,
) -> dict[str, Any]:
    """Merge *deps_to_inject* into *source_deps*, resolving range conflicts.

    *sources* records which plugin injected each dependency so conflict
    warnings can name both sides; it is updated in place.
    """
    result = dict(source_deps)
    for dep_name, injecting_range in deps_to_inject.items():
        source_range = source_deps.get(dep_name)
        if source_range == injecting_range:
            continue

        if injecting_range is None:
            if prune:
                result.pop(dep_name, None)
                sources.pop(dep_name, None)
            continue

        if not is_valid_range(injecting_range):
            utils.warn(
                f'invalid version range for dependency "{dep_name}":\n\n'
                f'- {injecting_range} injected by generator "{generator_id}"'
            )
            continue

        source_generator_id = sources.get(dep_name)
        if not source_range or force_overwrite:
            result[dep_name] = injecting_range
            sources[dep_name] = generator_id
            continue

        newer = _newer_range(source_range, injecting_range)
        chosen = newer or source_range
        result[dep_name] = chosen
        if chosen == injecting_range:
            sources[dep_name] = generator_id

        if warn_incompatible_versions and not _ranges_intersect(source_range, injecting_range):
            utils.warn(
                f'conflicting versions for project dependency "{dep_name}":\n\n'
                f'- {source_range} injected by generator "{source_generator_id}"\n'
                f'- {injecting_range} injected by generator "{generator_id}"\n\n'
                f"Using {'newer ' if newer else ''}version ({chosen}), "
                "but this may cause build errors."
            )
    return result


def is_valid_range(range_: Any) -> bool:
    """Semver ranges plus git, url, path, alias and ``user/repo`` specifiers."""
    if not isinstance(range_, str):
        return False
    if _NON_SEMVER_RANGE_RE.match(range_):
        return True
    return valid_range(range_, False) is not None


def _min_version(range_: str) -> tuple[int, int, int] | None:
    if valid_range(range_, False) is None:
        return None
    match = _VERSION_RE.search(range_)
    if not match:
        return (0, 0, 0)
    return tuple(  # type: ignore[return-value]
        int(part) if part and part.isdigit() else 0 for part in match.groups()
    )


def _newer_range(source_range: str, injecting_range: str) -> str | None:
    """Return *injecting_range* if its lower bound is above *source_range*'s."""
    source_min = _min_version(source_range)
    injecting_min = _min_version(injecting_range)
    if source_min is None or injecting_min is None:
        return None
    return injecting_range if injecting_min > source_min else None


def _ranges_intersect(a: str, b: str) -> bool:
    a_min, b_min = _min_version(a), _min_version(b)
    if a_min is None or b_min is None:
        # git urls, aliases... nothing to compare
        return True
    a_version = ".".join(map(str, a_min))
    b_version = ".".join(map(str, b_min))
    return satisfies(a_version, b) or satisfies(b_version, a)


def _prune(obj: Any) -> None:
    if isinstance(obj, dict):
        for key in list(obj):
            _prune(obj[key])
            if obj[key] is None:
                del obj[key]


def _caller_dir() -> Path:
    # two frames up: the plugin calling ``render``
    frame = inspect.currentframe()
    caller = frame.f_back.f_back if frame and frame.f_back else None
    if caller is None:
        return Path.cwd()
    return Path(caller.f_code.co_filename).resolve().parent

