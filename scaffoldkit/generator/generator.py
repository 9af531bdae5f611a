"""Plugin composition and the generation pipeline.

A ``Generator`` owns all shared state for one scaffolding run: the manifest,
the virtual file tree, the deferred injection ledger, and the hook lists.
Plugins are applied in two passes (see :meth:`Generator.apply_plugins`), then
:meth:`Generator.generate` resolves everything and hands the final tree to
the writer::

    generator = await Generator.create(
        "/path/to/project",
        pkg={"name": "my-app"},
        plugins=[Plugin("@scaffoldkit/cli-plugin-babel", apply=babel.apply)],
    )
    await generator.generate(extract_config_files=True)
    await generator.run_after_invoke_hooks()
    generator.print_exit_logs()

Every stage runs strictly in sequence.  Errors raised by plugin code are not
caught here; they abort the run before anything is written.
"""

from __future__ import annotations

import copy
import functools
import inspect
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

from nodesemver import satisfies, valid, valid_range

from scaffoldkit import utils
from scaffoldkit.config import Config

from .api import ExitLog, GeneratorAPI
from .codemods import Injector, TextInjector
from .config_transform import (
    DEFAULT_CONFIG_TRANSFORMS,
    RESERVED_CONFIG_TRANSFORMS,
    ConfigTransform,
)
from .file_tree import write_file_tree
from .ledger import InjectionLedger
from .package_manager import PackageManager
from .plugins import GeneratorModule, Plugin, infer_root_options, load_generator
from .templates import TemplateRenderer

logger = logging.getLogger(__name__)

Loader = Callable[[str, "str | Path"], "GeneratorModule | None"]
Writer = Callable[[Any, dict[str, Any], dict[str, Any]], "Awaitable[None] | None"]

SCRIPTS_ORDER: list[str] = ["serve", "build", "test", "e2e", "lint", "deploy"]

PKG_KEY_ORDER: list[str] = [
    "name",
    "version",
    "private",
    "description",
    "author",
    "scripts",
    "main",
    "module",
    "browser",
    "jsDelivr",
    "unpkg",
    "files",
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "scaffoldkit",
    "babel",
    "eslintConfig",
    "prettier",
    "postcss",
    "browserslist",
    "jest",
]


class Generator:
    """Composes plugins into a virtual project and writes it out.

    Args:
        context: Project directory.
        pkg: The manifest as it exists before this run.  Kept untouched as
            ``original_pkg``; plugins edit a deep copy.
        plugins: Plugins to apply, in order.
        after_invoke_cbs: Seed for the after-invoke hook list.
        after_any_invoke_cbs: Seed for the after-any-invoke hook list.
        files: Initial tree, e.g. the existing project read from disk.  The
            dict is used (and mutated) in place.
        invoking: ``True`` when adding plugins to an existing project.
        config: Settings; defaults to :meth:`Config.from_env`.
        package_manager: Installed-version lookups for :meth:`has_plugin`.
        injector: Engine applying the injection ledger to file contents.
        writer: ``writer(context, files, initial_files)`` persisting the tree.
        loader: ``loader(plugin_id, context)`` returning a plugin's generator
            module, used to discover hooks of installed plugins.
        renderer: Template renderer handed to file middlewares.
    """

    def __init__(
        self,
        context: str | Path,
        *,
        pkg: dict[str, Any] | None = None,
        plugins: list[Plugin] | None = None,
        after_invoke_cbs: list[Callable[[], Any]] | None = None,
        after_any_invoke_cbs: list[Callable[[], Any]] | None = None,
        files: dict[str, Any] | None = None,
        invoking: bool = False,
        config: Config | None = None,
        package_manager: PackageManager | None = None,
        injector: Injector | None = None,
        writer: Writer | None = None,
        loader: Loader | None = None,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.context = context
        self.config = config or Config.from_env()
        self.plugins = list(plugins or [])
        self.original_pkg: dict[str, Any] = pkg or {}
        self.pkg: dict[str, Any] = copy.deepcopy(self.original_pkg)
        self.invoking = invoking

        self.pm = package_manager or PackageManager(context)
        self.injector: Injector = injector or TextInjector()
        self.writer: Writer = writer or functools.partial(write_file_tree, config=self.config)
        self.loader: Loader = loader or functools.partial(
            load_generator, group=self.config.generator_entry_point_group
        )
        self.renderer = renderer or TemplateRenderer()

        # deferred imports / root options, keyed by path
        self.imports = InjectionLedger()
        self.config_transforms: dict[str, ConfigTransform] = {}
        self.default_config_transforms = DEFAULT_CONFIG_TRANSFORMS
        self.reserved_config_transforms = RESERVED_CONFIG_TRANSFORMS
        # dependency name -> id of the plugin that injected it
        self.dep_sources: dict[str, str] = {}

        self._after_invoke_seed = list(after_invoke_cbs or [])
        self.after_invoke_cbs: list[Callable[[], Any]] = []
        self.after_any_invoke_cbs: list[Callable[[], Any]] = list(after_any_invoke_cbs or [])

        self.files: dict[str, Any] = files if files is not None else {}
        self.file_middlewares: list[Callable[..., Any]] = []
        self.post_process_files_cbs: list[Callable[[dict[str, Any]], Any]] = []
        self.exit_logs: list[ExitLog] = []

        self.all_plugins: list[str] = [
            dep
            for dep in [
                *(self.pkg.get("dependencies") or {}),
                *(self.pkg.get("devDependencies") or {}),
            ]
            if utils.is_plugin(dep)
        ]

        service = next(
            (p for p in self.plugins if p.id == self.config.service_plugin_id), None
        )
        self.root_options: dict[str, Any] = (
            service.options if service else infer_root_options(self.pkg)
        )

    @classmethod
    async def create(cls, context: str | Path, **kwargs: Any) -> "Generator":
        """Construct a generator and apply its plugins."""
        generator = cls(context, **kwargs)
        await generator.apply_plugins()
        return generator

    # -- Plugin composition ------------------------------------------------

    async def apply_plugins(self) -> None:
        """Run hook discovery over installed plugins, then apply the selected ones.

        1. Discovery: every installed plugin's ``hooks`` is called with empty
           options so it can register after-any-invoke callbacks, even if it
           is not being invoked now.
        2. Apply: hook lists are reset, each selected plugin's ``apply`` runs
           in order (followed by its ``hooks``), and the discovery-pass
           after-any-invoke callbacks are appended after the apply-pass ones.
        """
        plugin_ids = self.known_plugin_ids()
        # discovery may only contribute after-any-invoke callbacks
        saved_pkg = copy.deepcopy(self.pkg)
        saved_exit_logs = list(self.exit_logs)
        saved_transforms = dict(self.config_transforms)
        saved_dep_sources = dict(self.dep_sources)

        for plugin_id in self.all_plugins:
            module = self.loader(plugin_id, self.context)
            if module is None or not module.has_hooks:
                continue
            api = GeneratorAPI(plugin_id, self, {}, self.root_options)
            await _maybe_await(module.hooks(api, {}, self.root_options, plugin_ids))

        from_installed = self.after_any_invoke_cbs

        self.pkg = saved_pkg
        self.exit_logs = saved_exit_logs
        self.config_transforms = saved_transforms
        self.dep_sources = saved_dep_sources
        self.after_invoke_cbs = list(self._after_invoke_seed)
        self.after_any_invoke_cbs = []
        self.post_process_files_cbs = []
        self.file_middlewares = []
        self.imports = InjectionLedger()

        for plugin in self.plugins:
            logger.debug("Applying plugin %s", plugin.id)
            api = GeneratorAPI(plugin.id, self, plugin.options, self.root_options)
            if plugin.has_apply:
                await _maybe_await(
                    plugin.apply(api, plugin.options, self.root_options, self.invoking)
                )
            if plugin.has_hooks:
                await _maybe_await(
                    plugin.hooks(api, plugin.options, self.root_options, plugin_ids)
                )

        for cb in from_installed:
            if not any(cb is existing for existing in self.after_any_invoke_cbs):
                self.after_any_invoke_cbs.append(cb)

    def known_plugin_ids(self) -> list[str]:
        """Selected plugin ids followed by installed ones, without duplicates."""
        ids = [p.id for p in self.plugins]
        return ids + [plugin_id for plugin_id in self.all_plugins if plugin_id not in ids]

    # -- Generation pipeline -----------------------------------------------

    async def generate(
        self, extract_config_files: bool = False, check_existing: bool = False
    ) -> None:
        """Resolve the tree, finalise the manifest, and write everything.

        Args:
            extract_config_files: Extract every manifest field that has a
                config transform, not just the always-extracted defaults.
            check_existing: Let transforms reuse (and merge into) a config
                file that already exists under another candidate name.
        """
        initial_files = dict(self.files)
        self.extract_config_files(extract_config_files, check_existing)
        await self.resolve_files()
        self.sort_pkg()
        self.files[self.config.manifest_filename] = (
            json.dumps(self.pkg, indent=2, ensure_ascii=False) + "\n"
        )
        await _maybe_await(self.writer(self.context, self.files, initial_files))

    def extract_config_files(
        self, extract_all: bool = False, check_existing: bool = False
    ) -> None:
        """Move manifest fields into dedicated config files.

        A field is extracted only if a transform exists for it, it is set in
        the current manifest, and it was not part of the original manifest.
        """
        transforms = {
            **self.default_config_transforms,
            **self.config_transforms,
            **self.reserved_config_transforms,
        }

        def extract(key: str) -> None:
            transform = transforms.get(key)
            if (
                transform is None
                or _is_unset(self.pkg.get(key))
                # never clobber config the user wrote in the manifest
                or key in self.original_pkg
            ):
                return
            result = transform.transform(
                self.pkg[key], check_existing, self.files, self.context, key=key
            )
            self.files[result.filename] = utils.ensure_eol(result.content)
            del self.pkg[key]
            logger.debug("Extracted %r into %s", key, result.filename)

        if extract_all:
            for key in list(self.pkg):
                extract(key)
        else:
            if not self.config.test_mode:
                extract("scaffoldkit")
            # babel only honours project-wide config from its own file
            extract("babel")

    async def resolve_files(self) -> None:
        """Run middlewares, normalise paths, apply injections, post-process."""
        files = self.files
        for middleware in self.file_middlewares:
            await _maybe_await(middleware(files, self.renderer.render_string))

        utils.normalize_file_paths(files)

        for path in self.imports.paths():
            source = files.get(path)
            if not isinstance(source, str):
                continue
            imports = self.imports.imports_for(path)
            if imports:
                source = self.injector.inject_imports(path, source, imports)
            options = self.imports.options_for(path)
            if options:
                source = self.injector.inject_options(path, source, options)
            files[path] = source

        for post_process in self.post_process_files_cbs:
            await _maybe_await(post_process(files))

        logger.debug("Resolved files: %s", sorted(files))

    def sort_pkg(self) -> None:
        """Put manifest keys, dependencies, and scripts into a stable order."""
        for field in ("dependencies", "devDependencies"):
            if field in self.pkg:
                self.pkg[field] = utils.sort_object(self.pkg[field])
        if "scripts" in self.pkg:
            self.pkg["scripts"] = utils.sort_object(self.pkg["scripts"], SCRIPTS_ORDER)
        self.pkg = utils.sort_object(self.pkg, PKG_KEY_ORDER) or {}
        logger.debug("Sorted manifest: %s", self.pkg)

    # -- Queries -----------------------------------------------------------

    def has_plugin(self, plugin_id: str, version: str | None = None) -> bool:
        """Return ``True`` if *plugin_id* is selected or installed.

        With *version*, the installed package must also satisfy that semver
        range; an unknown installed version counts as a mismatch.
        """
        if not isinstance(plugin_id, str):
            return False
        for full_id in [*(p.id for p in self.plugins), *self.all_plugins]:
            if not utils.matches_plugin_id(plugin_id, full_id):
                continue
            if not version:
                return True
            installed = self.pm.get_installed_version(full_id)
            if installed_version_satisfies(installed, version):
                return True
        return False

    # -- Completion --------------------------------------------------------

    async def run_after_invoke_hooks(self) -> None:
        """Await after-invoke callbacks, then after-any-invoke callbacks, in order."""
        for cb in self.after_invoke_cbs:
            await _maybe_await(cb())
        for cb in self.after_any_invoke_cbs:
            await _maybe_await(cb())

    def print_exit_logs(self) -> None:
        """Flush queued exit messages in the order they were added."""
        if not self.exit_logs:
            return
        log_types: dict[str, Callable[..., None]] = {
            "log": utils.log,
            "info": utils.info,
            "done": utils.done,
            "warn": utils.warn,
            "error": utils.error,
        }
        for entry in self.exit_logs:
            short_id = utils.to_short_plugin_id(entry.id)
            log_fn = log_types.get(entry.type)
            if log_fn is None:
                utils.error(f"Invalid exit_log type '{entry.type}'.", short_id)
                utils.error(entry.msg or "", short_id)
            else:
                log_fn(entry.msg or "", short_id if entry.msg else None)
        utils.log()
        self.exit_logs = []


def _is_unset(value: Any) -> bool:
    """Absent, or a falsy scalar; empty objects and lists still count as set."""
    return value is None or (isinstance(value, (bool, int, float, str)) and not value)


def installed_version_satisfies(version: str | None, range_: str) -> bool:
    """``True`` only for a valid *version* inside a valid *range_*."""
    if not isinstance(version, str) or valid(version, False) is None:
        return False
    if not isinstance(range_, str) or valid_range(range_, False) is None:
        return False
    return satisfies(version, range_)


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result
