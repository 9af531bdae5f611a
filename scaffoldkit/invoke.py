"""Invoke a plugin's generator on an existing project.

Reads the project's manifest and files from disk, applies one plugin on top
of them, writes the result back, then runs completion hooks and prints the
plugins' exit messages.

Usage::

    python -m scaffoldkit.invoke eslint
    python -m scaffoldkit.invoke @acme/lint --context ./my-app --option config=airbnb
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Callable

from scaffoldkit import utils
from scaffoldkit.config import Config
from scaffoldkit.generator import Generator, Plugin, PluginLoadError
from scaffoldkit.generator.file_tree import read_files
from scaffoldkit.generator.plugins import load_generator

# ---------------------------------------------------------------------------
# Manifest I/O
# ---------------------------------------------------------------------------


def load_manifest(context: str | Path, config: Config | None = None) -> dict[str, Any]:
    """Load the project manifest, or ``{}`` if the project has none yet.

    Raises:
        json.JSONDecodeError: If the manifest is not valid JSON.
    """
    config = config or Config.from_env()
    path = Path(context) / config.manifest_filename
    if not path.exists():
        return {}
    data = json.loads(path.read_text(encoding="utf-8"))
    return data if isinstance(data, dict) else {}


def find_installed_plugin(plugin_name: str, pkg: dict[str, Any]) -> str | None:
    """Return the full id of the installed plugin *plugin_name* refers to."""
    for field in ("devDependencies", "dependencies"):
        for dep in pkg.get(field) or {}:
            if utils.is_plugin(dep) and utils.matches_plugin_id(plugin_name, dep):
                return dep
    return None


# ---------------------------------------------------------------------------
# Running
# ---------------------------------------------------------------------------


async def run_generator(
    context: str | Path,
    plugin: Plugin,
    pkg: dict[str, Any] | None = None,
    *,
    after_invoke_cbs: list[Callable[[], Any]] | None = None,
    after_any_invoke_cbs: list[Callable[[], Any]] | None = None,
    config: Config | None = None,
    **generator_kwargs: Any,
) -> Generator:
    """Apply *plugin* to the project at *context* and write the result.

    Extra keyword arguments are passed to :class:`Generator` (e.g. a custom
    ``writer`` or ``loader``).
    """
    config = config or Config.from_env()
    if pkg is None:
        pkg = load_manifest(context, config)

    generator = await Generator.create(
        context,
        pkg=pkg,
        plugins=[plugin],
        files=await read_files(context, config=config),
        after_invoke_cbs=after_invoke_cbs,
        after_any_invoke_cbs=after_any_invoke_cbs,
        invoking=True,
        config=config,
        **generator_kwargs,
    )

    utils.log(f"Invoking generator for {plugin.id}...")
    await generator.generate(extract_config_files=True, check_existing=True)

    if _deps_changed(pkg, generator.pkg):
        utils.warn(
            "Dependencies changed. Run your package manager to install them.",
            utils.to_short_plugin_id(plugin.id),
        )

    if generator.after_invoke_cbs or generator.after_any_invoke_cbs:
        utils.log("Running completion hooks...")
        await generator.run_after_invoke_hooks()

    utils.done(f"Successfully invoked generator for plugin: {plugin.id}")
    generator.print_exit_logs()
    return generator


async def invoke(
    plugin_name: str,
    options: dict[str, Any] | None = None,
    context: str | Path = ".",
    *,
    config: Config | None = None,
    **generator_kwargs: Any,
) -> Generator:
    """Resolve an installed plugin by (short) name and run its generator.

    Raises:
        PluginLoadError: If the plugin is not installed or has no generator.
    """
    config = config or Config.from_env()
    pkg = load_manifest(context, config)

    plugin_id = find_installed_plugin(plugin_name, pkg)
    if plugin_id is None:
        raise PluginLoadError(
            plugin_name,
            "cannot be resolved from the manifest. Did you forget to install it?",
        )

    loader = generator_kwargs.get("loader") or (
        lambda pid, ctx: load_generator(pid, ctx, group=config.generator_entry_point_group)
    )
    module = loader(plugin_id, context)
    if module is None or not module.has_apply:
        raise PluginLoadError(plugin_id, "does not have a generator to invoke")

    plugin = Plugin(id=plugin_id, apply=module.apply, options=dict(options or {}), hooks=module.hooks)
    return await run_generator(context, plugin, pkg, config=config, **generator_kwargs)


def _deps_changed(before: dict[str, Any], after: dict[str, Any]) -> bool:
    for field in ("dependencies", "devDependencies"):
        if (before.get(field) or {}) != (after.get(field) or {}):
            return True
    return False


def parse_option(raw: str) -> tuple[str, Any]:
    """Split ``key=value``; the value is JSON-decoded when possible.

    Examples::

        parse_option("lint_on_save=true") -> ("lint_on_save", True)
        parse_option("config=airbnb")     -> ("config", "airbnb")
        parse_option("force")             -> ("force", True)
    """
    if "=" not in raw:
        return raw, True
    key, value = raw.split("=", 1)
    try:
        return key, json.loads(value)
    except json.JSONDecodeError:
        return key, value


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for ``python -m scaffoldkit.invoke``."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Invoke a scaffoldkit plugin's generator on an existing project",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python -m scaffoldkit.invoke eslint\n"
            "  python -m scaffoldkit.invoke @acme/lint --context ./my-app --option config=airbnb\n"
        ),
    )
    parser.add_argument("plugin", help="Plugin name (full or short form)")
    parser.add_argument(
        "--context", "-C",
        default=".",
        help="Project directory (default: current directory)",
    )
    parser.add_argument(
        "--option", "-o",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Plugin option; may be repeated",
    )

    args = parser.parse_args(argv)

    context = Path(args.context)
    if not context.is_dir():
        utils.error(f"Project directory not found: {context}")
        sys.exit(1)

    options = dict(parse_option(raw) for raw in args.option)
    try:
        asyncio.run(invoke(args.plugin, options, context))
    except PluginLoadError as exc:
        utils.error(str(exc))
        sys.exit(1)


if __name__ == "__main__":
    main()
