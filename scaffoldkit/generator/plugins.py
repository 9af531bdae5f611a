"""Plugin records and generator-module loading.

A plugin is resolved once, at composition time, into a ``Plugin`` record
holding its ``apply`` callable and optional ``hooks`` callable.  The
generator then only consults ``has_apply``/``has_hooks`` and never probes
plugin objects again.

Generator modules are looked up through the ``scaffoldkit.generators`` entry
point group, where the entry point name is the plugin's full package id::

    [project.entry-points."scaffoldkit.generators"]
    "scaffoldkit-cli-plugin-foo" = "foo_plugin.generator"

The target may be a module exposing ``apply`` (and optionally ``hooks``) or
the ``apply`` callable itself.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from importlib.metadata import entry_points
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)

ApplyFn = Callable[..., Any]
HooksFn = Callable[..., Any]


@dataclass
class Plugin:
    """A plugin selected for this run, with its options."""

    id: str
    apply: ApplyFn | None = None
    options: dict[str, Any] = field(default_factory=dict)
    hooks: HooksFn | None = None

    def __post_init__(self) -> None:
        if self.hooks is None and self.apply is not None:
            self.hooks = getattr(self.apply, "hooks", None)

    @property
    def has_apply(self) -> bool:
        return callable(self.apply)

    @property
    def has_hooks(self) -> bool:
        return callable(self.hooks)

    @classmethod
    def from_module(
        cls, plugin_id: str, module: Any, options: dict[str, Any] | None = None
    ) -> "Plugin":
        """Build a record from a generator module (or bare ``apply`` callable)."""
        generator = as_generator_module(module)
        return cls(
            id=plugin_id,
            apply=generator.apply,
            options=dict(options or {}),
            hooks=generator.hooks,
        )


@dataclass(frozen=True)
class GeneratorModule:
    """The exported surface of a plugin's generator module."""

    apply: ApplyFn | None = None
    hooks: HooksFn | None = None

    @property
    def has_apply(self) -> bool:
        return callable(self.apply)

    @property
    def has_hooks(self) -> bool:
        return callable(self.hooks)


def as_generator_module(target: Any) -> GeneratorModule:
    """Normalise a loaded entry point target into a ``GeneratorModule``."""
    if isinstance(target, GeneratorModule):
        return target
    apply = getattr(target, "apply", None)
    if apply is None and callable(target):
        apply = target
    hooks = getattr(target, "hooks", None) or getattr(apply, "hooks", None)
    return GeneratorModule(
        apply=apply if callable(apply) else None,
        hooks=hooks if callable(hooks) else None,
    )


def load_generator(
    plugin_id: str,
    context: str | Path,
    group: str = "scaffoldkit.generators",
) -> GeneratorModule | None:
    """Load the generator module registered for *plugin_id*, or ``None``.

    *context* is accepted for parity with loaders that resolve relative to
    the project directory; entry points are global to the environment.
    """
    for ep in entry_points(group=group):
        if ep.name == plugin_id:
            logger.debug("Loading generator for %s from %s", plugin_id, ep.value)
            return as_generator_module(ep.load())
    return None


# ---------------------------------------------------------------------------
# Root options
# ---------------------------------------------------------------------------

_CSS_PREPROCESSORS: list[tuple[str, str]] = [
    ("sass", "dart-sass"),
    ("node-sass", "node-sass"),
    ("less-loader", "less"),
    ("stylus-loader", "stylus"),
]


def infer_root_options(pkg: dict[str, Any]) -> dict[str, Any]:
    """Derive root options from a manifest when no service plugin supplies them."""
    deps: dict[str, Any] = {
        **(pkg.get("dependencies") or {}),
        **(pkg.get("devDependencies") or {}),
    }
    root_options: dict[str, Any] = {"project_name": pkg.get("name")}

    framework_range = deps.get("vue")
    if isinstance(framework_range, str):
        major = re.search(r"\d+", framework_range)
        root_options["framework_version"] = major.group(0) if major else "2"

    if "vue-router" in deps:
        root_options["router"] = True
    if "vuex" in deps or "pinia" in deps:
        root_options["store"] = True

    for dep, preprocessor in _CSS_PREPROCESSORS:
        if dep in deps:
            root_options["css_preprocessor"] = preprocessor
            break

    return root_options
