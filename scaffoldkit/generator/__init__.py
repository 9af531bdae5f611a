"""scaffoldkit generator -- composes plugins into a virtual project tree.

Plugins contribute files, manifest edits, and deferred import/option
injections through a ``GeneratorAPI``.  The ``Generator`` applies them in
order, extracts manifest fields into config files, resolves injections once
every plugin has run, and writes the result.

Quick usage::

    from scaffoldkit.generator import Generator, Plugin

    def apply(api, options, root_options, invoking):
        api.extend_package({"scripts": {"lint": "eslint ."}})
        api.inject_imports(api.entry_file, "import './plugins/lint'")

    generator = await Generator.create(
        "/tmp/my-app",
        pkg={"name": "my-app"},
        plugins=[Plugin("scaffoldkit-cli-plugin-lint", apply=apply)],
    )
    await generator.generate()
"""

from scaffoldkit.generator.api import ExitLog, GeneratorAPI
from scaffoldkit.generator.config_transform import ConfigTransform
from scaffoldkit.generator.errors import ConfigTransformError, GeneratorError, PluginLoadError
from scaffoldkit.generator.generator import Generator
from scaffoldkit.generator.ledger import InjectionLedger
from scaffoldkit.generator.plugins import GeneratorModule, Plugin
from scaffoldkit.generator.templates import TemplateRenderer

__all__ = [
    "ConfigTransform",
    "ConfigTransformError",
    "ExitLog",
    "Generator",
    "GeneratorAPI",
    "GeneratorError",
    "GeneratorModule",
    "InjectionLedger",
    "Plugin",
    "PluginLoadError",
    "TemplateRenderer",
]
