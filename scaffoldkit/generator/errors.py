"""Exceptions raised by the generator package."""

from __future__ import annotations


class GeneratorError(Exception):
    """Base class for errors raised by scaffoldkit itself.

    Errors raised by plugin code are never wrapped; they propagate as-is.
    """


class ConfigTransformError(GeneratorError):
    """Raised when a config transform names a file format that has no reader/writer."""

    def __init__(self, key: str, file_type: str) -> None:
        self.key = key
        self.file_type = file_type
        super().__init__(f"Unknown config file type '{file_type}' for '{key}'")


class PluginLoadError(GeneratorError):
    """Raised when a plugin's generator module cannot be resolved."""

    def __init__(self, plugin_id: str, message: str = "generator not found") -> None:
        self.plugin_id = plugin_id
        super().__init__(f"Plugin '{plugin_id}': {message}")
