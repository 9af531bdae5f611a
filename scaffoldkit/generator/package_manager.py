"""Installed-package lookups for version-gated plugin queries."""

from __future__ import annotations

import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class PackageManager:
    """Answers "which version of *package* is installed" for a project.

    Resolution follows node's module lookup: ``node_modules/<name>`` under
    the project directory first, then under each parent directory.
    """

    def __init__(self, context: str | Path) -> None:
        self.context = Path(context)

    def get_installed_version(self, package_name: str) -> str | None:
        """Return the installed version of *package_name*, or ``None``."""
        for directory in (self.context, *self.context.parents):
            manifest = directory / "node_modules" / package_name / "package.json"
            if not manifest.is_file():
                continue
            try:
                data = json.loads(manifest.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.debug("Unreadable manifest %s: %s", manifest, exc)
                return None
            version = data.get("version") if isinstance(data, dict) else None
            return version if isinstance(version, str) else None
        return None
