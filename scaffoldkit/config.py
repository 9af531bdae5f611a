"""scaffoldkit configuration.

Typed settings shared by the generator, the file writer, and the invoke
runner.  Pydantic v2 models so values are validated at construction time and
can be built straight from environment variables.
"""

from __future__ import annotations

import os

from pydantic import BaseModel, Field


SERVICE_PLUGIN_ID = "@scaffoldkit/cli-service"


def _env_flag(name: str) -> bool:
    """Return ``True`` if the variable is set to anything but an empty/false value."""
    value = os.environ.get(name, "")
    return value.strip().lower() not in ("", "0", "false", "no", "off")


class Config(BaseModel):
    """Global scaffoldkit configuration.

    Instances are normally created by ``Generator`` (via :meth:`from_env`) or
    by the CLI entry point and then passed down to every collaborator.
    """

    test_mode: bool = Field(
        default=False,
        description="Suppress the always-on service config extraction to keep fixture output stable",
    )
    skip_write: bool = Field(
        default=False, description="Resolve everything but never touch the disk"
    )
    service_plugin_id: str = Field(default=SERVICE_PLUGIN_ID)
    manifest_filename: str = Field(default="package.json")
    ignored_dirs: list[str] = Field(default_factory=lambda: ["node_modules", ".git"])
    generator_entry_point_group: str = Field(default="scaffoldkit.generators")

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            SCAFFOLDKIT_TEST, SCAFFOLDKIT_SKIP_WRITE.
        """
        return cls(
            test_mode=_env_flag("SCAFFOLDKIT_TEST"),
            skip_write=_env_flag("SCAFFOLDKIT_SKIP_WRITE"),
        )
