"""Shared pytest fixtures for the scaffoldkit test suite.

Provides reusable fixtures for:
- Temporary project directories with a manifest on disk
- A generator factory wired to in-memory collaborators
- Fake package managers and generator-module loaders
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable
from unittest.mock import AsyncMock

import pytest

from scaffoldkit.config import Config
from scaffoldkit.generator import Generator, GeneratorModule


# ---------------------------------------------------------------------------
# Paths & Directories
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Temporary project directory with a minimal ``package.json``."""
    project_dir = tmp_path / "test-project"
    project_dir.mkdir()
    (project_dir / "package.json").write_text(
        json.dumps({"name": "test-project", "version": "0.1.0"}, indent=2) + "\n",
        encoding="utf-8",
    )
    yield project_dir


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@pytest.fixture
def config() -> Config:
    """Default settings, independent of the caller's environment."""
    return Config()


@pytest.fixture
def test_mode_config() -> Config:
    return Config(test_mode=True)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class FakePackageManager:
    """Package manager stub answering from a ``{package: version}`` dict."""

    def __init__(self, versions: dict[str, str] | None = None) -> None:
        self.versions = versions or {}
        self.calls: list[str] = []

    def get_installed_version(self, package_name: str) -> str | None:
        self.calls.append(package_name)
        return self.versions.get(package_name)


@pytest.fixture
def fake_pm() -> FakePackageManager:
    return FakePackageManager()


@pytest.fixture
def writer() -> AsyncMock:
    """Writer stand-in recording ``(context, files, initial_files)``."""
    return AsyncMock(return_value=None)


@pytest.fixture
def module_loader() -> Callable[[dict[str, GeneratorModule]], Callable[..., Any]]:
    """Build a loader that serves generator modules from a dict."""

    def _build(modules: dict[str, GeneratorModule]) -> Callable[..., Any]:
        def _load(plugin_id: str, context: Any) -> GeneratorModule | None:
            return modules.get(plugin_id)

        return _load

    return _build


# ---------------------------------------------------------------------------
# Generator factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_generator(tmp_path: Path, config: Config, writer: AsyncMock, fake_pm: FakePackageManager):
    """Async factory creating an applied ``Generator`` with in-memory collaborators.

    Usage::

        generator = await make_generator(plugins=[...], pkg={...})
    """

    async def _make(**kwargs: Any) -> Generator:
        kwargs.setdefault("pkg", {"name": "test-project"})
        kwargs.setdefault("config", config)
        kwargs.setdefault("writer", writer)
        kwargs.setdefault("package_manager", fake_pm)
        kwargs.setdefault("loader", lambda plugin_id, context: None)
        context = kwargs.pop("context", tmp_path)
        return await Generator.create(context, **kwargs)

    return _make

