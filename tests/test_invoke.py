"""Tests for the invoke runner (scaffoldkit.invoke).

Tests cover:
- load_manifest / find_installed_plugin
- run_generator end to end on a temporary project
- invoke (plugin resolution, error paths)
- parse_option
- main() CLI entry point
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from scaffoldkit.generator import GeneratorModule, Plugin, PluginLoadError
from scaffoldkit.invoke import (
    find_installed_plugin,
    invoke,
    load_manifest,
    main,
    parse_option,
    run_generator,
)


def _write_manifest(project: Path, pkg: dict) -> None:
    (project / "package.json").write_text(json.dumps(pkg, indent=2) + "\n", encoding="utf-8")


# ---------------------------------------------------------------------------
# Manifest helpers
# ---------------------------------------------------------------------------


class TestLoadManifest:
    @pytest.mark.unit
    def test_existing(self, tmp_project_dir: Path, config):
        assert load_manifest(tmp_project_dir, config) == {"name": "test-project", "version": "0.1.0"}

    @pytest.mark.unit
    def test_missing(self, tmp_path: Path, config):
        assert load_manifest(tmp_path, config) == {}

    @pytest.mark.unit
    def test_not_an_object(self, tmp_path: Path, config):
        (tmp_path / "package.json").write_text("[]", encoding="utf-8")
        assert load_manifest(tmp_path, config) == {}

    @pytest.mark.unit
    def test_invalid_json_raises(self, tmp_path: Path, config):
        (tmp_path / "package.json").write_text("{oops", encoding="utf-8")
        with pytest.raises(json.JSONDecodeError):
            load_manifest(tmp_path, config)


class TestFindInstalledPlugin:
    @pytest.mark.unit
    def test_short_name(self):
        pkg = {"devDependencies": {"scaffoldkit-cli-plugin-foo": "^1.0.0"}}
        assert find_installed_plugin("foo", pkg) == "scaffoldkit-cli-plugin-foo"

    @pytest.mark.unit
    def test_dev_dependencies_first(self):
        pkg = {
            "dependencies": {"@acme/scaffoldkit-cli-plugin-foo": "^1.0.0"},
            "devDependencies": {"scaffoldkit-cli-plugin-foo": "^1.0.0"},
        }
        assert find_installed_plugin("foo", pkg) == "scaffoldkit-cli-plugin-foo"
        assert find_installed_plugin("@acme/foo", pkg) == "@acme/scaffoldkit-cli-plugin-foo"

    @pytest.mark.unit
    def test_non_plugin_dependency_ignored(self):
        assert find_installed_plugin("foo", {"dependencies": {"foo": "^1.0.0"}}) is None

    @pytest.mark.unit
    def test_not_installed(self):
        assert find_installed_plugin("foo", {}) is None


# ---------------------------------------------------------------------------
# run_generator
# ---------------------------------------------------------------------------


class TestRunGenerator:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_writes_project(self, tmp_project_dir: Path, config):
        (tmp_project_dir / "README.md").write_text("# readme\n", encoding="utf-8")
        (tmp_project_dir / "obsolete.txt").write_text("bye\n", encoding="utf-8")
        completed: list[str] = []

        def apply(api, options, root_options, invoking):
            assert invoking is True

            def add_entry(files, render):
                files["src/main.js"] = render("// {{ name }}\n", {"name": root_options["project_name"]})

            api.render(add_entry)
            api.inject_imports("src/main.js", "import './lint'")
            api.extend_package({"devDependencies": {"eslint": "^8.0.0"}, "scripts": {"lint": "eslint ."}})
            api.post_process_files(lambda files: files.pop("obsolete.txt"))
            api.after_invoke(lambda: completed.append("done"))

        with patch("scaffoldkit.utils.warn") as warn, patch("scaffoldkit.utils.done") as done:
            await run_generator(
                tmp_project_dir, Plugin("scaffoldkit-cli-plugin-foo", apply=apply), config=config
            )

        assert (tmp_project_dir / "src" / "main.js").read_text(encoding="utf-8") == (
            "import './lint'\n\n// test-project\n"
        )
        assert (tmp_project_dir / "README.md").read_text(encoding="utf-8") == "# readme\n"
        assert not (tmp_project_dir / "obsolete.txt").exists()
        assert (tmp_project_dir / "package.json").read_text(encoding="utf-8") == (
            "{\n"
            '  "name": "test-project",\n'
            '  "version": "0.1.0",\n'
            '  "scripts": {\n'
            '    "lint": "eslint ."\n'
            "  },\n"
            '  "devDependencies": {\n'
            '    "eslint": "^8.0.0"\n'
            "  }\n"
            "}\n"
        )
        assert completed == ["done"]
        warn.assert_called_once_with(
            "Dependencies changed. Run your package manager to install them.", "foo"
        )
        done.assert_called_once_with(
            "Successfully invoked generator for plugin: scaffoldkit-cli-plugin-foo"
        )

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_merges_into_existing_config_file(self, tmp_project_dir: Path, config):
        (tmp_project_dir / ".eslintrc.json").write_text('{\n  "root": true\n}\n', encoding="utf-8")

        def apply(api, options, root_options, invoking):
            api.extend_package({"eslintConfig": {"extends": ["plugin:vue/recommended"]}})

        await run_generator(tmp_project_dir, Plugin("scaffoldkit-cli-plugin-lint", apply=apply), config=config)

        assert not (tmp_project_dir / ".eslintrc.js").exists()
        assert json.loads((tmp_project_dir / ".eslintrc.json").read_text(encoding="utf-8")) == {
            "root": True,
            "extends": ["plugin:vue/recommended"],
        }
        assert "eslintConfig" not in json.loads((tmp_project_dir / "package.json").read_text())

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_custom_writer(self, tmp_project_dir: Path, config, writer):
        def apply(api, options, root_options, invoking):
            api.render(lambda files, render: files.__setitem__("a.txt", "a\n"))

        generator = await run_generator(
            tmp_project_dir,
            Plugin("scaffoldkit-cli-plugin-foo", apply=apply),
            config=config,
            writer=writer,
        )
        writer.assert_awaited_once()
        assert generator.files["a.txt"] == "a\n"
        assert not (tmp_project_dir / "a.txt").exists()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_skip_write_leaves_disk_alone(self, tmp_project_dir: Path):
        from scaffoldkit.config import Config

        def apply(api, options, root_options, invoking):
            api.extend_package({"description": "changed"})

        await run_generator(
            tmp_project_dir,
            Plugin("scaffoldkit-cli-plugin-foo", apply=apply),
            config=Config(skip_write=True),
        )
        assert "description" not in json.loads((tmp_project_dir / "package.json").read_text())

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_plugin_error_propagates(self, tmp_project_dir: Path, config):
        def apply(api, options, root_options, invoking):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await run_generator(tmp_project_dir, Plugin("scaffoldkit-cli-plugin-foo", apply=apply), config=config)
        assert json.loads((tmp_project_dir / "package.json").read_text()) == {
            "name": "test-project",
            "version": "0.1.0",
        }


# ---------------------------------------------------------------------------
# invoke
# ---------------------------------------------------------------------------


class TestInvoke:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_resolves_installed_plugin(self, tmp_project_dir: Path, config, writer, module_loader):
        _write_manifest(
            tmp_project_dir,
            {"name": "test-project", "devDependencies": {"@acme/scaffoldkit-cli-plugin-foo": "^1.0.0"}},
        )
        seen: list[dict] = []

        def apply(api, options, root_options, invoking):
            seen.append(options)

        loader = module_loader({"@acme/scaffoldkit-cli-plugin-foo": GeneratorModule(apply=apply)})
        generator = await invoke(
            "@acme/foo", {"flavor": "strict"}, tmp_project_dir, config=config, loader=loader, writer=writer
        )

        assert seen == [{"flavor": "strict"}]
        assert [p.id for p in generator.plugins] == ["@acme/scaffoldkit-cli-plugin-foo"]
        assert generator.invoking is True
        writer.assert_awaited_once()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_not_installed(self, tmp_project_dir: Path, config):
        with pytest.raises(PluginLoadError, match="Plugin 'foo': cannot be resolved"):
            await invoke("foo", context=tmp_project_dir, config=config)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_generator(self, tmp_project_dir: Path, config, module_loader):
        _write_manifest(tmp_project_dir, {"devDependencies": {"scaffoldkit-cli-plugin-foo": "1.0.0"}})
        loader = module_loader({"scaffoldkit-cli-plugin-foo": GeneratorModule(hooks=lambda *a: None)})

        with pytest.raises(PluginLoadError) as exc_info:
            await invoke("foo", context=tmp_project_dir, config=config, loader=loader)
        assert exc_info.value.plugin_id == "scaffoldkit-cli-plugin-foo"
        assert "does not have a generator to invoke" in str(exc_info.value)


# ---------------------------------------------------------------------------
# parse_option
# ---------------------------------------------------------------------------


class TestParseOption:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("lint_on_save=true", ("lint_on_save", True)),
            ("config=airbnb", ("config", "airbnb")),
            ("count=3", ("count", 3)),
            ('items=["a","b"]', ("items", ["a", "b"])),
            ("url=http://x?a=b", ("url", "http://x?a=b")),
            ("force", ("force", True)),
        ],
    )
    def test_parse(self, raw, expected):
        assert parse_option(raw) == expected


# ---------------------------------------------------------------------------
# main()
# ---------------------------------------------------------------------------


class TestMain:
    @pytest.mark.unit
    def test_missing_directory_exits(self, tmp_path: Path):
        with patch("scaffoldkit.utils.error") as error, pytest.raises(SystemExit) as exc_info:
            main(["foo", "--context", str(tmp_path / "missing")])
        assert exc_info.value.code == 1
        assert "Project directory not found" in error.call_args.args[0]

    @pytest.mark.unit
    def test_passes_parsed_options(self, tmp_project_dir: Path):
        with patch("scaffoldkit.invoke.invoke", new=AsyncMock()) as mock_invoke:
            main(["foo", "-C", str(tmp_project_dir), "-o", "a=1", "--option", "force"])
        mock_invoke.assert_awaited_once_with("foo", {"a": 1, "force": True}, tmp_project_dir)

    @pytest.mark.unit
    def test_plugin_load_error_exits(self, tmp_project_dir: Path):
        with patch("scaffoldkit.utils.error") as error, pytest.raises(SystemExit) as exc_info:
            main(["not-installed", "--context", str(tmp_project_dir)])
        assert exc_info.value.code == 1
        assert "Plugin 'not-installed'" in error.call_args.args[0]
