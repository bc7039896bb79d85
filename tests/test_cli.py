"""Tests for the CLI interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from ctxpack.cli import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def initialized_project(tmp_project: Path) -> Path:
    """A tmp_project after `ctxpack init`."""
    runner = CliRunner()
    result = runner.invoke(main, ["init", "--path", str(tmp_project)])
    assert result.exit_code == 0, f"Init failed: {result.output}"
    return tmp_project


@pytest.fixture
def installed_project(initialized_project: Path) -> Path:
    """An initialized project with both sample packs installed."""
    runner = CliRunner()
    for name in ("base", "team"):
        manifest = initialized_project / "packs" / name
        result = runner.invoke(
            main, ["install", str(manifest), "--path", str(initialized_project)]
        )
        assert result.exit_code == 0, f"Install failed: {result.output}"
    return initialized_project


class TestCLIInit:
    def test_init_basic(self, runner: CliRunner, tmp_project: Path):
        result = runner.invoke(main, ["init", "--path", str(tmp_project)])
        assert result.exit_code == 0
        assert "Initializing" in result.output

    def test_init_creates_ai_dir(self, runner: CliRunner, tmp_project: Path):
        runner.invoke(main, ["init", "--path", str(tmp_project)])
        assert (tmp_project / ".ai" / "ctxpack.json").exists()
        assert (tmp_project / ".ai" / "packs.db").exists()

    def test_init_nonexistent_path(self, runner: CliRunner):
        result = runner.invoke(main, ["init", "--path", "/nonexistent/path"])
        assert result.exit_code != 0

    def test_version(self, runner: CliRunner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "ctxpack" in result.output


class TestCLIInstall:
    def test_install(self, runner: CliRunner, initialized_project: Path):
        manifest = initialized_project / "packs" / "base" / "pack.json"
        result = runner.invoke(
            main, ["install", str(manifest), "--path", str(initialized_project)]
        )
        assert result.exit_code == 0
        assert "acme/base@1.0.0" in result.output
        assert "global" in result.output

    def test_install_scope_option(self, runner: CliRunner, initialized_project: Path):
        manifest = initialized_project / "packs" / "base"
        result = runner.invoke(
            main,
            ["install", str(manifest), "--scope", "local", "--path", str(initialized_project)],
        )
        assert result.exit_code == 0
        assert "local scope" in result.output

    def test_install_bad_manifest(self, runner: CliRunner, initialized_project: Path):
        bad = initialized_project / "bad.json"
        bad.write_text(json.dumps({"pack": "acme/bad"}))
        result = runner.invoke(main, ["install", str(bad), "--path", str(initialized_project)])
        assert result.exit_code != 0

    def test_install_without_init(self, runner: CliRunner, tmp_project: Path):
        manifest = tmp_project / "packs" / "base"
        result = runner.invoke(main, ["install", str(manifest), "--path", str(tmp_project)])
        assert result.exit_code != 0

    def test_list(self, runner: CliRunner, installed_project: Path):
        result = runner.invoke(main, ["list", "--path", str(installed_project)])
        assert result.exit_code == 0
        assert "acme/base" in result.output
        assert "acme/team" in result.output

    def test_list_empty(self, runner: CliRunner, initialized_project: Path):
        result = runner.invoke(main, ["list", "--path", str(initialized_project)])
        assert result.exit_code == 0
        assert "No packs installed" in result.output

    def test_remove(self, runner: CliRunner, installed_project: Path):
        result = runner.invoke(
            main, ["remove", "acme/team", "--path", str(installed_project)]
        )
        assert result.exit_code == 0
        listed = runner.invoke(main, ["list", "--path", str(installed_project)])
        assert "acme/team" not in listed.output

    def test_remove_missing(self, runner: CliRunner, initialized_project: Path):
        result = runner.invoke(
            main, ["remove", "acme/ghost", "--path", str(initialized_project)]
        )
        assert result.exit_code != 0
        assert "not installed" in result.output


class TestCLIResolve:
    def test_resolve(self, runner: CliRunner, installed_project: Path):
        result = runner.invoke(main, ["resolve", "--path", str(installed_project)])
        assert result.exit_code == 0
        assert "acme/team@1.2.0" in result.output
        assert "acme/base@1.0.0" in result.output

    def test_resolve_missing_dependency(self, runner: CliRunner, initialized_project: Path):
        manifest = initialized_project / "packs" / "team"
        runner.invoke(main, ["install", str(manifest), "--path", str(initialized_project)])
        result = runner.invoke(main, ["resolve", "--path", str(initialized_project)])
        assert result.exit_code != 0
        assert "missing" in result.output


class TestCLIAssemble:
    def test_assemble_renders_document(self, runner: CliRunner, installed_project: Path):
        result = runner.invoke(main, ["assemble", "--path", str(installed_project)])
        assert result.exit_code == 0
        assert "Team typing: strict mypy." in result.output
        assert "Follow PEP 8." in result.output
        assert "Use type hints everywhere." not in result.output

    def test_assemble_summary(self, runner: CliRunner, installed_project: Path):
        result = runner.invoke(
            main, ["assemble", "--summary", "--path", str(installed_project)]
        )
        assert result.exit_code == 0
        assert "Included units:" in result.output

    def test_assemble_json(self, runner: CliRunner, installed_project: Path):
        result = runner.invoke(
            main,
            [
                "assemble", "--json", "--budget", "60",
                "--scores", str(installed_project / "scores.json"),
                "--path", str(installed_project),
            ],
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        ids = [item["unit_id"] for item in data["items"]]
        assert ids == ["acme/base#style", "acme/team#architecture"]
        assert data["dropped"] == ["acme/team#typing"]
        assert data["budget"] == 60

    def test_assemble_scope_filter(self, runner: CliRunner, installed_project: Path):
        result = runner.invoke(
            main, ["assemble", "--scope", "global", "--path", str(installed_project)]
        )
        assert result.exit_code == 0
        assert "Use type hints everywhere." in result.output
        assert "Team typing" not in result.output

    def test_assemble_over_budget(self, runner: CliRunner, installed_project: Path):
        result = runner.invoke(
            main, ["assemble", "--budget", "5", "--path", str(installed_project)]
        )
        assert result.exit_code != 0
        assert "budget" in result.output

    def test_assemble_zero_budget_rejected(self, runner: CliRunner, installed_project: Path):
        result = runner.invoke(
            main, ["assemble", "--budget", "0", "--path", str(installed_project)]
        )
        assert result.exit_code != 0
        assert "# Agent Context" not in result.output


class TestCLIConfig:
    def test_config_show(self, runner: CliRunner, initialized_project: Path):
        result = runner.invoke(main, ["config", "show", "--path", str(initialized_project)])
        assert result.exit_code == 0
        assert "default_budget" in result.output

    def test_config_set_and_get(self, runner: CliRunner, initialized_project: Path):
        result = runner.invoke(
            main, ["config", "set", "engine.default_budget", "2048", "--path", str(initialized_project)]
        )
        assert result.exit_code == 0
        result = runner.invoke(
            main, ["config", "get", "engine.default_budget", "--path", str(initialized_project)]
        )
        assert "2048" in result.output

    def test_config_set_unknown_key(self, runner: CliRunner, initialized_project: Path):
        result = runner.invoke(
            main, ["config", "set", "engine.nope", "1", "--path", str(initialized_project)]
        )
        assert result.exit_code != 0

    def test_config_set_invalid_value(self, runner: CliRunner, initialized_project: Path):
        result = runner.invoke(
            main, ["config", "set", "engine.policy", "random", "--path", str(initialized_project)]
        )
        assert result.exit_code != 0
