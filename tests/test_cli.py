"""Smoke tests for the CLI.

These tests verify the CLI commands end to end. Workflows that run shell
commands use /bin/sh through BUILDFLOW_SHELL.
"""

import json
import os
import subprocess
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from buildflow import __version__
from buildflow.cli import app

runner = CliRunner()

SHELL_ENV = {"BUILDFLOW_SHELL": "/bin/sh -e", "BUILDFLOW_LOG_LEVEL": "CRITICAL"}


@pytest.fixture
def shell_env(tmp_path):
    """Run commands with a POSIX shell and a temporary work directory."""
    env = {**SHELL_ENV, "BUILDFLOW_WORK_DIR": str(tmp_path / "work")}
    with patch.dict(os.environ, env):
        yield


def write_workflow(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        """CLI --help should return exit code 0."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "sequential" in result.stdout

    def test_version_flag(self) -> None:
        """CLI --version should print version and exit 0."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_short_version_flag(self) -> None:
        """CLI -V should print version and exit 0."""
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_no_args_shows_help(self) -> None:
        """CLI with no args should show help."""
        result = runner.invoke(app, [])
        assert "Usage:" in result.stdout


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_command_shows_all_settings(self) -> None:
        """CLI config should show all configuration fields."""
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Paths:" in result.stdout
        assert "Execution:" in result.stdout
        assert "Operational:" in result.stdout
        assert "Work directory" in result.stdout
        assert "Logs directory" in result.stdout
        assert "Shell" in result.stdout
        assert "Inherit environment" in result.stdout
        assert "Step timeout" in result.stdout
        assert "Log level" in result.stdout

    def test_config_json_contains_all_fields(self) -> None:
        """CLI config --json should contain all config fields."""
        result = runner.invoke(app, ["config", "--json"])
        assert result.exit_code == 0
        config_data = json.loads(result.stdout)
        for key in [
            "work_dir",
            "logs_dir",
            "shell",
            "inherit_environ",
            "step_timeout",
            "log_level",
        ]:
            assert key in config_data, f"Missing key: {key}"

    def test_config_reads_env(self) -> None:
        """CLI config should reflect BUILDFLOW_ environment variables."""
        with patch.dict(os.environ, {"BUILDFLOW_SHELL": "/bin/zsh"}):
            result = runner.invoke(app, ["config", "--json"])
        assert json.loads(result.stdout)["shell"] == "/bin/zsh"


class TestCLIValidate:
    """Test CLI validate command."""

    def test_valid_workflow(self, tmp_path: Path) -> None:
        """CLI validate should list expanded steps."""
        path = write_workflow(
            tmp_path / "wf.yaml",
            "functions:\n"
            "  twice:\n"
            "    steps:\n"
            "      - id: one\n"
            "        run: echo 1\n"
            "      - id: two\n"
            "        run: echo 2\n"
            "steps:\n"
            "  - id: call\n"
            "    uses: twice\n"
            "  - id: last\n"
            "    name: Final step\n"
            "    run: echo done\n",
        )
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 0
        assert "Valid workflow: 3 step(s)" in result.stdout
        assert "call.one" in result.stdout
        assert "call.two" in result.stdout
        assert "last (Final step)" in result.stdout

    def test_missing_file(self, tmp_path: Path) -> None:
        """CLI validate should fail for a missing file."""
        result = runner.invoke(app, ["validate", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 1
        assert "File not found" in result.stdout

    def test_schema_error(self, tmp_path: Path) -> None:
        """CLI validate should report schema errors."""
        path = write_workflow(tmp_path / "wf.yaml", "steps:\n  - id: a\n")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1
        assert "Validation failed" in result.stdout

    def test_unknown_function(self, tmp_path: Path) -> None:
        """CLI validate should report unknown functions."""
        path = write_workflow(tmp_path / "wf.yaml", "steps:\n  - uses: missing\n")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1
        assert "Unknown build function: missing" in result.stdout

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        """CLI validate should report YAML parse errors without a traceback."""
        path = write_workflow(tmp_path / "wf.yaml", "steps: [\n  - run: 'x\n")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1
        assert "Parse error" in result.stdout

    def test_missing_file_name_with_markup(self) -> None:
        """CLI validate should print file names containing brackets verbatim."""
        result = runner.invoke(app, ["validate", "[bold]missing.yaml"])
        assert result.exit_code == 1
        assert "[bold]missing.yaml" in result.stdout

    def test_malformed_directive(self, tmp_path: Path) -> None:
        """CLI validate should report malformed upload directives."""
        path = write_workflow(
            tmp_path / "wf.yaml", "steps:\n  - run: upload-artifact a.png b.png\n"
        )
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1
        assert "Validation failed" in result.stdout


class TestCLIRun:
    """Test CLI run command."""

    def test_run_json(self, tmp_path: Path, shell_env) -> None:
        """CLI run --json should report step statuses and artifacts."""
        out = tmp_path / "out"
        out.mkdir()
        path = write_workflow(
            tmp_path / "wf.yaml",
            "steps:\n"
            "  - id: build\n"
            f'    run: echo "$VERSION" > {out}/app.ipa\n'
            "  - id: upload\n"
            "    run: |\n"
            f"      upload-artifact {out}/app.ipa\n"
            f"      echo shot > {out}/shot.png\n"
            f"      upload-artifact --type build-artifact {out}/shot.png\n",
        )
        result = runner.invoke(app, ["run", str(path), "--json", "-e", "VERSION=2.0"])
        assert result.exit_code == 0, result.stdout
        data = json.loads(result.stdout)
        assert data["success"] is True
        assert data["steps"] == {"build": "succeeded", "upload": "succeeded"}
        assert data["artifacts"] == {
            "application-archive": [str((out / "app.ipa").resolve())],
            "build-artifact": [str((out / "shot.png").resolve())],
        }
        assert (out / "app.ipa").read_text().strip() == "2.0"

    def test_run_text(self, tmp_path: Path, shell_env) -> None:
        """CLI run should print a summary without artifacts."""
        path = write_workflow(tmp_path / "wf.yaml", "steps:\n  - run: echo hi\n")
        result = runner.invoke(app, ["run", str(path)])
        assert result.exit_code == 0
        assert "Workflow completed: 1 step(s)" in result.stdout
        assert "No artifacts uploaded" in result.stdout

    def test_run_file_env(self, tmp_path: Path, shell_env) -> None:
        """CLI run should pass the file env to steps, with --env taking precedence."""
        out = tmp_path / "env.txt"
        path = write_workflow(
            tmp_path / "wf.yaml",
            "env:\n"
            "  CHANNEL: beta\n"
            "  VERSION: '1.0'\n"
            "steps:\n"
            f'  - run: echo "$CHANNEL-$VERSION" > {out}\n',
        )
        result = runner.invoke(app, ["run", str(path), "-e", "VERSION=2.0"])
        assert result.exit_code == 0
        assert out.read_text().strip() == "beta-2.0"

    def test_run_failure_json(self, tmp_path: Path, shell_env) -> None:
        """CLI run should exit 1 and name the failing step."""
        path = write_workflow(
            tmp_path / "wf.yaml",
            "steps:\n"
            "  - id: ok\n"
            "    run: 'true'\n"
            "  - id: broken\n"
            "    run: exit 4\n"
            "  - id: skipped\n"
            "    run: 'true'\n",
        )
        result = runner.invoke(app, ["run", str(path), "--json"])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["success"] is False
        assert data["code"] == "workflow_aborted"
        assert data["step_id"] == "broken"
        assert data["exit_code"] == 4
        assert data["steps"] == {
            "ok": "succeeded",
            "broken": "failed",
            "skipped": "pending",
        }

    def test_run_manifest(self, tmp_path: Path, shell_env) -> None:
        """CLI run --manifest should write an artifact manifest."""
        archive = tmp_path / "app.ipa"
        archive.write_bytes(b"abc123")
        manifest_path = tmp_path / "reports" / "manifest.json"
        path = write_workflow(
            tmp_path / "wf.yaml",
            f"steps:\n  - run: upload-artifact {archive}\n",
        )
        result = runner.invoke(
            app, ["run", str(path), "--json", "--manifest", str(manifest_path)]
        )
        assert result.exit_code == 0
        assert json.loads(result.stdout)["manifest"] == str(manifest_path)
        manifest = json.loads(manifest_path.read_text())
        assert manifest["summary"]["total_artifacts"] == 1
        assert manifest["artifacts"]["application-archive"][0]["size_bytes"] == 6

    def test_run_work_dir_removed(self, tmp_path: Path, shell_env) -> None:
        """CLI run should remove the workflow directory under --work-dir."""
        work_dir = tmp_path / "custom"
        path = write_workflow(tmp_path / "wf.yaml", "steps:\n  - run: touch marker\n")
        result = runner.invoke(app, ["run", str(path), "--work-dir", str(work_dir)])
        assert result.exit_code == 0
        assert work_dir.is_dir()
        assert list(work_dir.iterdir()) == []

    def test_run_invalid_env(self, tmp_path: Path, shell_env) -> None:
        """CLI run should reject malformed --env values."""
        path = write_workflow(tmp_path / "wf.yaml", "steps:\n  - run: 'true'\n")
        result = runner.invoke(app, ["run", str(path), "--json", "-e", "NOVALUE"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["code"] == "configuration_error"

    def test_run_malformed_yaml_json(self, tmp_path: Path, shell_env) -> None:
        """CLI run --json should report YAML parse errors as a validation error."""
        path = write_workflow(tmp_path / "wf.yaml", "steps: [\n  - run: 'x\n")
        result = runner.invoke(app, ["run", str(path), "--json"])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["success"] is False
        assert data["code"] == "validation"
        assert data["message"].startswith("Parse error")

    def test_run_missing_file(self, tmp_path: Path, shell_env) -> None:
        """CLI run should fail for a missing file."""
        result = runner.invoke(app, ["run", str(tmp_path / "nope.yaml"), "--json"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["code"] == "not_found"


class TestModuleEntryPoint:
    """Test python -m buildflow entry point."""

    def test_module_version(self) -> None:
        """python -m buildflow --version should work."""
        result = subprocess.run(
            [sys.executable, "-m", "buildflow", "--version"],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0
        assert __version__ in result.stdout
