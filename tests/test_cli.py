"""Tests for the command-line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from cipages.cli import main

from conftest import BUILD_DOCS, TRAVIS_DOCUMENT


def _write(tmp_path: Path, script, branch="master") -> Path:
    path = tmp_path / "pipeline.yml"
    commands = "\n".join(f"  - {json.dumps(cmd)}" for cmd in script)
    path.write_text(
        "language: rust\n"
        "rust: [stable, nightly]\n"
        f"script:\n{commands}\n"
        "deploy:\n"
        "  provider: pages\n"
        "  github-token: $CIPAGES_TEST_TOKEN\n"
        "  local-dir: public\n"
        "  redirect: lists/index.html\n"
        "  repo: owner/project\n"
        "  on:\n"
        f"    branch: {branch}\n"
        "    rust: stable\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def test_validate_reference_document(runner: CliRunner, tmp_path: Path) -> None:
    path = tmp_path / ".travis.yml"
    path.write_text(TRAVIS_DOCUMENT, encoding="utf-8")

    result = runner.invoke(main, ["validate", "--config", str(path)])

    assert result.exit_code == 0, result.output
    assert "rust:nightly" in result.output
    assert "$GITHUB_TOKEN" in result.output


def test_config_error_exit_status(runner: CliRunner, tmp_path: Path) -> None:
    path = tmp_path / ".travis.yml"
    path.write_text("language: rust\nrust: []\n", encoding="utf-8")

    result = runner.invoke(main, ["validate", "--config", str(path)])

    assert result.exit_code == 2
    assert "Configuration error" in result.output


def test_matrix_lists_legs(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(main, ["matrix", "--config", str(_write(tmp_path, [BUILD_DOCS]))])

    assert result.exit_code == 0, result.output
    assert "0: rust:stable" in result.output
    assert "1: rust:nightly" in result.output


def test_run_skips_deploy_off_branch(runner: CliRunner, tmp_path: Path) -> None:
    config = _write(tmp_path, [BUILD_DOCS])
    summary = tmp_path / "summary.json"

    result = runner.invoke(main, [
        "run", "--config", str(config), "--workspace", str(tmp_path),
        "--branch", "feature-x", "--summary", str(summary),
    ])

    assert result.exit_code == 0, result.output
    assert "SKIPPED" in result.output
    legs = json.loads(summary.read_text())["legs"]
    assert [leg["state"] for leg in legs] == ["skipped", "skipped"]


def test_run_build_failure(runner: CliRunner, tmp_path: Path) -> None:
    config = _write(tmp_path, ["exit 1"])

    result = runner.invoke(main, [
        "run", "--config", str(config), "--workspace", str(tmp_path),
        "--branch", "master", "--variant", "stable",
    ])

    assert result.exit_code == 1
    assert "BUILD_FAILED" in result.output


def test_run_missing_credential(runner: CliRunner, tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("CIPAGES_TEST_TOKEN", raising=False)
    config = _write(tmp_path, [BUILD_DOCS])

    result = runner.invoke(main, [
        "run", "--config", str(config), "--workspace", str(tmp_path),
        "--branch", "master", "--variant", "stable",
    ])

    assert result.exit_code == 1
    assert "PUBLISH_FAILED" in result.output
    assert "CIPAGES_TEST_TOKEN" in result.output


def test_run_unknown_variant(runner: CliRunner, tmp_path: Path) -> None:
    config = _write(tmp_path, [BUILD_DOCS])

    result = runner.invoke(main, [
        "run", "--config", str(config), "--workspace", str(tmp_path), "--variant", "beta",
    ])

    assert result.exit_code == 2


def test_run_missing_workspace(runner: CliRunner, tmp_path: Path) -> None:
    config = _write(tmp_path, [BUILD_DOCS])

    result = runner.invoke(main, [
        "run", "--config", str(config), "--workspace", str(tmp_path / "missing"), "--branch", "master",
    ])

    assert result.exit_code == 2
    assert not isinstance(result.exception, FileNotFoundError)
    assert "does not exist" in result.output


def test_log_file_receives_records(runner: CliRunner, tmp_path: Path) -> None:
    config = _write(tmp_path, [BUILD_DOCS])
    log_file = tmp_path / "run.log"

    result = runner.invoke(main, [
        "--log-file", str(log_file),
        "run", "--config", str(config), "--workspace", str(tmp_path), "--branch", "feature-x",
    ])

    assert result.exit_code == 0, result.output
    assert "finished: skipped" in log_file.read_text(encoding="utf-8")
