"""Tests for the ccusage hand-off."""

import subprocess
from pathlib import Path

import pytest

from opencode_ccusage import report


def test_find_claude_config_dirs_requires_projects(tmp_path: Path) -> None:
    with_projects = tmp_path / "claude"
    (with_projects / "projects").mkdir(parents=True)
    without_projects = tmp_path / "dot-claude"
    without_projects.mkdir()

    found = report.find_claude_config_dirs([with_projects, without_projects, tmp_path / "missing"])

    assert found == [with_projects]


def test_build_ccusage_command() -> None:
    assert report.build_ccusage_command() == ["npx", "ccusage"]
    assert report.build_ccusage_command(["daily", "--json"]) == ["npx", "ccusage", "daily", "--json"]


def test_build_ccusage_env_joins_dirs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CLAUDE_CONFIG_DIR", "/previous")

    env = report.build_ccusage_env([Path("/a"), Path("/b")])

    assert env["CLAUDE_CONFIG_DIR"] == "/a,/b"


def test_build_ccusage_env_unsets_when_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CLAUDE_CONFIG_DIR", "/previous")
    assert "CLAUDE_CONFIG_DIR" not in report.build_ccusage_env([])


def test_run_ccusage_returns_exit_code(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, object] = {}

    def _fake_run(command, env=None, check=False):
        seen["command"] = command
        seen["config"] = env["CLAUDE_CONFIG_DIR"]
        return subprocess.CompletedProcess(command, 3)

    monkeypatch.setattr(report.subprocess, "run", _fake_run)

    assert report.run_ccusage([Path("/export")], ["monthly"]) == 3
    assert seen == {"command": ["npx", "ccusage", "monthly"], "config": "/export"}


def test_run_ccusage_missing_npx(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(*args, **kwargs):
        raise FileNotFoundError("npx")

    monkeypatch.setattr(report.subprocess, "run", _fail)

    assert report.run_ccusage([]) == 1


def test_check_ccusage_available(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        report.subprocess, "run", lambda command, **kwargs: subprocess.CompletedProcess(command, 0)
    )
    assert report.check_ccusage_available() is True

    def _timeout(command, **kwargs):
        raise subprocess.TimeoutExpired(command, kwargs["timeout"])

    monkeypatch.setattr(report.subprocess, "run", _timeout)
    assert report.check_ccusage_available() is False
