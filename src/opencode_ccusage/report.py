"""Hand-off to `ccusage` for usage reports over exported sessions."""

from __future__ import annotations

import os
import subprocess
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

CLAUDE_CONFIG_PATHS = (
    Path.home() / ".config" / "claude",
    Path.home() / ".claude",
)

CCUSAGE_CHECK_TIMEOUT = 30.0


def find_claude_config_dirs(candidates: Sequence[Path] = CLAUDE_CONFIG_PATHS) -> list[Path]:
    """Return the Claude Code data directories that contain a `projects/` tree."""
    return [path for path in candidates if (path / "projects").is_dir()]


def build_ccusage_command(args: Sequence[str] = ()) -> list[str]:
    return ["npx", "ccusage", *args]


def build_ccusage_env(config_dirs: Sequence[Path]) -> dict[str, str]:
    """Environment for ccusage; CLAUDE_CONFIG_DIR lists the data directories."""
    env = dict(os.environ)
    if config_dirs:
        env["CLAUDE_CONFIG_DIR"] = ",".join(str(path) for path in config_dirs)
    else:
        env.pop("CLAUDE_CONFIG_DIR", None)
    return env


def check_ccusage_available() -> bool:
    """Return True when `npx ccusage --version` succeeds."""
    try:
        completed = subprocess.run(
            build_ccusage_command(["--version"]),
            capture_output=True,
            timeout=CCUSAGE_CHECK_TIMEOUT,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("ccusage availability check failed: {error}", error=exc)
        return False
    return completed.returncode == 0


def run_ccusage(config_dirs: Sequence[Path], args: Sequence[str] = ()) -> int:
    """Run ccusage with inherited stdio and return its exit code."""
    command = build_ccusage_command(args)
    logger.debug(
        "Running: {command} (CLAUDE_CONFIG_DIR={dirs})",
        command=" ".join(command),
        dirs=",".join(str(path) for path in config_dirs) or "<auto>",
    )
    try:
        completed = subprocess.run(command, env=build_ccusage_env(config_dirs), check=False)
    except OSError as exc:
        logger.error("Failed to run ccusage: {error}", error=exc)
        return 1
    return completed.returncode
