"""Shared pytest fixtures for storage, export and conversion tests."""

from __future__ import annotations

import json
import stat
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any, Final

import pytest
from loguru import logger

OUTPUT_LINE_SCHEMA: Final[dict[str, object]] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "https://opencode-ccusage.dev/tests/output-line.schema.json",
    "title": "ccusage usage line",
    "type": "object",
    "required": ["timestamp", "sessionId", "requestId", "message"],
    "properties": {
        "timestamp": {
            "type": "string",
            "pattern": r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$",
        },
        "sessionId": {"type": "string", "minLength": 1},
        "cwd": {"type": "string", "minLength": 1},
        "requestId": {"type": "string", "pattern": r"^opencode:[^:]+:.+$"},
        "message": {
            "type": "object",
            "required": ["id", "model", "usage"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "model": {"type": "string", "minLength": 1},
                "usage": {
                    "type": "object",
                    "required": ["input_tokens", "output_tokens"],
                    "properties": {
                        "input_tokens": {"type": "integer", "minimum": 0},
                        "output_tokens": {"type": "integer", "minimum": 0},
                        "cache_read_input_tokens": {"type": "integer", "exclusiveMinimum": 0},
                        "cache_creation_input_tokens": {"type": "integer", "exclusiveMinimum": 0},
                    },
                    "additionalProperties": False,
                },
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}

FAKE_OPENCODE_SCRIPT: Final[str] = """#!/bin/sh
if [ "$1" = "--version" ]; then
  echo "0.0.0-test"
  exit 0
fi
if [ "$1" = "export" ]; then
  echo "$2" >> "$FAKE_EXPORT_DIR/calls.log"
  pwd > "$FAKE_EXPORT_DIR/$2.cwd"
  if [ -f "$FAKE_EXPORT_DIR/$2.json" ]; then
    printf 'Exporting session: %s\\n' "$2"
    cat "$FAKE_EXPORT_DIR/$2.json"
    exit 0
  fi
  echo "session not found: $2" >&2
  exit 3
fi
exit 1
"""


@pytest.fixture(scope="session")
def output_line_schema() -> dict[str, object]:
    """JSON Schema describing a single exported JSONL line."""
    return OUTPUT_LINE_SCHEMA


@pytest.fixture
def log_messages() -> Iterator[list[str]]:
    """Capture loguru messages emitted by the package."""
    messages: list[str] = []
    logger.enable("opencode_ccusage")
    handler_id = logger.add(lambda message: messages.append(str(message)), level="DEBUG", format="{level} {message}")
    try:
        yield messages
    finally:
        logger.remove(handler_id)
        logger.disable("opencode_ccusage")


@pytest.fixture
def write_stored_session(tmp_path: Path) -> Callable[..., Path]:
    """Write a session metadata file under <tmp>/opencode/storage/session/<project>/."""

    def _write(payload: dict[str, Any] | str, *, project: str = "project1", name: str | None = None) -> Path:
        project_dir = tmp_path / "opencode" / "storage" / "session" / project
        project_dir.mkdir(parents=True, exist_ok=True)
        if isinstance(payload, str):
            path = project_dir / (name or "broken.json")
            path.write_text(payload, encoding="utf-8")
        else:
            path = project_dir / (name or f"{payload['id']}.json")
            path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def opencode_dir(tmp_path: Path) -> Path:
    """OpenCode data directory matching `write_stored_session`."""
    path = tmp_path / "opencode"
    (path / "storage" / "session").mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture
def fake_opencode(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Executable stand-in for `opencode`; exports read from $FAKE_EXPORT_DIR/<id>.json."""
    export_dir = tmp_path / "fake-exports"
    export_dir.mkdir()
    monkeypatch.setenv("FAKE_EXPORT_DIR", str(export_dir))

    script = tmp_path / "bin" / "opencode"
    script.parent.mkdir()
    script.write_text(FAKE_OPENCODE_SCRIPT, encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def fake_export_dir(fake_opencode: Path, tmp_path: Path) -> Path:
    return tmp_path / "fake-exports"
