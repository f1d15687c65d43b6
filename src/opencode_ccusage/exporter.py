"""Session export through the `opencode export` subcommand."""

from __future__ import annotations

import asyncio
import json
import tempfile
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from .models import ExportedMessage, MessageInfo, SessionExport, SessionInfo

DEFAULT_BINARY = "opencode"
ERROR_EXCERPT_LIMIT = 200
STDERR_EXCERPT_LIMIT = 100


class ExportError(RuntimeError):
    """Raised when a session cannot be exported."""

    def __init__(
        self,
        message: str,
        *,
        session_id: str | None = None,
        exit_code: int | None = None,
        stderr: str | None = None,
    ) -> None:
        super().__init__(message)
        self.session_id = session_id
        self.exit_code = exit_code
        self.stderr = stderr


class ExportParseError(ExportError):
    """Raised when export output contains no decodable JSON document."""


class ExportValidationError(ExportError):
    """Raised when the decoded export does not match the expected schema."""


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded retry with a fixed delay between attempts."""

    max_retries: int = 1
    delay: float = 0.5
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False)

    @property
    def attempts(self) -> int:
        return 1 + max(0, self.max_retries)


async def check_opencode_available(binary: str = DEFAULT_BINARY) -> bool:
    """Return True when `<binary> --version` runs and exits cleanly."""
    try:
        process = await asyncio.create_subprocess_exec(
            binary,
            "--version",
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as exc:
        logger.debug("Cannot start {binary}: {error}", binary=binary, error=exc)
        return False
    return await process.wait() == 0


def extract_json_document(content: str, session_id: str) -> Any:
    """Decode the JSON document in export output, skipping any banner text."""
    json_start = content.find("{")
    if json_start == -1:
        raise ExportParseError(
            f"No JSON found in export output for session {session_id}",
            session_id=session_id,
        )
    try:
        return json.loads(content[json_start:])
    except json.JSONDecodeError as exc:
        raise ExportParseError(
            f"Failed to parse export JSON for session {session_id}: {exc}",
            session_id=session_id,
        ) from exc


def parse_export(data: Any, session_id: str, *, skip_validation: bool = False) -> SessionExport:
    """Turn a decoded export document into a SessionExport.

    With `skip_validation`, only assistant message metadata is validated;
    the session header, user messages and parts are trusted as-is.
    """
    try:
        if not skip_validation:
            return SessionExport.model_validate(data)
        return _build_export_unchecked(data, session_id)
    except ValidationError as exc:
        raise ExportValidationError(
            f"Invalid export JSON for session {session_id}: {exc}",
            session_id=session_id,
        ) from exc


def _build_export_unchecked(data: Any, session_id: str) -> SessionExport:
    header = data.get("info") if isinstance(data, dict) else None
    if not isinstance(header, dict) or not isinstance(header.get("id"), str):
        raise ExportValidationError(
            f"Invalid export JSON for session {session_id}: missing session info",
            session_id=session_id,
        )

    raw_messages = data.get("messages")
    if raw_messages is None:
        raw_messages = []
    if not isinstance(raw_messages, list):
        raise ExportValidationError(
            f"Invalid export JSON for session {session_id}: messages is not a list",
            session_id=session_id,
        )

    messages: list[ExportedMessage] = []
    for raw in raw_messages:
        info = raw.get("info") if isinstance(raw, dict) else None
        if not isinstance(info, dict) or info.get("role") != "assistant":
            continue
        parts = raw.get("parts")
        if parts is None:
            parts = []
        if not isinstance(parts, list):
            raise ExportValidationError(
                f"Invalid export JSON for session {session_id}: parts of message {info.get('id')} is not a list",
                session_id=session_id,
            )
        messages.append(
            ExportedMessage.model_construct(info=MessageInfo.model_validate(info), parts=parts)
        )
    return SessionExport.model_construct(info=SessionInfo.model_construct(**header), messages=messages)


async def _run_export_command(
    binary: str,
    session_id: str,
    directory: Path,
) -> tuple[int, str, str]:
    # stdout goes to a temp file: some builds buffer piped stdout unreliably
    with tempfile.TemporaryFile(prefix="opencode-export-", suffix=".json") as handle:
        process = await asyncio.create_subprocess_exec(
            binary,
            "export",
            session_id,
            cwd=directory,
            stdout=handle,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await process.communicate()
        handle.seek(0)
        content = handle.read().decode("utf-8", errors="replace")
    return process.returncode or 0, content, stderr.decode("utf-8", errors="replace")


async def export_session(
    session_id: str,
    directory: Path | str,
    *,
    binary: str = DEFAULT_BINARY,
    skip_validation: bool = False,
) -> SessionExport:
    """Export a single session by running `<binary> export <id>` in its directory.

    Raises:
        ExportError: The directory is missing, the command cannot start or exits non-zero.
        ExportParseError: The output holds no decodable JSON.
        ExportValidationError: The JSON does not match the export schema.
    """
    workdir = Path(directory)
    if not await asyncio.to_thread(workdir.is_dir):
        raise ExportError(f"Session directory does not exist: {workdir}", session_id=session_id)

    try:
        exit_code, content, stderr = await _run_export_command(binary, session_id, workdir)
    except OSError as exc:
        raise ExportError(
            f"Failed to execute {binary}: {exc}. Is OpenCode installed?",
            session_id=session_id,
        ) from exc

    if exit_code != 0:
        raise ExportError(
            f"{binary} export {session_id} failed (exit {exit_code}): {stderr.strip()}",
            session_id=session_id,
            exit_code=exit_code,
            stderr=stderr,
        )

    data = extract_json_document(content, session_id)
    return parse_export(data, session_id, skip_validation=skip_validation)


def _excerpt(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def format_export_failure(session_id: str, error: Exception | None) -> str:
    """Build the warning emitted when every export attempt failed."""
    message = f"Failed to export session {session_id}"
    if error is not None and str(error):
        message += f": {_excerpt(str(error), ERROR_EXCERPT_LIMIT)}"
    stderr = error.stderr.strip() if isinstance(error, ExportError) and error.stderr else ""
    if stderr:
        message += f" (stderr: {_excerpt(stderr, STDERR_EXCERPT_LIMIT)})"
    return message


async def export_session_with_retry(
    session_id: str,
    directory: Path | str,
    *,
    policy: RetryPolicy | None = None,
    binary: str = DEFAULT_BINARY,
    skip_validation: bool = False,
) -> SessionExport | None:
    """Export a session, retrying per `policy`; returns None once attempts run out."""
    policy = policy or RetryPolicy()
    last_error: ExportError | None = None

    for attempt in range(1, policy.attempts + 1):
        try:
            return await export_session(
                session_id,
                directory,
                binary=binary,
                skip_validation=skip_validation,
            )
        except ExportError as exc:
            last_error = exc
            logger.debug(
                "Export attempt {attempt}/{total} for {session} failed: {error}",
                attempt=attempt,
                total=policy.attempts,
                session=session_id,
                error=exc,
            )
            if attempt < policy.attempts:
                await policy.sleep(policy.delay)

    logger.warning(format_export_failure(session_id, last_error))
    return None
