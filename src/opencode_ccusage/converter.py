"""Conversion of OpenCode exports to ccusage-compatible JSONL lines."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from .models import ExportedMessage, OutputLine, OutputMessage, SessionExport, Usage

REQUEST_ID_PREFIX = "opencode"
UNKNOWN_MODEL = "unknown"


@dataclass
class ConvertResult:
    """Lines produced for one session plus the number of rejected messages."""

    lines: list[OutputLine] = field(default_factory=list)
    skipped_count: int = 0


def to_iso_timestamp(unix_ms: int) -> str:
    """Format epoch milliseconds as ISO-8601 UTC with millisecond precision."""
    moment = datetime.fromtimestamp(unix_ms / 1000, tz=UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def dedupe_key(message_id: str, timestamp: int) -> str:
    return f"{message_id}:{timestamp}"


def message_timestamp(message: ExportedMessage) -> int | None:
    """Prefer the completion instant, fall back to creation."""
    time = message.info.time
    if time.completed is not None:
        return time.completed
    return time.created


def convert_message(
    message: ExportedMessage,
    session_id: str,
    timestamp: int,
    *,
    include_reasoning_in_output: bool = True,
) -> OutputLine:
    """Build the output line for an assistant message with token data."""
    info = message.info
    tokens = info.tokens
    assert tokens is not None

    output_tokens = tokens.output + tokens.reasoning if include_reasoning_in_output else tokens.output

    usage = Usage(
        input_tokens=tokens.input,
        output_tokens=output_tokens,
        cache_read_input_tokens=tokens.cache.read if tokens.cache.read > 0 else None,
        cache_creation_input_tokens=tokens.cache.write if tokens.cache.write > 0 else None,
    )
    return OutputLine(
        timestamp=to_iso_timestamp(timestamp),
        sessionId=session_id,
        cwd=info.path.cwd if info.path is not None and info.path.cwd else None,
        requestId=f"{REQUEST_ID_PREFIX}:{session_id}:{info.id}",
        message=OutputMessage(id=info.id, model=info.modelID or UNKNOWN_MODEL, usage=usage),
    )


def convert_session(
    export: SessionExport,
    *,
    include_reasoning_in_output: bool = True,
) -> ConvertResult:
    """Convert a session export into ccusage lines.

    Only assistant messages are considered. Messages without billable token
    activity, without a timestamp, or repeating an already seen
    (message id, timestamp) pair are counted in `skipped_count`.
    Lines are returned in ascending timestamp order.
    """
    result = ConvertResult()
    seen: set[str] = set()
    session_id = export.info.id

    for message in export.messages:
        if message.info.role != "assistant":
            continue

        tokens = message.info.tokens
        if tokens is None or not tokens.has_activity():
            result.skipped_count += 1
            continue

        timestamp = message_timestamp(message)
        if timestamp is None:
            result.skipped_count += 1
            continue

        key = dedupe_key(message.info.id, timestamp)
        if key in seen:
            result.skipped_count += 1
            continue
        seen.add(key)

        result.lines.append(
            convert_message(
                message,
                session_id,
                timestamp,
                include_reasoning_in_output=include_reasoning_in_output,
            )
        )

    result.lines.sort(key=lambda line: line.timestamp)
    return result


def to_jsonl(lines: Sequence[OutputLine]) -> str:
    """Serialize lines as compact JSONL with a trailing newline ("" when empty)."""
    if not lines:
        return ""
    return "".join(
        json.dumps(line.to_json_dict(), ensure_ascii=False, separators=(",", ":")) + "\n"
        for line in lines
    )
