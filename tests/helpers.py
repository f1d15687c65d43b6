"""Shared test helpers: payload builders for OpenCode storage and exports."""

from __future__ import annotations

from typing import Any


def make_stored_session(
    session_id: str,
    *,
    created: int,
    updated: int | None = None,
    project_id: str = "project1",
    directory: str = "/test/project",
    title: str = "Session",
) -> dict[str, Any]:
    return {
        "id": session_id,
        "title": title,
        "time": {"created": created, "updated": updated if updated is not None else created},
        "projectID": project_id,
        "directory": directory,
    }


def make_message(
    message_id: str,
    *,
    role: str = "assistant",
    session_id: str = "ses_test",
    created: int | None = 1_704_067_200_000,
    completed: int | None = None,
    model: str | None = "claude-sonnet-4",
    tokens: tuple[int, int, int, int, int] | None = (100, 200, 50, 0, 0),
    cwd: str | None = "/test/project",
) -> dict[str, Any]:
    """Build an exported message; tokens are (input, output, reasoning, cache read, cache write)."""
    time: dict[str, int] = {}
    if created is not None:
        time["created"] = created
    if completed is not None:
        time["completed"] = completed
    info: dict[str, Any] = {"id": message_id, "sessionID": session_id, "role": role, "time": time}
    if model is not None:
        info["modelID"] = model
        info["providerID"] = "anthropic"
    if tokens is not None:
        input_tokens, output_tokens, reasoning, cache_read, cache_write = tokens
        info["tokens"] = {
            "input": input_tokens,
            "output": output_tokens,
            "reasoning": reasoning,
            "cache": {"read": cache_read, "write": cache_write},
        }
    if cwd is not None:
        info["path"] = {"cwd": cwd, "root": cwd}
    return {"info": info, "parts": [{"type": "text", "text": "..."}]}


def make_export(session_id: str, messages: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "info": {
            "id": session_id,
            "version": "0.15.0",
            "projectID": "project1",
            "directory": "/test/project",
            "title": "Session",
            "time": {"created": 1_704_067_200_000, "updated": 1_704_067_300_000},
        },
        "messages": messages,
    }


def sample_export_payload() -> dict[str, Any]:
    """Session with user turns and six assistant messages (one all-zero, one cache-only)."""
    base = 1_704_067_200_000
    return make_export(
        "ses_sample",
        [
            make_message("msg_user001", role="user", session_id="ses_sample", created=base, model=None, tokens=None),
            make_message(
                "msg_assistant001",
                session_id="ses_sample",
                created=base + 1_000,
                completed=base + 5_000,
                tokens=(1000, 200, 50, 0, 0),
            ),
            make_message(
                "msg_assistant002",
                session_id="ses_sample",
                created=base + 6_000,
                completed=base + 9_000,
                tokens=(1500, 300, 100, 500, 0),
            ),
            make_message(
                "msg_assistant003_no_tokens",
                session_id="ses_sample",
                created=base + 10_000,
                tokens=(0, 0, 0, 0, 0),
            ),
            make_message("msg_user002", role="user", session_id="ses_sample", created=base + 11_000, model=None, tokens=None),
            make_message(
                "msg_assistant004",
                session_id="ses_sample",
                created=base + 12_000,
                completed=base + 14_000,
                model=None,
                tokens=(800, 100, 0, 0, 0),
                cwd=None,
            ),
            make_message(
                "msg_assistant005_cache_only",
                session_id="ses_sample",
                created=base + 15_000,
                completed=base + 16_000,
                tokens=(0, 0, 0, 0, 15000),
            ),
            make_message(
                "msg_assistant006",
                session_id="ses_sample",
                created=base + 17_000,
                completed=base + 20_000,
                tokens=(2000, 400, 0, 1200, 300),
            ),
        ],
    )
