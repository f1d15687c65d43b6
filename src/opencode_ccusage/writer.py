"""Output file layout and JSONL writing."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Sequence
from enum import Enum
from pathlib import Path

from loguru import logger

from .converter import to_jsonl
from .models import OutputLine, SessionListItem

PROJECTS_DIR_NAME = "projects"
SUBDIR_PREFIX = "opencode"
DIRECTORY_HASH_LENGTH = 12


class GroupBy(str, Enum):
    flat = "flat"
    project = "project"
    directory = "directory"


def directory_hash(directory: str) -> str:
    """Short, stable, filesystem-safe digest of a working directory."""
    return hashlib.sha256(directory.encode("utf-8")).hexdigest()[:DIRECTORY_HASH_LENGTH]


def get_project_subdir(session: SessionListItem, group_by: GroupBy) -> str:
    """Name of the `projects/` subdirectory a session's file belongs to."""
    match group_by:
        case GroupBy.flat:
            return SUBDIR_PREFIX
        case GroupBy.project:
            return f"{SUBDIR_PREFIX}-{session.project_id}"
        case GroupBy.directory:
            return f"{SUBDIR_PREFIX}-{directory_hash(session.directory)}"
        case _:
            raise ValueError(f"Unsupported group_by: {group_by}")


def get_project_dir(out_dir: Path, session: SessionListItem, group_by: GroupBy) -> Path:
    return out_dir / PROJECTS_DIR_NAME / get_project_subdir(session, group_by)


def get_output_path(out_dir: Path, session: SessionListItem, group_by: GroupBy) -> Path:
    """Target JSONL path: `<out_dir>/projects/<subdir>/<session id>.jsonl`."""
    return get_project_dir(out_dir, session, group_by) / f"{session.id}.jsonl"


def prepare_output_dirs(
    out_dir: Path,
    sessions: Iterable[SessionListItem],
    group_by: GroupBy,
) -> set[Path]:
    """Create every project directory the given sessions will be written to."""
    dirs = {get_project_dir(out_dir, session, group_by) for session in sessions}
    for path in sorted(dirs):
        path.mkdir(parents=True, exist_ok=True)
    logger.debug("Prepared {count} output directories under {root}", count=len(dirs), root=out_dir)
    return dirs


def write_session_file(output_path: Path, lines: Sequence[OutputLine]) -> None:
    """Write a session's lines to a JSONL file."""
    output_path.write_text(to_jsonl(lines), encoding="utf-8")
