"""Session discovery from OpenCode's on-disk storage."""

from __future__ import annotations

import asyncio
import json
import os
import stat
import sys
from datetime import datetime
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from .config import Settings
from .models import SessionListItem, StoredSessionInfo
from .utils import to_epoch_ms


class StorageError(RuntimeError):
    """Raised when the session storage cannot be enumerated."""


def get_storage_dir(
    override: Path | str | None = None,
    *,
    settings: Settings | None = None,
    platform: str | None = None,
) -> Path:
    """Resolve OpenCode's storage directory.

    Resolution order: explicit override, `OPENCODE_DATA_DIR`, then the
    platform default (`%LOCALAPPDATA%` on Windows, XDG data home elsewhere).
    """
    if override:
        return Path(override).expanduser() / "storage"

    settings = settings or Settings()
    if settings.data_dir is not None:
        return settings.data_dir.expanduser() / "storage"

    platform = platform or sys.platform
    if platform == "win32":
        local_app_data = os.environ.get("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
        return Path(local_app_data) / "opencode" / "storage"

    # OpenCode uses XDG data home on macOS too, not ~/Library
    xdg_data_home = os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(xdg_data_home) / "opencode" / "storage"


def read_session_info(path: Path) -> SessionListItem | None:
    """Parse a stored session file, returning None when it is unusable."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        stored = StoredSessionInfo.model_validate(data)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
        logger.debug("Skipping unreadable session file {path}: {error}", path=path, error=exc)
        return None
    return SessionListItem.from_stored(stored)


def _storage_exists(sessions_dir: Path) -> bool:
    # missing is fine; unreadable parents must surface as OSError
    try:
        return stat.S_ISDIR(sessions_dir.stat().st_mode)
    except (FileNotFoundError, NotADirectoryError):
        return False


def _list_project_dirs(sessions_dir: Path) -> list[Path]:
    return sorted(entry for entry in sessions_dir.iterdir() if entry.is_dir())


def _list_session_files(project_dir: Path) -> list[Path]:
    return sorted(
        entry for entry in project_dir.iterdir() if entry.suffix == ".json" and entry.is_file()
    )


async def _read_project(project_dir: Path) -> list[SessionListItem]:
    session_files = await asyncio.to_thread(_list_session_files, project_dir)
    results = await asyncio.gather(
        *(asyncio.to_thread(read_session_info, path) for path in session_files)
    )
    return [item for item in results if item is not None]


async def list_sessions(
    since: datetime | None = None,
    storage_override: Path | str | None = None,
    *,
    settings: Settings | None = None,
) -> list[SessionListItem]:
    """List all sessions found in OpenCode storage, oldest first.

    Project directories and their session files are read concurrently.
    Files that fail to parse or validate are skipped.

    Args:
        since: Keep only sessions created at or after this instant.
        storage_override: OpenCode data directory to read instead of the default.
        settings: Settings used to resolve the default data directory.

    Returns:
        Sessions sorted by creation time ascending.

    Raises:
        StorageError: If an existing storage directory cannot be enumerated.
    """
    storage_dir = get_storage_dir(storage_override, settings=settings)
    sessions_dir = storage_dir / "session"

    try:
        if not await asyncio.to_thread(_storage_exists, sessions_dir):
            logger.debug("No session storage at {path}", path=sessions_dir)
            return []
        project_dirs = await asyncio.to_thread(_list_project_dirs, sessions_dir)
        per_project = await asyncio.gather(*(_read_project(path) for path in project_dirs))
    except OSError as exc:
        raise StorageError(f"Failed to read sessions from storage: {exc}") from exc

    sessions = [item for items in per_project for item in items]

    if since is not None:
        since_ms = to_epoch_ms(since)
        sessions = [item for item in sessions if item.created >= since_ms]

    sessions.sort(key=lambda item: item.created)
    return sessions
