"""Export orchestration: discovery, bounded parallel export, conversion and writing."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path

import typer
from loguru import logger

from .config import OPENCODE_CONFIG_DIR, Settings
from .converter import convert_session
from .exporter import RetryPolicy, check_opencode_available, export_session_with_retry
from .models import ExportStats, SessionExport, SessionListItem
from .storage import get_storage_dir, list_sessions
from .utils import pluralize
from .writer import GroupBy, get_output_path, prepare_output_dirs, write_session_file

# Abort once more than this share of processed sessions failed...
DEFAULT_ERROR_THRESHOLD = 0.25
# ...but only after this many sessions were processed.
MIN_SESSIONS_BEFORE_ABORT = 10

MIN_CONCURRENCY = 8
MAX_CONCURRENCY = 32

OPENCODE_UNAVAILABLE_HELP = (
    "OpenCode CLI not found or not working.\n\n"
    "Please ensure OpenCode is installed and in your PATH:\n"
    "  1. Install:  npm install -g opencode\n"
    "  2. Verify:   opencode --version\n"
    "  3. If installed via Homebrew: brew link opencode\n\n"
    "If opencode is installed but not found, check your PATH:\n"
    "  echo $PATH | tr ':' '\\n' | grep -E 'npm|node'"
)

SessionExporter = Callable[[SessionListItem], Awaitable[SessionExport | None]]
AvailabilityCheck = Callable[[], Awaitable[bool]]


class OpenCodeUnavailableError(RuntimeError):
    """Raised when the `opencode` executable cannot be run."""


class OutputError(RuntimeError):
    """Raised when the output directory tree cannot be prepared."""


@dataclass(frozen=True, slots=True)
class ExportOptions:
    """Options controlling a single export run."""

    out_dir: Path
    overwrite: bool = True
    since: datetime | None = None
    include_reasoning_in_output: bool = True
    group_by: GroupBy = GroupBy.flat
    dry_run: bool = False
    verbose: bool = False
    opencode_dir: Path | None = None
    concurrency: int | None = None
    incremental: bool = False
    skip_validation: bool = False
    max_retries: int = 1


def create_export_options(out_dir: Path | str = OPENCODE_CONFIG_DIR, **overrides: object) -> ExportOptions:
    """Build ExportOptions with defaults, applying any keyword overrides."""
    return replace(ExportOptions(out_dir=Path(out_dir).expanduser()), **overrides)


def get_optimal_concurrency(override: int | None = None) -> int:
    """Concurrency for the subprocess-bound export work.

    A positive override wins; otherwise twice the CPU count, clamped to
    [MIN_CONCURRENCY, MAX_CONCURRENCY].
    """
    if override is not None and override > 0:
        return override
    cpus = os.cpu_count() or 1
    return max(MIN_CONCURRENCY, min(MAX_CONCURRENCY, cpus * 2))


@dataclass
class SessionResult:
    """Outcome of processing one session."""

    exported: bool = False
    skipped: bool = False
    messages_converted: int = 0
    messages_skipped: int = 0
    error: str | None = None


@dataclass
class _RunState:
    """Counters shared by session tasks; only touched from the event loop thread."""

    processed: int = 0
    errors: int = 0
    aborted: bool = False

    @property
    def error_rate(self) -> float:
        return self.errors / self.processed if self.processed else 0.0

    def record(self, result: SessionResult) -> None:
        self.processed += 1
        if result.error is not None:
            self.errors += 1
        if (
            not self.aborted
            and self.processed >= MIN_SESSIONS_BEFORE_ABORT
            and self.error_rate > DEFAULT_ERROR_THRESHOLD
        ):
            self.aborted = True
            logger.warning(
                "Error rate {rate:.1f}% after {count} sessions, not starting remaining exports",
                rate=self.error_rate * 100,
                count=self.processed,
            )


def _default_exporter(options: ExportOptions, settings: Settings) -> SessionExporter:
    policy = RetryPolicy(max_retries=options.max_retries)

    async def _export(session: SessionListItem) -> SessionExport | None:
        return await export_session_with_retry(
            session.id,
            session.directory,
            policy=policy,
            binary=settings.binary,
            skip_validation=options.skip_validation,
        )

    return _export


def _progress_level(options: ExportOptions) -> str:
    """Per-session progress is INFO for verbose runs, DEBUG otherwise."""
    return "INFO" if options.verbose else "DEBUG"


def _output_mtime_ms(path: Path) -> float | None:
    try:
        return path.stat().st_mtime * 1000
    except OSError:
        return None


async def process_session(
    session: SessionListItem,
    options: ExportOptions,
    exporter: SessionExporter,
) -> SessionResult:
    """Skip-check, export, convert and write a single session."""
    output_path = get_output_path(options.out_dir, session, options.group_by)
    level = _progress_level(options)
    output_exists = await asyncio.to_thread(output_path.exists)

    if output_exists and not options.overwrite:
        logger.log(level, "Skipping {session} (file exists)", session=session.id)
        return SessionResult(skipped=True)

    if output_exists and options.incremental:
        mtime_ms = await asyncio.to_thread(_output_mtime_ms, output_path)
        if mtime_ms is not None and mtime_ms >= session.updated:
            logger.log(level, "Skipping {session} (unchanged since last export)", session=session.id)
            return SessionResult(skipped=True)

    logger.log(level, "Exporting {session} from {directory}", session=session.id, directory=session.directory)
    exported = await exporter(session)
    if exported is None:
        return SessionResult(error=f"Failed to export session {session.id}")

    converted = convert_session(
        exported,
        include_reasoning_in_output=options.include_reasoning_in_output,
    )
    if not converted.lines:
        logger.log(level, "Skipping {session} (no convertible messages)", session=session.id)
        return SessionResult(skipped=True, messages_skipped=converted.skipped_count)

    line_count = pluralize(len(converted.lines), "line")
    if options.dry_run:
        logger.info("[dry-run] Would write {path} ({lines})", path=output_path, lines=line_count)
    else:
        try:
            await asyncio.to_thread(write_session_file, output_path, converted.lines)
        except OSError as exc:
            return SessionResult(
                messages_skipped=converted.skipped_count,
                error=f"Failed to write {output_path}: {exc}",
            )
        logger.log(level, "Wrote {lines} to {path}", lines=line_count, path=output_path)

    return SessionResult(
        exported=True,
        messages_converted=len(converted.lines),
        messages_skipped=converted.skipped_count,
    )


def aggregate_results(stats: ExportStats, results: list[SessionResult]) -> ExportStats:
    """Fold per-session results into the run statistics."""
    for result in results:
        if result.exported:
            stats.sessions_exported += 1
        elif result.skipped:
            stats.sessions_skipped += 1
        if result.error is not None:
            stats.errors.append(result.error)
        stats.messages_converted += result.messages_converted
        stats.messages_skipped += result.messages_skipped
    return stats


async def run_export(
    options: ExportOptions,
    *,
    settings: Settings | None = None,
    exporter: SessionExporter | None = None,
    availability_check: AvailabilityCheck | None = None,
) -> ExportStats:
    """Export all discovered sessions and return run statistics.

    Per-session failures are collected into `ExportStats.errors`; once at
    least MIN_SESSIONS_BEFORE_ABORT sessions were processed and the error
    rate exceeds DEFAULT_ERROR_THRESHOLD, sessions that have not started yet
    are skipped. Exports already in flight run to completion.

    Raises:
        OpenCodeUnavailableError: If `opencode --version` fails.
        StorageError: If session storage cannot be enumerated.
        OutputError: If the output directories cannot be created.
    """
    settings = settings or Settings()
    stats = ExportStats()

    if availability_check is None:
        available = await check_opencode_available(settings.binary)
    else:
        available = await availability_check()
    if not available:
        raise OpenCodeUnavailableError(OPENCODE_UNAVAILABLE_HELP)

    storage_dir = get_storage_dir(options.opencode_dir, settings=settings)
    logger.debug("Using OpenCode storage: {path}", path=storage_dir)

    sessions = await list_sessions(options.since, options.opencode_dir, settings=settings)
    stats.sessions_discovered = len(sessions)
    if not sessions:
        logger.debug("No sessions found")
        return stats

    concurrency = get_optimal_concurrency(options.concurrency)
    logger.debug(
        "Found {sessions}, processing with concurrency {concurrency}",
        sessions=pluralize(len(sessions), "session"),
        concurrency=concurrency,
    )

    if not options.dry_run:
        try:
            await asyncio.to_thread(prepare_output_dirs, options.out_dir, sessions, options.group_by)
        except OSError as exc:
            raise OutputError(f"Failed to create output directory under {options.out_dir}: {exc}") from exc

    exporter = exporter or _default_exporter(options, settings)
    semaphore = asyncio.Semaphore(concurrency)
    state = _RunState()

    async def _run(session: SessionListItem) -> SessionResult:
        async with semaphore:
            if state.aborted:
                result = SessionResult(skipped=True)
            else:
                result = await process_session(session, options, exporter)
            state.record(result)
            return result

    results = await asyncio.gather(*(_run(session) for session in sessions))
    aggregate_results(stats, list(results))

    if state.aborted:
        stats.aborted = True
        logger.error(
            "Aborted: Error rate ({rate:.1f}%) exceeded threshold ({threshold:.0f}%)",
            rate=state.error_rate * 100,
            threshold=DEFAULT_ERROR_THRESHOLD * 100,
        )

    return stats


def run_export_sync(options: ExportOptions, *, settings: Settings | None = None) -> ExportStats:
    """Blocking wrapper around `run_export` for the CLI."""
    return asyncio.run(run_export(options, settings=settings))


def format_summary(stats: ExportStats) -> list[str]:
    """Summary block printed after a run."""
    lines = [
        "",
        "--- Summary ---",
        f"Sessions discovered: {stats.sessions_discovered}",
        f"Sessions exported:   {stats.sessions_exported}",
        f"Sessions skipped:    {stats.sessions_skipped}",
        f"Messages converted:  {stats.messages_converted}",
        f"Messages skipped:    {stats.messages_skipped}",
    ]
    if stats.errors:
        lines.append(f"Errors:              {len(stats.errors)}")
        lines.extend(f"  - {error}" for error in stats.errors)
    return lines


def print_summary(stats: ExportStats) -> None:
    for line in format_summary(stats):
        typer.echo(line)
