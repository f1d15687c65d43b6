"""CLI interface for exporting OpenCode sessions to ccusage JSONL."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import typer

from . import __version__
from .config import Settings
from .logging import configure_logging
from .models import ExportStats
from .pipeline import (
    ExportOptions,
    OpenCodeUnavailableError,
    OutputError,
    create_export_options,
    print_summary,
    run_export_sync,
)
from .report import check_ccusage_available, find_claude_config_dirs, run_ccusage
from .storage import StorageError
from .utils import parse_since, pluralize
from .writer import GroupBy

CCUSAGE_MISSING_HELP = (
    "Error: ccusage is not installed or not available.\n\n"
    "Please install ccusage first:\n"
    "  npm install -g ccusage\n\n"
    "Or run with npx:\n"
    "  npx ccusage --help"
)

FATAL_EXPORT_ERRORS = (OpenCodeUnavailableError, StorageError, OutputError)

app = typer.Typer(
    help="Export OpenCode sessions to ccusage-compatible JSONL format.",
    pretty_exceptions_enable=True,
)


def _parse_since_option(value: str | None) -> datetime | None:
    if value is None:
        return None
    try:
        return parse_since(value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--since") from None


def _echo_result_line(stats: ExportStats, out_dir: Path) -> None:
    if stats.sessions_exported > 0:
        typer.echo(f"Exported {pluralize(stats.sessions_exported, 'session')} to {out_dir}")
    elif stats.sessions_discovered == 0:
        typer.echo("No sessions found.")
    else:
        typer.echo("No new sessions to export.")


def _run_or_exit(options: ExportOptions, settings: Settings) -> ExportStats:
    try:
        return run_export_sync(options, settings=settings)
    except FATAL_EXPORT_ERRORS as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)


@app.command("export")
def export_command(
    out: Path | None = typer.Option(
        None,
        "--out",
        help="Output directory (default: ~/.config/claude-opencode)",
    ),
    since: str | None = typer.Option(
        None,
        "--since",
        help="Only export sessions after cutoff (ISO date or number of days)",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview without writing files"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show detailed progress"),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        "-c",
        help="Number of parallel exports (default: auto-detected based on CPU)",
    ),
    incremental: bool = typer.Option(
        False,
        "--incremental",
        help="Only re-export sessions updated since last export",
    ),
    skip_validation: bool = typer.Option(
        False,
        "--skip-validation",
        help="Skip schema validation for faster processing",
    ),
) -> None:
    """Export OpenCode sessions to ccusage-compatible JSONL files."""
    configure_logging(verbose)
    settings = Settings()
    out_dir = (out or settings.export_dir).expanduser()

    options = create_export_options(
        out_dir,
        since=_parse_since_option(since),
        dry_run=dry_run,
        verbose=verbose,
        concurrency=concurrency,
        incremental=incremental,
        skip_validation=skip_validation,
        max_retries=settings.export_retries,
    )
    stats = _run_or_exit(options, settings)

    if verbose or stats.errors:
        print_summary(stats)
    else:
        _echo_result_line(stats, out_dir)

    if stats.errors:
        raise typer.Exit(code=1)


@app.command("advanced")
def advanced_command(
    out: Path = typer.Option(..., "--out", help="Output directory (required)"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Overwrite existing session files"),
    since: str | None = typer.Option(
        None,
        "--since",
        help="Only export sessions after cutoff (ISO date or number of days)",
    ),
    include_reasoning_in_output: bool = typer.Option(
        True,
        "--include-reasoning-in-output/--no-include-reasoning-in-output",
        help="Fold reasoning tokens into output_tokens",
    ),
    group_by: GroupBy = typer.Option(
        GroupBy.flat,
        "--group-by",
        help="Group output files: flat, project, or directory",
    ),
    opencode_dir: Path | None = typer.Option(
        None,
        "--opencode-dir",
        help="Override OpenCode data directory (default: auto-detected)",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview without writing files"),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed progress"),
) -> None:
    """Advanced export with full control over all options."""
    configure_logging(verbose)
    settings = Settings()

    options = create_export_options(
        out,
        overwrite=overwrite,
        since=_parse_since_option(since),
        include_reasoning_in_output=include_reasoning_in_output,
        group_by=group_by,
        opencode_dir=opencode_dir,
        dry_run=dry_run,
        verbose=verbose,
        max_retries=settings.export_retries,
    )
    stats = _run_or_exit(options, settings)
    print_summary(stats)

    if stats.errors:
        raise typer.Exit(code=1)


def _run_report(
    ccusage_args: list[str],
    *,
    opencode_only: bool,
    claude_only: bool,
    skip_export: bool,
    since: str | None,
    verbose: bool,
) -> None:
    configure_logging(verbose)
    if opencode_only and claude_only:
        raise typer.BadParameter("--opencode-only cannot be combined with --claude-only.")

    if not check_ccusage_available():
        typer.echo(CCUSAGE_MISSING_HELP, err=True)
        raise typer.Exit(code=1)

    settings = Settings()
    export_dir = settings.export_dir.expanduser()
    since_value = _parse_since_option(since)

    if not skip_export and not claude_only:
        options = create_export_options(
            export_dir,
            since=since_value,
            verbose=verbose,
            max_retries=settings.export_retries,
        )
        try:
            stats = run_export_sync(options, settings=settings)
        except FATAL_EXPORT_ERRORS as exc:
            # ccusage still runs over whatever was exported before
            typer.echo(f"Export error: {exc}", err=True)
        else:
            if verbose:
                print_summary(stats)
                typer.echo("")
            elif stats.sessions_exported > 0:
                typer.echo(f"Exported {pluralize(stats.sessions_exported, 'session')}\n")

    if opencode_only:
        config_dirs = [export_dir]
    elif claude_only:
        config_dirs = []
    else:
        config_dirs = [*find_claude_config_dirs(), export_dir]

    raise typer.Exit(code=run_ccusage(config_dirs, ccusage_args))


@app.command(
    "report",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def report_command(
    ctx: typer.Context,
    opencode_only: bool = typer.Option(
        False, "--opencode-only", help="Only show OpenCode usage (skip Claude Code)"
    ),
    claude_only: bool = typer.Option(
        False, "--claude-only", help="Only show Claude Code usage (skip export)"
    ),
    skip_export: bool = typer.Option(False, "--skip-export", help="Skip the export step"),
    since: str | None = typer.Option(
        None,
        "--since",
        help="Only export sessions after cutoff (ISO date or number of days)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show detailed progress"),
) -> None:
    """Export OpenCode sessions, then run ccusage; extra arguments go to ccusage."""
    _run_report(
        list(ctx.args),
        opencode_only=opencode_only,
        claude_only=claude_only,
        skip_export=skip_export,
        since=since,
        verbose=verbose,
    )


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"opencode-ccusage {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def default_command(
    ctx: typer.Context,
    opencode_only: bool = typer.Option(
        False, "--opencode-only", help="Only show OpenCode usage (skip Claude Code)"
    ),
    claude_only: bool = typer.Option(
        False, "--claude-only", help="Only show Claude Code usage (skip export)"
    ),
    skip_export: bool = typer.Option(False, "--skip-export", help="Skip the export step"),
    since: str | None = typer.Option(
        None,
        "--since",
        help="Only export sessions after cutoff (ISO date or number of days)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show detailed progress"),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
) -> None:
    """Export OpenCode sessions to ccusage-compatible JSONL format.

    Without a command, runs `report` with the given options.
    """
    if ctx.invoked_subcommand is not None:
        return
    _run_report(
        [],
        opencode_only=opencode_only,
        claude_only=claude_only,
        skip_export=skip_export,
        since=since,
        verbose=verbose,
    )


def main() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
