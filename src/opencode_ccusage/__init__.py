"""OpenCode session exporter producing ccusage-compatible JSONL."""

from loguru import logger

__version__ = "0.1.0"

from .converter import ConvertResult, convert_session, to_jsonl
from .exporter import ExportError, RetryPolicy, export_session, export_session_with_retry
from .models import ExportStats, OutputLine, SessionExport, SessionListItem
from .pipeline import ExportOptions, OpenCodeUnavailableError, OutputError, create_export_options, run_export
from .storage import StorageError, list_sessions
from .writer import GroupBy

# Library code stays quiet unless the CLI enables logging.
logger.disable("opencode_ccusage")

__all__ = [
    "list_sessions",
    "export_session",
    "export_session_with_retry",
    "convert_session",
    "to_jsonl",
    "run_export",
    "create_export_options",
    "ConvertResult",
    "ExportError",
    "ExportOptions",
    "ExportStats",
    "OpenCodeUnavailableError",
    "OutputError",
    "GroupBy",
    "OutputLine",
    "RetryPolicy",
    "SessionExport",
    "SessionListItem",
    "StorageError",
]
