"""Configuration for the exporter."""

from pathlib import Path

from pydantic_settings import BaseSettings

# Default directory for exported data (mimics the Claude Code config layout)
OPENCODE_CONFIG_DIR = Path.home() / ".config" / "claude-opencode"


class Settings(BaseSettings):
    """Exporter settings with env override support."""

    data_dir: Path | None = None  # OPENCODE_DATA_DIR, root holding storage/
    binary: str = "opencode"
    export_dir: Path = OPENCODE_CONFIG_DIR
    export_retries: int = 1

    model_config = {
        "env_prefix": "OPENCODE_",
        "env_file": ".env",
        "extra": "ignore",
    }
