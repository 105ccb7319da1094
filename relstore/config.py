"""
Configuration for relstore.

Uses pydantic-settings for environment variable loading. Every setting can
also be passed explicitly, and per-call arguments to create_database()
take precedence over both.

Environment variables:
    RELSTORE_DATA_DIR      Directory holding snapshots (default ".")
    RELSTORE_AUTOSAVE      Save after every mutation (default false)
    RELSTORE_BUFFER_SIZE   Identifier look-ahead size (default 2)
    RELSTORE_LOG_LEVEL     Logging level for the CLI (default INFO)
    RELSTORE_LOG_FORMAT    "text" or "json" (default text)
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

from .identifiers import DEFAULT_BUFFER_SIZE
from .snapshot.persistence import snapshot_path


class Settings(BaseSettings):
    """relstore configuration loaded from environment."""

    data_dir: Path = Field(default=Path("."), description="Directory for snapshot files")
    autosave: bool = Field(default=False, description="Save the snapshot after every mutation")
    buffer_size: int = Field(
        default=DEFAULT_BUFFER_SIZE, ge=1, description="Identifier look-ahead buffer size"
    )

    log_level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, ...)")
    log_format: Literal["text", "json"] = Field(default="text", description="Log output format")

    model_config = {"env_prefix": "RELSTORE_"}

    def snapshot_path(self, name: str) -> Path:
        """Snapshot file for database ``name``."""
        return snapshot_path(self.data_dir, name)
