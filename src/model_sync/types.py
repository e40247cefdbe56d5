"""Shared data models and settings for model-sync."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

# ---------------------------------------------------------------------------
# Default constants
# ---------------------------------------------------------------------------

DEFAULT_BASE_URL = "https://dl.nmkd.de/flowframes/mdl"
DEFAULT_PACKAGE_ROOT = Path.home() / ".cache" / "model-sync" / "pkgs"
DEFAULT_MAX_RETRIES = 3
DEFAULT_STALL_WINDOW = 6.0  # Seconds without a progress event
DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_PROGRESS_LOG_INTERVAL = 0.2

MANIFEST_NAME = "files.json"
MIN_MANIFEST_BYTES = 32  # Anything smaller cannot hold a single entry

ENV_BASE_URL = "MODEL_SYNC_BASE_URL"
ENV_PACKAGE_ROOT = "MODEL_SYNC_PKG_DIR"

# ---------------------------------------------------------------------------
# Manifest entry (one row of files.json)
# ---------------------------------------------------------------------------


class ModelFile(BaseModel):
    """A single file listed in a model's ``files.json``."""

    filename: str
    dir: str
    size: int  # Sent as a string, e.g. "1048576"
    crc32: str

    @field_validator("dir")
    @classmethod
    def _normalize_dir(cls, value: str) -> str:
        value = value.replace("\\", "/")
        if value.startswith("/"):
            value = value[1:]
        return value

    @property
    def rel_path(self) -> str:
        """Path of the file relative to the model directory, ``/``-separated."""
        if not self.dir:
            return self.filename
        return f"{self.dir.rstrip('/')}/{self.filename}"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class SyncSettings(BaseModel):
    """Where models come from, where they go, and how patient to be."""

    base_url: str = DEFAULT_BASE_URL
    package_root: Path = DEFAULT_PACKAGE_ROOT
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    stall_window: float = Field(default=DEFAULT_STALL_WINDOW, gt=0)
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    progress_log_interval: float = Field(default=DEFAULT_PROGRESS_LOG_INTERVAL, ge=0)

    @classmethod
    def from_env(cls, **overrides: object) -> SyncSettings:
        """Build settings from the environment, then apply *overrides*.

        ``MODEL_SYNC_BASE_URL`` and ``MODEL_SYNC_PKG_DIR`` replace the
        default base URL and package root.  Overrides set to ``None`` are
        ignored so CLI arguments can be passed straight through.
        """
        values: dict[str, object] = {}
        if os.environ.get(ENV_BASE_URL):
            values["base_url"] = os.environ[ENV_BASE_URL]
        if os.environ.get(ENV_PACKAGE_ROOT):
            values["package_root"] = Path(os.environ[ENV_PACKAGE_ROOT])
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
