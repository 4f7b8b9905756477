"""Environment-backed configuration for the structure store."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_DB_PATH = "artifacts/sitestructure.db"
DEFAULT_STORAGE_ROOT = "artifacts/sessions"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(slots=True)
class StorageConfig:
    """Where the structure table lives and where session telemetry is written."""

    db_path: str = field(default_factory=lambda: os.getenv("SITESTRUCTURE_DB_PATH", DEFAULT_DB_PATH))
    timeout_seconds: float = field(default_factory=lambda: _env_float("SITESTRUCTURE_DB_TIMEOUT", 5.0))
    storage_root: Path = field(
        default_factory=lambda: Path(os.getenv("SITESTRUCTURE_STORAGE_ROOT", DEFAULT_STORAGE_ROOT))
    )

    @classmethod
    def from_env(cls) -> "StorageConfig":
        return cls()


__all__ = ["StorageConfig", "DEFAULT_DB_PATH", "DEFAULT_STORAGE_ROOT"]
