"""Filesystem and text helpers."""

import os
from pathlib import Path

PRIMARY_DATA_DIR = ".reply-guard"
DATA_DIR_ENV = "REPLY_GUARD_DATA_DIR"


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """
    Resolve the active data directory.

    REPLY_GUARD_DATA_DIR overrides the default. Relative values are resolved
    under the user's home directory.
    """
    raw = os.environ.get(DATA_DIR_ENV, "").strip()
    if raw:
        candidate = Path(raw).expanduser()
        if not candidate.is_absolute():
            candidate = Path.home() / candidate
        return ensure_dir(candidate)
    return ensure_dir(Path.home() / PRIMARY_DATA_DIR)


def compact_preview(text: str | None, limit: int = 80) -> str:
    """Collapse whitespace and cut long text for log lines."""
    compact = " ".join((text or "").split())
    if len(compact) <= limit:
        return compact
    return compact[:limit] + "..."
