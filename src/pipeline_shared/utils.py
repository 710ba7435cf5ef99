"""Shared utility functions for the Android pipeline."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any


def atomic_write_json(path: Path | str, data: Any) -> None:
    """Write JSON data atomically by writing to a temp file then renaming.

    Args:
        path: Target file path.
        data: JSON-serialisable data to write.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
            f.flush()
            os.fsync(f.fileno())
        os.replace(str(tmp_path), str(path))
    except BaseException:
        if tmp_path.exists():
            tmp_path.unlink()
        raise


def load_json(path: Path | str) -> dict | None:
    """Load JSON data from a file.

    Returns:
        Parsed JSON data, or None if the file is missing or invalid.
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return None


def ensure_dir(path: Path | str) -> Path:
    """Ensure a directory exists, creating parent directories as needed."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def capitalize_first(value: str) -> str:
    """Upper-case only the first character (``devDebug`` -> ``DevDebug``)."""
    return value[:1].upper() + value[1:]


def format_duration_ms(duration_ms: int | float) -> str:
    """Format milliseconds as ``"2m 35s"`` or ``"35s"``."""
    total_seconds = int(duration_ms // 1000)
    minutes, seconds = divmod(total_seconds, 60)
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def tail(text: str | None, limit: int = 500) -> str:
    """Return the last *limit* characters of *text*, stripped."""
    if not text:
        return ""
    text = text.strip()
    return text[-limit:]
