"""Centralized JSON file I/O with consistent error handling.

Provides load_json() and save_json() for the settings file and the
file-backed key-value store. Writes go to a temporary sibling file that
replaces the target, so readers never see a half-written document.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

__all__ = ["encoded_size", "load_json", "save_json"]

logger = logging.getLogger("hltbresolver.json_utils")


def load_json(path: Path, default: Any = None) -> Any:
    """Load and parse a JSON file with unified error handling.

    Args:
        path: Path to the JSON file.
        default: Value to return if file doesn't exist or fails to parse.
            Defaults to empty dict if None.

    Returns:
        Parsed JSON data, or default value on failure.
    """
    if default is None:
        default = {}
    if not path.exists():
        return default
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to load JSON from %s: %s", path, exc)
        return default


def save_json(path: Path, data: Any, ensure_parents: bool = True) -> bool:
    """Save data as JSON, replacing the target file atomically.

    Args:
        path: Target file path.
        data: Data to serialize as JSON.
        ensure_parents: Create parent directories if needed.

    Returns:
        True on success, False on failure.
    """
    tmp_path = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
    try:
        if ensure_parents:
            path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
        return True
    except (OSError, TypeError, ValueError) as exc:
        logger.error("Failed to save JSON to %s: %s", path, exc)
        tmp_path.unlink(missing_ok=True)
        return False


def encoded_size(data: Any) -> int:
    """Returns the size in bytes of ``data`` serialized as compact UTF-8 JSON."""
    return len(json.dumps(data, ensure_ascii=False, separators=(",", ":")).encode("utf-8"))
