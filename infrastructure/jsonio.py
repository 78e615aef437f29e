"""Helpers for JSON list files written atomically (temp file, fsync, rename)."""

from __future__ import annotations

import json
import os
from pathlib import Path
import threading
import time
from typing import Any

from core.errors import CorruptIndexError


def read_json_list(path: Path) -> list[Any]:
    """Read a JSON array from *path*; a missing file reads as an empty list."""
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError:
        return []
    except json.JSONDecodeError as exc:
        raise CorruptIndexError(f"Invalid JSON data in {path}") from exc
    if not isinstance(data, list):
        raise CorruptIndexError(f"Expected a JSON array in {path}")
    return data


def atomic_write_text(path: Path, data: str) -> None:
    """Atomically write *data* into *path*."""
    tmp_path = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
    path.parent.mkdir(parents=True, exist_ok=True)
    with tmp_path.open("w", encoding="utf-8") as handle:
        handle.write(data)
        handle.flush()
        os.fsync(handle.fileno())
    # ``replace`` can fail transiently on Windows while another process holds
    # the destination open; retry briefly before giving up.
    for attempt in range(5):
        try:
            tmp_path.replace(path)
            return
        except PermissionError:
            if attempt == 4:
                tmp_path.unlink(missing_ok=True)
                raise
            time.sleep(0.05 * (attempt + 1))


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Binary counterpart of `atomic_write_text`, used for thumbnails."""
    tmp_path = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with tmp_path.open("wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        tmp_path.replace(path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def write_json_list(path: Path, items: list[Any]) -> None:
    """Write *items* into *path* atomically."""
    payload = json.dumps(items, ensure_ascii=False, indent=2)
    atomic_write_text(path, payload)
