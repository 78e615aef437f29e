"""Utilities for date extraction (EXIF and filesystem) and name validation.

This module centralizes date parsing and filesystem metadata lookups so the
codec, the thumbnail generator and migration share one behavior. Lookups are
best-effort and return `None` when data is not available.
"""

from __future__ import annotations

from datetime import datetime
import os
from pathlib import Path
import unicodedata

from loguru import logger

from core.errors import InvalidName

EXIF_DT_FMT = "%Y:%m:%d %H:%M:%S"

# Filesystems without birth-time support report 0 (or tiny values near it).
EPOCH_SENTINEL = 0.0


def parse_exif_datetime(value: object) -> datetime | None:
    """Parse an EXIF timestamp such as ``2024:01:15 10:00:00``.

    Also tolerates ISO-like variants; returns None for blank or zeroed values
    (``0000:00:00 00:00:00``) and anything unparseable.
    """
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")
    val_str = str(value).strip().rstrip("\x00")
    if not val_str or val_str.startswith("0000"):
        return None
    try:
        # Common EXIF format: "YYYY:MM:DD HH:MM:SS"
        if len(val_str) >= 19 and val_str[4] == ":" and val_str[7] == ":":
            return datetime.strptime(val_str[:19], EXIF_DT_FMT)
        return datetime.fromisoformat(val_str.replace("/", "-"))
    except (ValueError, TypeError):
        logger.debug("Unparseable EXIF datetime: {!r}", val_str)
        return None


def get_filesystem_creation_datetime(path: str | Path) -> datetime | None:
    """Best-effort file birth time.

    Returns None where the platform does not expose a birth time or reports
    the epoch-zero sentinel.
    """
    try:
        st = os.stat(path)
    except OSError as ex:
        logger.debug("stat failed for {}: {}", path, ex)
        return None
    ts = getattr(st, "st_birthtime", None)
    if ts is None or ts <= EPOCH_SENTINEL:
        return None
    try:
        return datetime.fromtimestamp(ts)
    except (OverflowError, OSError, ValueError):
        return None


def get_modified_datetime(path: str | Path) -> datetime:
    """Last-modified time of `path`; raises OSError if the file is gone."""
    return datetime.fromtimestamp(os.path.getmtime(path))


def validate_component(name: str, kind: str = "name") -> str:
    """Return `name` if it is usable as a single path component.

    Rejects empty names, ``.``/``..``, separators, NUL and other control
    characters.
    """
    if not isinstance(name, str) or not name.strip():
        raise InvalidName(f"Empty {kind}")
    if name in {".", ".."} or "/" in name or "\\" in name:
        raise InvalidName(f"Unsafe {kind}: {name!r}")
    if any(unicodedata.category(ch) == "Cc" for ch in name):
        raise InvalidName(f"Control character in {kind}: {name!r}")
    if len(name.encode("utf-8")) > 255:
        raise InvalidName(f"{kind.capitalize()} too long")
    return name
