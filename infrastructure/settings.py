"""Settings access helpers for JSON-based configuration."""

from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
from typing import Any

from loguru import logger

DEFAULT_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".nef", ".heic", ".heif")


class JsonSettings:
    """Lightweight JSON settings reader with dotted-key access."""

    def __init__(self, settings_path: str | Path) -> None:
        self._path = Path(settings_path)
        if not self._path.exists():
            raise FileNotFoundError(f"settings.json not found: {self._path}")
        with self._path.open("r", encoding="utf-8") as f:
            self._data = json.load(f)

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return value for dotted `key`, or `default` if not present."""
        parts = key.split(".")
        node: Any = self._data
        for part in parts:
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node


@dataclass(frozen=True)
class StoreConfig:
    """Resolved runtime configuration for the photo store."""

    storage_root: Path = Path("data")
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    upload_max_bytes: int = 50 * 1024 * 1024
    use_trash: bool = False
    thumbnail_max_side: int = 300
    thumbnail_quality: int = 80
    thumbnail_format: str = "JPEG"
    sweep_interval_seconds: float = 3600.0
    sweep_migrate_unindexed: bool = False
    archive_ttl_hours: float = 24.0
    auth_secret: str | None = None
    auth_token_hours: float = 24.0
    log_dir: Path = Path("logs")
    log_level: str = "INFO"

    def is_supported(self, filename: str) -> bool:
        """True if `filename` carries one of the accepted image extensions."""
        return Path(filename).suffix.lower() in self.extensions


def _positive_int(settings: JsonSettings, key: str, default: int) -> int:
    raw = settings.get(key, default)
    try:
        value = int(raw)
    except (ValueError, TypeError):
        logger.warning("Invalid setting {}={!r}, using {}", key, raw, default)
        return default
    if value <= 0:
        logger.warning("Setting {} must be positive, using {}", key, default)
        return default
    return value


def _non_negative_float(settings: JsonSettings, key: str, default: float) -> float:
    raw = settings.get(key, default)
    try:
        value = float(raw)
    except (ValueError, TypeError):
        logger.warning("Invalid setting {}={!r}, using {}", key, raw, default)
        return default
    return value if value >= 0 else default


def _parse_extensions(raw: Any) -> tuple[str, ...]:
    # Expect a list like: [".jpg", "png", ...]
    if not isinstance(raw, list):
        return DEFAULT_EXTENSIONS
    result: list[str] = []
    for item in raw:
        ext = str(item).strip().lower()
        if not ext:
            continue
        result.append(ext if ext.startswith(".") else f".{ext}")
    return tuple(result) or DEFAULT_EXTENSIONS


def load_store_config(settings: JsonSettings) -> StoreConfig:
    """Build a `StoreConfig` from settings; relative paths resolve next to the file."""
    base_dir = settings.path.parent

    def _path(key: str, default: str) -> Path:
        p = Path(str(settings.get(key, default) or default)).expanduser()
        return p if p.is_absolute() else base_dir / p

    quality = _positive_int(settings, "thumbnail.quality", 80)
    secret = settings.get("auth.secret")
    return StoreConfig(
        storage_root=_path("storage.root", "data"),
        extensions=_parse_extensions(settings.get("images.extensions")),
        upload_max_bytes=_positive_int(settings, "upload.max_bytes", 50 * 1024 * 1024),
        use_trash=bool(settings.get("upload.use_trash", False)),
        thumbnail_max_side=_positive_int(settings, "thumbnail.max_side", 300),
        thumbnail_quality=min(quality, 100),
        thumbnail_format=str(settings.get("thumbnail.format", "JPEG") or "JPEG").upper(),
        sweep_interval_seconds=float(_positive_int(settings, "sweep.interval_seconds", 3600)),
        sweep_migrate_unindexed=bool(settings.get("sweep.migrate_unindexed", False)),
        archive_ttl_hours=_non_negative_float(settings, "archive.ttl_hours", 24.0),
        auth_secret=str(secret) if secret else None,
        auth_token_hours=_non_negative_float(settings, "auth.token_hours", 24.0) or 24.0,
        log_dir=_path("logging.dir", "logs"),
        log_level=str(settings.get("logging.level", "INFO") or "INFO").upper(),
    )
