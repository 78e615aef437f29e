"""Per-principal storage of original images and their thumbnails.

Layout under the storage root::

    <principal>/uploads/<filename>              original
    <principal>/uploads/thumbnails/<filename>   derived thumbnail
    <principal>/index/<YYYY-MM-DD>.json         date shards (see date_index)
    <principal>/albums/<quoted name>.json       albums (see album_repository)
    <principal>/archives/<job id>.zip           bulk archives
"""

from __future__ import annotations

from datetime import datetime
import os
from pathlib import Path
import threading
from typing import BinaryIO
from urllib.parse import quote, unquote

from loguru import logger
from send2trash import send2trash

from core.errors import AlreadyExists, InvalidName, NotFound, UnsupportedFormat, UploadTooLarge
from core.models import ImageRecord
from infrastructure.locks import KeyedLocks
from infrastructure.settings import StoreConfig
from infrastructure.utils import validate_component

ORIGINAL_URI_PREFIX = "/images/"
THUMBNAIL_URI_PREFIX = "/thumbnails/"
THUMBNAIL_DIRNAME = "thumbnails"
_CHUNK = 1024 * 1024


def original_uri(filename: str) -> str:
    """Public path reference of an original, as stored in records and albums."""
    return ORIGINAL_URI_PREFIX + quote(filename, safe="")


def thumbnail_uri(filename: str) -> str:
    return THUMBNAIL_URI_PREFIX + quote(filename, safe="")


def filename_from_uri(ref: str) -> str:
    """Extract the filename embedded in a path reference (last segment, unquoted)."""
    return unquote(ref.rstrip("/").rsplit("/", 1)[-1])


class ArtifactStore:
    """Filesystem store for originals and thumbnails, one subtree per principal."""

    def __init__(self, config: StoreConfig) -> None:
        self._config = config
        self._root = Path(config.storage_root)
        self._locks = KeyedLocks()

    @property
    def root(self) -> Path:
        return self._root

    # Paths
    def principal_dir(self, principal: str) -> Path:
        return self._root / validate_component(principal, "principal")

    def uploads_dir(self, principal: str) -> Path:
        return self.principal_dir(principal) / "uploads"

    def thumbnails_dir(self, principal: str) -> Path:
        return self.uploads_dir(principal) / THUMBNAIL_DIRNAME

    def index_dir(self, principal: str) -> Path:
        return self.principal_dir(principal) / "index"

    def albums_dir(self, principal: str) -> Path:
        return self.principal_dir(principal) / "albums"

    def archives_dir(self, principal: str) -> Path:
        return self.principal_dir(principal) / "archives"

    def original_path(self, principal: str, filename: str) -> Path:
        return self.uploads_dir(principal) / validate_component(filename, "filename")

    def thumbnail_path(self, principal: str, filename: str) -> Path:
        return self.thumbnails_dir(principal) / validate_component(filename, "filename")

    @staticmethod
    def thumbnail_for(original: Path) -> Path:
        """Deterministic thumbnail location for an original path."""
        return original.parent / THUMBNAIL_DIRNAME / original.name

    def make_record(
        self, filename: str, shot_date: datetime, upload_date: datetime
    ) -> ImageRecord:
        """Index record for a stored original, with its public path references."""
        return ImageRecord(
            filename=filename,
            shot_date=shot_date,
            upload_date=upload_date,
            original_path=original_uri(filename),
            thumbnail_path=thumbnail_uri(filename),
        )

    # Queries
    def exists(self, principal: str, filename: str) -> bool:
        return self.original_path(principal, filename).is_file()

    def list_principals(self) -> list[str]:
        """Principals that own an uploads directory, sorted by id."""
        if not self._root.is_dir():
            return []
        return sorted(
            p.name for p in self._root.iterdir() if p.is_dir() and (p / "uploads").is_dir()
        )

    def list_originals(self, principal: str) -> list[Path]:
        """Original image files (supported extensions only), sorted by name."""
        uploads = self.uploads_dir(principal)
        if not uploads.is_dir():
            return []
        return sorted(
            p
            for p in uploads.iterdir()
            if p.is_file() and not p.name.startswith(".") and self._config.is_supported(p.name)
        )

    def missing_thumbnails(self, principal: str) -> list[Path]:
        """Originals that do not yet have a thumbnail artifact."""
        return [p for p in self.list_originals(principal) if not self.thumbnail_for(p).exists()]

    # Mutations
    def save_upload(self, principal: str, filename: str, stream: BinaryIO) -> Path:
        """Stream an upload into place without ever overwriting an existing original.

        Raises:
            AlreadyExists: `filename` is already stored (checked before transfer).
            InvalidName: `filename` is unsafe or hidden (leading dot).
            UnsupportedFormat: the extension is not accepted.
            UploadTooLarge: the stream exceeds the configured limit.
        """
        dest = self.original_path(principal, filename)
        if filename.startswith("."):
            # Hidden names are reserved for temp files and never listed
            raise InvalidName(f"Invalid filename: {filename!r}")
        if not self._config.is_supported(filename):
            raise UnsupportedFormat(f"Unsupported image type: {filename}")
        if dest.exists():
            raise AlreadyExists(f"Image already exists: {filename}")

        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp = dest.with_name(f".{dest.name}.{os.getpid()}.{threading.get_ident()}.upload")
        written = 0
        try:
            with tmp.open("wb") as f:
                while True:
                    chunk = stream.read(_CHUNK)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self._config.upload_max_bytes:
                        raise UploadTooLarge(
                            f"Upload exceeds {self._config.upload_max_bytes} bytes: {filename}"
                        )
                    f.write(chunk)
                f.flush()
                os.fsync(f.fileno())
            with self._locks.hold(principal):
                # A concurrent upload of the same name may have finished first
                if dest.exists():
                    raise AlreadyExists(f"Image already exists: {filename}")
                tmp.replace(dest)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        logger.info("Stored upload {} for {} ({} bytes)", filename, principal, written)
        return dest

    def remove(self, principal: str, filename: str) -> None:
        """Remove an original and its thumbnail.

        Raises:
            NotFound: the original does not exist.
        """
        original = self.original_path(principal, filename)
        if not original.is_file():
            raise NotFound(f"Image not found: {filename}")
        if self._config.use_trash:
            send2trash(str(original))
        else:
            original.unlink()
        # Thumbnails are regenerable cache entries, never trashed
        self.thumbnail_for(original).unlink(missing_ok=True)
        logger.info("Removed image {} for {}", filename, principal)
