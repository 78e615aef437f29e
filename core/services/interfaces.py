"""Core service interfaces and shared data structures.

This module defines the collaborator contracts consumed by the store
(image codec, archiver, authenticator) and the dataclasses that report the
outcome of bulk and background operations.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Protocol


@dataclass
class ImageMetadata:
    """Decoded image header information.

    Attributes:
        width: Pixel width as stored (before orientation is applied).
        height: Pixel height as stored.
        orientation: EXIF orientation tag (1 when absent).
        exif_timestamps: EXIF tag name -> raw value, for the date tags present.
    """

    width: int
    height: int
    orientation: int = 1
    exif_timestamps: dict[str, str] = field(default_factory=dict)


class ImageCodec(Protocol):
    """Decoding, metadata and re-encoding capability for original images."""

    def decode_metadata(self, path: Path) -> ImageMetadata:
        """Return header metadata for `path`; raise `CodecError` if unreadable."""
        raise NotImplementedError

    def render_thumbnail(self, path: Path, max_side: int, quality: int, fmt: str) -> bytes:
        """Return encoded thumbnail bytes; raise `CodecError` if unreadable."""
        raise NotImplementedError


class ArchiveWriter(Protocol):
    """Open archive accepting entries until closed."""

    def __enter__(self) -> ArchiveWriter:
        raise NotImplementedError

    def __exit__(self, exc_type, exc, tb) -> None:
        raise NotImplementedError

    def add(self, name: str, source: Path) -> None:
        """Stream `source` into the archive under `name`."""
        raise NotImplementedError


class Archiver(Protocol):
    """Creates compressed archives on disk."""

    def create(self, target: Path) -> ArchiveWriter:
        """Open a writer that produces a flushed, closed file at `target`."""
        raise NotImplementedError


class Authenticator(Protocol):
    """Maps request credentials to a principal id."""

    def authenticate(self, credentials: str | None) -> str:
        """Return the principal id or raise `Unauthenticated`/`TokenExpired`."""
        raise NotImplementedError


@dataclass
class DeleteResult:
    """Outcome of a delete operation.

    Attributes:
        success_paths: Filenames successfully deleted.
        failed: Tuples of (filename, reason) for failures.
        albums_pruned: Number of album references removed.
    """

    success_paths: list[str]
    failed: list[tuple[str, str]]
    albums_pruned: int = 0


@dataclass
class SweepReport:
    """Summary of one consistency sweep run."""

    started_at: datetime
    finished_at: datetime | None = None
    principals: int = 0
    thumbnails_created: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)
    archives_purged: int = 0


@dataclass
class MigrationResult:
    """Outcome of a one-time index backfill for a principal."""

    principal: str
    indexed: int = 0
    skipped: bool = False
    failures: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class ArchiveDownload:
    """A (possibly partial) byte window over a finished archive.

    Attributes:
        path: Archive file on disk.
        start: First byte offset (inclusive).
        end: Last byte offset (inclusive).
        total_size: Full archive size in bytes.
        partial: True when a byte range was requested.
    """

    path: Path
    start: int
    end: int
    total_size: int
    partial: bool = False
    chunk_size: int = 64 * 1024

    @property
    def length(self) -> int:
        return self.end - self.start + 1 if self.total_size else 0

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total_size}"

    def iter_chunks(self) -> Iterator[bytes]:
        """Yield the requested window in `chunk_size` pieces."""
        remaining = self.length
        with self.path.open("rb") as f:
            f.seek(self.start)
            while remaining > 0:
                data = f.read(min(self.chunk_size, remaining))
                if not data:
                    break
                remaining -= len(data)
                yield data
