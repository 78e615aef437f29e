"""Core domain models for indexed images, albums and archive jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any


def normalize_timestamp(value: datetime) -> datetime:
    """Return a naive datetime; aware values are converted to UTC first.

    EXIF and filesystem times are naive local values, so everything stored in
    the index is kept naive to stay comparable.
    """
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix accepted) into a naive datetime."""
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return normalize_timestamp(datetime.fromisoformat(text))


@dataclass
class ImageRecord:
    """One indexed image; persisted with camelCase keys inside a day shard."""

    filename: str
    shot_date: datetime
    upload_date: datetime
    original_path: str
    thumbnail_path: str

    def __post_init__(self) -> None:
        self.shot_date = normalize_timestamp(self.shot_date)
        self.upload_date = normalize_timestamp(self.upload_date)

    @property
    def day(self) -> str:
        """Shard key (``YYYY-MM-DD``) derived from the shot date."""
        return self.shot_date.strftime("%Y-%m-%d")

    def to_dict(self) -> dict[str, str]:
        return {
            "filename": self.filename,
            "shotDate": self.shot_date.isoformat(),
            "uploadDate": self.upload_date.isoformat(),
            "originalPath": self.original_path,
            "thumbnailPath": self.thumbnail_path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImageRecord:
        return cls(
            filename=str(data["filename"]),
            shot_date=parse_timestamp(data["shotDate"]),
            upload_date=parse_timestamp(data["uploadDate"]),
            original_path=str(data.get("originalPath", "")),
            thumbnail_path=str(data.get("thumbnailPath", "")),
        )


@dataclass
class DayGroup:
    """All images of one calendar day, newest first."""

    day: str
    images: list[ImageRecord] = field(default_factory=list)

    @property
    def date(self) -> date:
        return datetime.strptime(self.day, "%Y-%m-%d").date()


@dataclass
class IndexPage:
    """A page of day groups.

    Attributes:
        page: 1-based page number.
        page_size: Number of day shards per page.
        groups: Day groups on this page, most recent day first.
        has_more: Whether older day shards exist beyond this page.
        total: Image count across all shards; only computed for page 1.
    """

    page: int
    page_size: int
    groups: list[DayGroup]
    has_more: bool
    total: int | None = None


@dataclass
class AlbumSummary:
    """Album name with its current member count."""

    name: str
    count: int


class ArchiveStatus(str, Enum):
    """Observable state of a bulk archive job."""

    IN_PROGRESS = "in-progress"
    READY = "ready"
    FAILED = "failed"


@dataclass
class ArchiveJob:
    """A bulk archive request and the files it covers."""

    id: str
    principal: str
    member_files: list[str]
    created_at: datetime
    status: ArchiveStatus = ArchiveStatus.IN_PROGRESS

    @property
    def download_name(self) -> str:
        return f"{self.id}.zip"
