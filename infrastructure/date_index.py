"""Day-sharded JSON index of image metadata, one directory per principal.

Each shard ``<principal>/index/<YYYY-MM-DD>.json`` holds a JSON array of
image records for one calendar day of the shot date, sorted newest first.
A shard file exists only while it holds at least one record.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
import re

from loguru import logger

from core.errors import CorruptIndexError
from core.models import DayGroup, ImageRecord, IndexPage, normalize_timestamp
from infrastructure.artifact_store import ArtifactStore
from infrastructure.jsonio import read_json_list, write_json_list
from infrastructure.locks import KeyedLocks

_SHARD_RE = re.compile(r"^\d{4}-\d{2}-\d{2}\.json$")


def _sort_desc(records: list[ImageRecord]) -> None:
    records.sort(key=lambda r: r.shot_date, reverse=True)


class JsonDateIndex:
    """Per-principal date index backed by day shard files.

    Every read-modify-write of a principal's shards runs under that
    principal's lock, so concurrent appends to the same day do not lose
    records.
    """

    def __init__(self, store: ArtifactStore, locks: KeyedLocks | None = None) -> None:
        self._store = store
        self._locks = locks or KeyedLocks()

    def _lock_key(self, principal: str) -> tuple[str, str]:
        return ("index", principal)

    def shard_path(self, principal: str, day: str) -> Path:
        return self._store.index_dir(principal) / f"{day}.json"

    def shard_days(self, principal: str) -> list[str]:
        """Days that have a shard, most recent first."""
        index_dir = self._store.index_dir(principal)
        if not index_dir.is_dir():
            return []
        days = [p.stem for p in index_dir.iterdir() if p.is_file() and _SHARD_RE.match(p.name)]
        days.sort(reverse=True)
        return days

    def has_shards(self, principal: str) -> bool:
        return bool(self.shard_days(principal))

    def read_shard(self, principal: str, day: str) -> list[ImageRecord]:
        """Records of one day shard (empty when the shard does not exist)."""
        path = self.shard_path(principal, day)
        raw = read_json_list(path)
        try:
            return [ImageRecord.from_dict(item) for item in raw]
        except (KeyError, TypeError, ValueError) as ex:
            raise CorruptIndexError(f"Invalid record in {path}: {ex}") from ex

    def _write_shard(self, principal: str, day: str, records: list[ImageRecord]) -> None:
        path = self.shard_path(principal, day)
        if records:
            write_json_list(path, [r.to_dict() for r in records])
        else:
            path.unlink(missing_ok=True)

    def append(self, principal: str, record: ImageRecord) -> bool:
        """Insert `record` into its day shard.

        Returns False (no-op) when the filename is already indexed under any
        day, so a filename lives in at most one shard. The whole shard is
        re-sorted by shot date, newest first, and written atomically.
        """
        day = record.day
        with self._locks.hold(self._lock_key(principal)):
            existing = self.find(principal, record.filename)
            if existing is not None:
                logger.debug("Already indexed: {} in {}", record.filename, existing.day)
                return False
            records = self.read_shard(principal, day)
            records.append(record)
            _sort_desc(records)
            self._write_shard(principal, day, records)
        logger.debug("Indexed {} under {} for {}", record.filename, day, principal)
        return True

    def remove(self, principal: str, filename: str, shot_date: datetime | None = None) -> bool:
        """Remove `filename` from the index; True if a record was removed.

        With a known `shot_date` only that day's shard is touched; otherwise
        every shard is scanned until the filename is found. Emptied shards
        are deleted.
        """
        with self._locks.hold(self._lock_key(principal)):
            if shot_date is not None:
                days = [normalize_timestamp(shot_date).strftime("%Y-%m-%d")]
            else:
                # TODO: keep a filename -> day lookup file to avoid the full shard scan
                days = self.shard_days(principal)
            for day in days:
                records = self.read_shard(principal, day)
                kept = [r for r in records if r.filename != filename]
                if len(kept) == len(records):
                    continue
                self._write_shard(principal, day, kept)
                logger.debug("Unindexed {} from {} for {}", filename, day, principal)
                return True
        return False

    def find(self, principal: str, filename: str) -> ImageRecord | None:
        """Locate a record by filename (scans every shard)."""
        for day in self.shard_days(principal):
            for record in self.read_shard(principal, day):
                if record.filename == filename:
                    return record
        return None

    def count(self, principal: str) -> int:
        return sum(len(read_json_list(self.shard_path(principal, d))) for d in self.shard_days(principal))

    def list_page(self, principal: str, page: int = 1, page_size: int = 20) -> IndexPage:
        """Return one page of day groups; a page is `page_size` days, not images.

        `total` is only summed on page 1, since counting reads every shard.
        """
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be >= 1")
        days = self.shard_days(principal)
        start = (page - 1) * page_size
        end = start + page_size
        groups = [DayGroup(day=day, images=self.read_shard(principal, day)) for day in days[start:end]]
        total = self.count(principal) if page == 1 else None
        return IndexPage(
            page=page,
            page_size=page_size,
            groups=groups,
            has_more=end < len(days),
            total=total,
        )
