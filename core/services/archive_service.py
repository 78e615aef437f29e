"""Fire-and-forget packaging of selected images into a downloadable archive.

Job state lives entirely on disk next to the artifact:

    <job id>.zip              the archive (an empty placeholder while packaging)
    <job id>.zip.processing   present while packaging is in progress
    <job id>.zip.failed       left behind when packaging failed
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from pathlib import Path
import re
import threading
import time

from loguru import logger

from core.errors import EmptySelection, InProgress, NotFound, RangeNotSatisfiable
from core.models import ArchiveJob, ArchiveStatus
from core.services.interfaces import ArchiveDownload, Archiver

MARKER_SUFFIX = ".processing"
FAILED_SUFFIX = ".failed"

_JOB_ID_RE = re.compile(r"^\d+$")
_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


def parse_byte_range(header: str, total_size: int) -> tuple[int, int]:
    """Resolve a single ``bytes=`` range against `total_size` (inclusive bounds).

    Supports ``bytes=a-b``, ``bytes=a-`` and the suffix form ``bytes=-n``.
    """
    match = _RANGE_RE.match(header.strip())
    if not match or (not match.group(1) and not match.group(2)):
        raise RangeNotSatisfiable(f"Invalid Range header: {header}")
    first, last = match.group(1), match.group(2)
    if not first:
        length = int(last)
        if length == 0:
            raise RangeNotSatisfiable(f"Empty suffix range: {header}")
        return max(0, total_size - length), total_size - 1
    start = int(first)
    end = int(last) if last else total_size - 1
    end = min(end, total_size - 1)
    if start >= total_size or start > end:
        raise RangeNotSatisfiable(f"Range not satisfiable: {header} (size {total_size})")
    return start, end


class ArchiveService:
    """Coordinates archive jobs; packaging runs on a small thread pool."""

    def __init__(self, store, archiver: Archiver, max_workers: int = 2, clock=time.time) -> None:
        """Create the service.

        Args:
            store: Artifact store providing `archives_dir` and `original_path`.
            archiver: Archive writer factory.
            max_workers: Concurrent packaging jobs.
            clock: Seconds-since-epoch source used for job ids.
        """
        self._store = store
        self._archiver = archiver
        self._clock = clock
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="archive")
        self._id_lock = threading.Lock()
        self._futures: dict[tuple[str, str], Future] = {}

    def _paths(self, principal: str, job_id: str) -> tuple[Path, Path, Path]:
        if not _JOB_ID_RE.match(job_id or ""):
            raise NotFound(f"Archive not found: {job_id}")
        artifact = self._store.archives_dir(principal) / f"{job_id}.zip"
        marker = artifact.with_name(artifact.name + MARKER_SUFFIX)
        failed = artifact.with_name(artifact.name + FAILED_SUFFIX)
        return artifact, marker, failed

    def start(self, principal: str, filenames: list[str]) -> ArchiveJob:
        """Register a job and return at once; packaging continues in the background.

        The placeholder artifact and the in-progress marker exist before this
        method returns, so a poll right after sees "in progress".
        """
        members = list(dict.fromkeys(f for f in filenames if f))
        if not members:
            raise EmptySelection("No files selected for archive")
        for name in members:
            # Rejects unsafe names before anything is queued
            self._store.original_path(principal, name)

        archives_dir = self._store.archives_dir(principal)
        archives_dir.mkdir(parents=True, exist_ok=True)
        with self._id_lock:
            stamp = int(self._clock() * 1000)
            while True:
                job_id = str(stamp)
                artifact, marker, failed = self._paths(principal, job_id)
                if not (artifact.exists() or marker.exists() or failed.exists()):
                    break
                stamp += 1
            marker.touch()
            artifact.touch()

        job = ArchiveJob(
            id=job_id,
            principal=principal,
            member_files=members,
            created_at=datetime.fromtimestamp(stamp / 1000),
        )
        key = (principal, job_id)
        future = self._executor.submit(self._package, job, artifact, marker, failed)
        self._futures[key] = future
        future.add_done_callback(lambda _f: self._futures.pop(key, None))
        logger.info("Archive job {} queued for {} ({} file(s))", job_id, principal, len(members))
        return job

    def _package(self, job: ArchiveJob, artifact: Path, marker: Path, failed: Path) -> None:
        added = 0
        try:
            with self._archiver.create(artifact) as writer:
                for name in job.member_files:
                    source = self._store.original_path(job.principal, name)
                    if not source.is_file():
                        logger.info("Archive {}: skipping missing file {}", job.id, name)
                        continue
                    writer.add(name, source)
                    added += 1
            # The writer is closed here, so the archive is complete on disk
            marker.unlink(missing_ok=True)
            job.status = ArchiveStatus.READY
            logger.info("Archive job {} ready: {} file(s), {} bytes", job.id, added, artifact.stat().st_size)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("Archive job {} failed: {}", job.id, ex)
            # Failed marker first so status never falls through to NotFound
            failed.touch()
            artifact.unlink(missing_ok=True)
            marker.unlink(missing_ok=True)
            job.status = ArchiveStatus.FAILED

    def wait(self, principal: str, job_id: str, timeout: float | None = None) -> None:
        """Block until the job's packaging finished (for callers that need it)."""
        future = self._futures.get((principal, job_id))
        if future is not None:
            future.result(timeout)

    def status(self, principal: str, job_id: str) -> ArchiveStatus:
        artifact, marker, failed = self._paths(principal, job_id)
        if marker.exists():
            return ArchiveStatus.IN_PROGRESS
        if artifact.is_file():
            return ArchiveStatus.READY
        if failed.exists():
            return ArchiveStatus.FAILED
        raise NotFound(f"Archive not found: {job_id}")

    def fetch(self, principal: str, job_id: str, range_header: str | None = None) -> ArchiveDownload:
        """Return a download window over a finished archive.

        Raises:
            NotFound: no artifact exists for the job.
            InProgress: the job is still packaging.
            RangeNotSatisfiable: `range_header` does not fit the archive.
        """
        artifact, marker, _failed = self._paths(principal, job_id)
        if not artifact.is_file():
            raise NotFound(f"Archive not found: {job_id}")
        if marker.exists():
            raise InProgress(f"Archive {job_id} is still being packaged")
        total = artifact.stat().st_size
        if range_header:
            start, end = parse_byte_range(range_header, total)
            return ArchiveDownload(path=artifact, start=start, end=end, total_size=total, partial=True)
        return ArchiveDownload(path=artifact, start=0, end=max(total - 1, 0), total_size=total)

    def purge_expired(self, principal: str, max_age: timedelta) -> int:
        """Delete finished or failed jobs older than `max_age`; returns the count."""
        archives_dir = self._store.archives_dir(principal)
        if not archives_dir.is_dir():
            return 0
        cutoff = time.time() - max_age.total_seconds()
        purged = 0
        for path in archives_dir.iterdir():
            if path.suffix == ".zip":
                if path.with_name(path.name + MARKER_SUFFIX).exists():
                    continue
            elif not path.name.endswith(".zip" + FAILED_SUFFIX):
                continue
            if path.stat().st_mtime < cutoff:
                path.unlink(missing_ok=True)
                purged += 1
                logger.info("Purged expired archive {} for {}", path.name, principal)
        return purged

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
