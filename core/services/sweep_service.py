"""Background consistency sweep: regenerate missing thumbnails on a timer.

The sweep is single-flight. A trigger that arrives while a run is active is
skipped, not queued.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import threading

from loguru import logger

from core.errors import CodecError, PhotoStoreError
from core.services.interfaces import SweepReport


class ConsistencySweep:
    """Repairs derived artifacts for every principal, one principal at a time."""

    def __init__(
        self,
        store,
        thumbnails,
        archives=None,
        migration=None,
        archive_ttl: timedelta | None = None,
        migrate_unindexed: bool = False,
    ) -> None:
        """Create a sweep.

        Args:
            store: Artifact store (`list_principals`, `missing_thumbnails`).
            thumbnails: Thumbnail generator (`generate`).
            archives: Optional archive service whose expired jobs are purged.
            migration: Optional migration service, used when `migrate_unindexed`.
            archive_ttl: Age after which finished archives are purged; None disables.
            migrate_unindexed: Also backfill empty indexes during the sweep.
        """
        self._store = store
        self._thumbnails = thumbnails
        self._archives = archives
        self._migration = migration
        self._archive_ttl = archive_ttl
        self._migrate_unindexed = migrate_unindexed
        self._busy = threading.Lock()
        self.last_report: SweepReport | None = None

    @property
    def is_running(self) -> bool:
        return self._busy.locked()

    def run(self) -> SweepReport | None:
        """Run one sweep; returns None immediately if another run is active."""
        if not self._busy.acquire(blocking=False):
            logger.info("Sweep already running, skipping this trigger")
            return None
        try:
            report = SweepReport(started_at=datetime.now())
            principals = self._store.list_principals()
            for principal in principals:
                self._sweep_principal(principal, report)
            report.principals = len(principals)
            report.finished_at = datetime.now()
            logger.info(
                "Sweep done: {} principal(s), {} thumbnail(s) created, {} failure(s), {} archive(s) purged",
                report.principals,
                report.thumbnails_created,
                len(report.failures),
                report.archives_purged,
            )
            self.last_report = report
            return report
        finally:
            self._busy.release()

    def _sweep_principal(self, principal: str, report: SweepReport) -> None:
        if self._migrate_unindexed and self._migration is not None:
            try:
                self._migration.migrate(principal)
            except (PhotoStoreError, OSError) as ex:
                logger.error("Sweep migration failed for {}: {}", principal, ex)
                report.failures.append((principal, str(ex)))

        try:
            missing = self._store.missing_thumbnails(principal)
        except OSError as ex:
            logger.error("Cannot scan originals for {}: {}", principal, ex)
            report.failures.append((principal, str(ex)))
            return

        for original in missing:
            try:
                self._thumbnails.generate(original)
                report.thumbnails_created += 1
            except (CodecError, OSError) as ex:
                logger.error("Thumbnail repair failed for {} ({}): {}", original.name, principal, ex)
                report.failures.append((original.name, str(ex)))

        if self._archives is not None and self._archive_ttl:
            try:
                report.archives_purged += self._archives.purge_expired(principal, self._archive_ttl)
            except OSError as ex:
                logger.error("Archive purge failed for {}: {}", principal, ex)


class SweepScheduler:
    """Runs a sweep at start and then every `interval_seconds` on a daemon thread."""

    def __init__(self, sweep: ConsistencySweep, interval_seconds: float) -> None:
        self._sweep = sweep
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="consistency-sweep", daemon=True)
        self._thread.start()
        logger.info("Sweep scheduler started (interval: {}s)", self._interval)

    def stop(self, timeout: float | None = None) -> None:
        """Signal shutdown and wait for the loop to exit."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        logger.info("Sweep scheduler stopped")

    def trigger(self) -> threading.Thread:
        """Fire an out-of-band sweep, as the timer would."""
        thread = threading.Thread(target=self._run_once, name="consistency-sweep-manual", daemon=True)
        thread.start()
        return thread

    def _run_once(self) -> None:
        try:
            self._sweep.run()
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.exception("Sweep failed: {}", ex)

    def _loop(self) -> None:
        while not self._stop.is_set():
            self._run_once()
            # Interruptible sleep
            self._stop.wait(self._interval)
