"""One-time backfill of the date index from originals already on disk."""

from __future__ import annotations

from datetime import datetime
import threading

from loguru import logger

from core.errors import CodecError
from core.services.interfaces import MigrationResult


class IndexMigrationService:
    """Indexes legacy originals for principals whose index is still empty.

    Runs at most once per principal in practice: as soon as one shard exists
    the migration is a no-op, even if unindexed files remain.
    """

    def __init__(self, store, index, thumbnails) -> None:
        """Create the service.

        Args:
            store: Artifact store listing originals and building records.
            index: Date index with `has_shards` and `append`.
            thumbnails: Generator providing `extract_shot_date`.
        """
        self._store = store
        self._index = index
        self._thumbnails = thumbnails
        self._guard = threading.Lock()
        self._running: set[str] = set()

    def needs_migration(self, principal: str) -> bool:
        return not self._index.has_shards(principal)

    def migrate(self, principal: str) -> MigrationResult:
        result = MigrationResult(principal=principal)
        if not self.needs_migration(principal):
            result.skipped = True
            return result

        originals = self._store.list_originals(principal)
        logger.info("Migrating {} unindexed image(s) for {}", len(originals), principal)
        for original in originals:
            try:
                shot_date = self._thumbnails.extract_shot_date(original)
                uploaded = datetime.fromtimestamp(original.stat().st_mtime)
                record = self._store.make_record(original.name, shot_date, uploaded)
                if self._index.append(principal, record):
                    result.indexed += 1
            except (CodecError, OSError, ValueError) as ex:
                logger.error("Migration failed for {} ({}): {}", original.name, principal, ex)
                result.failures.append((original.name, str(ex)))
        logger.info(
            "Migration for {} done: {} indexed, {} failed",
            principal,
            result.indexed,
            len(result.failures),
        )
        return result

    def migrate_detached(self, principal: str) -> threading.Thread | None:
        """Run `migrate` on a daemon thread unless one is already running for `principal`."""
        with self._guard:
            if principal in self._running or not self.needs_migration(principal):
                return None
            self._running.add(principal)

        def _run() -> None:
            try:
                self.migrate(principal)
            except Exception as ex:  # pylint: disable=broad-exception-caught
                logger.exception("Migration crashed for {}: {}", principal, ex)
            finally:
                with self._guard:
                    self._running.discard(principal)

        thread = threading.Thread(target=_run, name=f"migrate-{principal}", daemon=True)
        thread.start()
        return thread
