"""Application facade orchestrating the artifact store, index, albums and jobs.

Route handlers call into `PhotoStore`; it owns the cross-component flows
(upload, delete with album pruning, opportunistic migration) so each
repository stays ignorant of the others.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
import threading
from typing import BinaryIO

from loguru import logger

from core.errors import (
    AlreadyMember,
    CodecError,
    EmptySelection,
    NotFound,
    PhotoStoreError,
    Unauthenticated,
)
from core.models import AlbumSummary, ArchiveJob, ArchiveStatus, ImageRecord, IndexPage
from core.services.archive_service import ArchiveService
from core.services.interfaces import ArchiveDownload, Authenticator, DeleteResult
from core.services.migration_service import IndexMigrationService
from core.services.sweep_service import ConsistencySweep
from infrastructure.album_repository import JsonAlbumRepository
from infrastructure.artifact_store import ArtifactStore, original_uri
from infrastructure.auth import JwtAuthenticator
from infrastructure.date_index import JsonDateIndex
from infrastructure.image_service import PillowImageCodec, ThumbnailGenerator
from infrastructure.locks import KeyedLocks
from infrastructure.settings import StoreConfig
from infrastructure.zip_archiver import ZipArchiver


class PhotoStore:
    """Entry point for request-driven operations on a principal's photos."""

    def __init__(
        self,
        store: ArtifactStore,
        index: JsonDateIndex,
        albums: JsonAlbumRepository,
        thumbnails: ThumbnailGenerator,
        archives: ArchiveService,
        migration: IndexMigrationService,
        authenticator: Authenticator | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.index = index
        self.albums = albums
        self.thumbnails = thumbnails
        self.archives = archives
        self.migration = migration
        self._authenticator = authenticator
        self._clock = clock
        self._seen_lock = threading.Lock()
        self._seen: set[str] = set()

    @classmethod
    def from_config(cls, config: StoreConfig) -> PhotoStore:
        """Wire the default filesystem-backed components for `config`."""
        locks = KeyedLocks()
        store = ArtifactStore(config)
        index = JsonDateIndex(store, locks)
        thumbnails = ThumbnailGenerator(PillowImageCodec(), config)
        authenticator = (
            JwtAuthenticator(config.auth_secret, config.auth_token_hours)
            if config.auth_secret
            else None
        )
        return cls(
            store=store,
            index=index,
            albums=JsonAlbumRepository(store, locks),
            thumbnails=thumbnails,
            archives=ArchiveService(store, ZipArchiver()),
            migration=IndexMigrationService(store, index, thumbnails),
            authenticator=authenticator,
        )

    def build_sweep(self, config: StoreConfig) -> ConsistencySweep:
        ttl = timedelta(hours=config.archive_ttl_hours) if config.archive_ttl_hours else None
        return ConsistencySweep(
            self.store,
            self.thumbnails,
            archives=self.archives,
            migration=self.migration,
            archive_ttl=ttl,
            migrate_unindexed=config.sweep_migrate_unindexed,
        )

    # Authentication
    def authenticate(self, credentials: str | None) -> str:
        if self._authenticator is None:
            raise Unauthenticated("Authentication is not configured")
        return self._authenticator.authenticate(credentials)

    # Images
    def image_exists(self, principal: str, filename: str) -> bool:
        return self.store.exists(principal, filename)

    def upload(self, principal: str, filename: str, stream: BinaryIO) -> ImageRecord:
        """Store an upload, derive its thumbnail and index it.

        A thumbnail failure is logged and does not fail the upload; the sweep
        retries it later.
        """
        original = self.store.save_upload(principal, filename, stream)
        try:
            self.thumbnails.generate(original)
        except (CodecError, OSError) as ex:
            logger.warning("Thumbnail generation failed for {} ({}): {}", filename, principal, ex)
        try:
            shot_date = self.thumbnails.extract_shot_date(original)
            record = self.store.make_record(filename, shot_date, self._clock())
            self.index.append(principal, record)
        except (PhotoStoreError, OSError):
            logger.error("Indexing failed for {} ({}), rolling back upload", filename, principal)
            self.store.remove(principal, filename)
            raise
        return record

    def list_images(self, principal: str, page: int = 1, page_size: int = 20) -> IndexPage:
        """Page through day groups; the first read per principal kicks off migration."""
        with self._seen_lock:
            first_read = principal not in self._seen
            self._seen.add(principal)
        if first_read:
            self.migration.migrate_detached(principal)
        return self.index.list_page(principal, page, page_size)

    def original_file(self, principal: str, filename: str) -> Path:
        path = self.store.original_path(principal, filename)
        if not path.is_file():
            raise NotFound(f"Image not found: {filename}")
        return path

    def thumbnail_file(self, principal: str, filename: str) -> Path:
        path = self.store.thumbnail_path(principal, filename)
        if not path.is_file():
            raise NotFound(f"Thumbnail not found: {filename}")
        return path

    def delete_images(self, principal: str, filenames: list[str]) -> DeleteResult:
        """Delete originals and purge them from the index and every album.

        Each filename is handled independently; failures are reported per
        filename. Albums emptied by the pruning are kept.
        """
        if not filenames:
            raise EmptySelection("No files selected for deletion")
        result = DeleteResult(success_paths=[], failed=[])
        for filename in filenames:
            try:
                try:
                    self.store.remove(principal, filename)
                    had_file = True
                except NotFound:
                    had_file = False
                try:
                    unindexed = self.index.remove(principal, filename)
                finally:
                    # Album references must not outlive the original
                    result.albums_pruned += self.albums.prune_image(principal, filename)
            except (PhotoStoreError, OSError) as ex:
                logger.error("Delete failed for {} ({}): {}", filename, principal, ex)
                result.failed.append((filename, str(ex)))
                continue
            if had_file or unindexed:
                result.success_paths.append(filename)
            else:
                result.failed.append((filename, "Image not found"))
        logger.info(
            "Delete for {}: {} succeeded, {} failed",
            principal,
            len(result.success_paths),
            len(result.failed),
        )
        return result

    # Albums
    def create_album(self, principal: str, name: str) -> None:
        self.albums.create(principal, name)

    def delete_album(self, principal: str, name: str) -> None:
        self.albums.delete(principal, name)

    def list_albums(self, principal: str) -> list[AlbumSummary]:
        return self.albums.list_albums(principal)

    def album_members(self, principal: str, name: str) -> list[str]:
        return self.albums.list_members(principal, name)

    def add_to_album(self, principal: str, name: str, ref: str) -> None:
        self.albums.add_member(principal, name, ref)

    def remove_from_album(self, principal: str, name: str, ref: str) -> bool:
        return self.albums.remove_member(principal, name, ref)

    def add_images_to_album(self, principal: str, name: str, filenames: list[str]) -> list[str]:
        """Bulk add by filename; existing members and missing images are skipped.

        Returns the path references that were added.
        """
        if not filenames:
            raise EmptySelection("No files selected for album")
        added: list[str] = []
        for filename in filenames:
            if not self.store.exists(principal, filename):
                logger.warning("Not adding missing image {} to album {!r}", filename, name)
                continue
            ref = original_uri(filename)
            try:
                self.albums.add_member(principal, name, ref)
            except AlreadyMember:
                continue
            added.append(ref)
        return added

    # Archives
    def start_archive(self, principal: str, filenames: list[str]) -> ArchiveJob:
        return self.archives.start(principal, filenames)

    def archive_status(self, principal: str, job_id: str) -> ArchiveStatus:
        return self.archives.status(principal, job_id)

    def fetch_archive(
        self, principal: str, job_id: str, range_header: str | None = None
    ) -> ArchiveDownload:
        return self.archives.fetch(principal, job_id, range_header)

    def shutdown(self) -> None:
        self.archives.shutdown(wait=True)
