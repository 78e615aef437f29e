"""JSON persistence for user-curated albums.

An album is a file ``<principal>/albums/<quoted name>.json`` holding a JSON
array of image path references in insertion order. References are weak:
albums never own the images they point to.
"""

from __future__ import annotations

from pathlib import Path
import unicodedata
from urllib.parse import quote, unquote

from loguru import logger

from core.errors import AlreadyExists, AlreadyMember, InvalidName, NotFound
from core.models import AlbumSummary
from infrastructure.artifact_store import ArtifactStore, filename_from_uri
from infrastructure.jsonio import read_json_list, write_json_list
from infrastructure.locks import KeyedLocks

MAX_ALBUM_NAME = 200


def _validate_album_name(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise InvalidName("Album name must not be empty")
    if len(name) > MAX_ALBUM_NAME:
        raise InvalidName(f"Album name longer than {MAX_ALBUM_NAME} characters")
    if any(unicodedata.category(ch) == "Cc" for ch in name):
        raise InvalidName(f"Control character in album name: {name!r}")
    return name


def encode_album_name(name: str) -> str:
    """Filesystem-safe file stem for an album name (percent-encoding, dots too)."""
    encoded = quote(_validate_album_name(name), safe="").replace(".", "%2E")
    # Leave room for the ".json" suffix within a 255-byte filename
    if len(encoded) > 250:
        raise InvalidName("Album name too long once encoded")
    return encoded


def decode_album_name(stem: str) -> str:
    return unquote(stem)


class JsonAlbumRepository:
    """Album store with per-principal locking around read-modify-write."""

    def __init__(self, store: ArtifactStore, locks: KeyedLocks | None = None) -> None:
        self._store = store
        self._locks = locks or KeyedLocks()

    def _lock_key(self, principal: str) -> tuple[str, str]:
        return ("albums", principal)

    def album_path(self, principal: str, name: str) -> Path:
        return self._store.albums_dir(principal) / f"{encode_album_name(name)}.json"

    def _load(self, principal: str, name: str) -> tuple[Path, list[str]]:
        path = self.album_path(principal, name)
        if not path.is_file():
            raise NotFound(f"Album not found: {name}")
        return path, [str(m) for m in read_json_list(path)]

    def exists(self, principal: str, name: str) -> bool:
        return self.album_path(principal, name).is_file()

    def create(self, principal: str, name: str) -> None:
        """Create an empty album; `AlreadyExists` if the name is taken."""
        with self._locks.hold(self._lock_key(principal)):
            path = self.album_path(principal, name)
            if path.exists():
                raise AlreadyExists(f"Album already exists: {name}")
            write_json_list(path, [])
        logger.info("Created album {!r} for {}", name, principal)

    def delete(self, principal: str, name: str) -> None:
        """Delete the album itself; referenced images are untouched."""
        with self._locks.hold(self._lock_key(principal)):
            path = self.album_path(principal, name)
            if not path.is_file():
                raise NotFound(f"Album not found: {name}")
            path.unlink()
        logger.info("Deleted album {!r} for {}", name, principal)

    def add_member(self, principal: str, name: str, ref: str) -> None:
        """Append `ref`; `AlreadyMember` on an exact duplicate."""
        with self._locks.hold(self._lock_key(principal)):
            path, members = self._load(principal, name)
            if ref in members:
                raise AlreadyMember(f"{ref} is already in album {name}")
            members.append(ref)
            write_json_list(path, members)

    def remove_member(self, principal: str, name: str, ref: str) -> bool:
        """Remove `ref` by exact match; returns False (no-op) if it was absent."""
        with self._locks.hold(self._lock_key(principal)):
            path, members = self._load(principal, name)
            if ref not in members:
                return False
            write_json_list(path, [m for m in members if m != ref])
        return True

    def list_members(self, principal: str, name: str) -> list[str]:
        return self._load(principal, name)[1]

    def list_names(self, principal: str) -> list[str]:
        albums_dir = self._store.albums_dir(principal)
        if not albums_dir.is_dir():
            return []
        return sorted(
            decode_album_name(p.stem)
            for p in albums_dir.iterdir()
            if p.is_file() and p.suffix == ".json" and not p.name.startswith(".")
        )

    def list_albums(self, principal: str) -> list[AlbumSummary]:
        """All albums with their member counts, sorted by name.

        Albums deleted while the listing runs are left out.
        """
        summaries: list[AlbumSummary] = []
        with self._locks.hold(self._lock_key(principal)):
            for name in self.list_names(principal):
                try:
                    members = self.list_members(principal, name)
                except NotFound:
                    continue
                summaries.append(AlbumSummary(name=name, count=len(members)))
        return summaries

    def prune_image(self, principal: str, filename: str) -> int:
        """Drop every reference to `filename` from all albums of `principal`.

        Matching compares the filename extracted from each reference for
        equality, so ``a.jpg`` does not match ``ba.jpg``. Albums left empty
        are kept. Returns the number of references removed.
        """
        removed = 0
        with self._locks.hold(self._lock_key(principal)):
            for name in self.list_names(principal):
                path, members = self._load(principal, name)
                kept = [m for m in members if filename_from_uri(m) != filename]
                if len(kept) != len(members):
                    write_json_list(path, kept)
                    removed += len(members) - len(kept)
        if removed:
            logger.info("Pruned {} album reference(s) to {} for {}", removed, filename, principal)
        return removed
