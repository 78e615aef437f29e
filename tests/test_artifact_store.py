from __future__ import annotations

from datetime import datetime
import io
from pathlib import Path
import threading

import pytest

from conftest import create_image
from core.errors import AlreadyExists, InvalidName, NotFound, UnsupportedFormat, UploadTooLarge
from infrastructure.artifact_store import (
    ArtifactStore,
    filename_from_uri,
    original_uri,
    thumbnail_uri,
)
from infrastructure.settings import StoreConfig


def test_save_upload_writes_file(store: ArtifactStore) -> None:
    path = store.save_upload("alice", "a.jpg", io.BytesIO(b"payload"))
    assert path == store.original_path("alice", "a.jpg")
    assert path.read_bytes() == b"payload"
    assert store.exists("alice", "a.jpg")


def test_save_upload_never_overwrites(store: ArtifactStore) -> None:
    store.save_upload("alice", "a.jpg", io.BytesIO(b"first"))
    with pytest.raises(AlreadyExists):
        store.save_upload("alice", "a.jpg", io.BytesIO(b"second"))
    assert store.original_path("alice", "a.jpg").read_bytes() == b"first"


def test_concurrent_same_name_uploads_keep_one(store: ArtifactStore) -> None:
    barrier = threading.Barrier(4)
    outcomes: list[str] = []

    def worker(n: int) -> None:
        barrier.wait()
        try:
            store.save_upload("alice", "race.jpg", io.BytesIO(bytes([n]) * 1000))
            outcomes.append("ok")
        except AlreadyExists:
            outcomes.append("exists")

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)

    assert outcomes.count("ok") == 1
    assert outcomes.count("exists") == 3
    assert [p.name for p in store.uploads_dir("alice").iterdir()] == ["race.jpg"]


def test_save_upload_rejections(tmp_path: Path) -> None:
    store = ArtifactStore(StoreConfig(storage_root=tmp_path, upload_max_bytes=10))
    with pytest.raises(UnsupportedFormat):
        store.save_upload("alice", "doc.pdf", io.BytesIO(b"x"))
    with pytest.raises(UploadTooLarge):
        store.save_upload("alice", "big.png", io.BytesIO(b"x" * 11))
    with pytest.raises(InvalidName):
        store.save_upload("alice", "../up.jpg", io.BytesIO(b"x"))
    with pytest.raises(InvalidName):
        store.save_upload("../bob", "a.jpg", io.BytesIO(b"x"))
    assert not store.exists("alice", "big.png")


def test_remove_deletes_original_and_thumbnail(store: ArtifactStore) -> None:
    original = create_image(store.original_path("alice", "a.jpg"))
    thumb = create_image(store.thumbnail_path("alice", "a.jpg"))
    store.remove("alice", "a.jpg")
    assert not original.exists()
    assert not thumb.exists()
    with pytest.raises(NotFound):
        store.remove("alice", "a.jpg")


def test_remove_sends_to_trash_when_enabled(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    trashed: list[str] = []
    monkeypatch.setattr("infrastructure.artifact_store.send2trash", trashed.append)
    store = ArtifactStore(StoreConfig(storage_root=tmp_path, use_trash=True))
    original = create_image(store.original_path("alice", "a.jpg"))
    store.remove("alice", "a.jpg")
    assert trashed == [str(original)]


def test_listing(store: ArtifactStore) -> None:
    create_image(store.original_path("bob", "b.jpg"))
    create_image(store.original_path("alice", "z.png"))
    create_image(store.original_path("alice", "a.jpg"))
    create_image(store.thumbnail_path("alice", "a.jpg"))
    (store.uploads_dir("alice") / ".hidden.jpg").write_bytes(b"")
    (store.uploads_dir("alice") / "notes.txt").write_text("x")
    store.index_dir("carol").mkdir(parents=True)

    assert store.list_principals() == ["alice", "bob"]
    assert [p.name for p in store.list_originals("alice")] == ["a.jpg", "z.png"]
    assert [p.name for p in store.missing_thumbnails("alice")] == ["z.png"]
    assert store.list_originals("nobody") == []


def test_list_principals_without_root(tmp_path: Path) -> None:
    assert ArtifactStore(StoreConfig(storage_root=tmp_path / "none")).list_principals() == []


def test_record_and_uris(store: ArtifactStore) -> None:
    record = store.make_record("my photo.jpg", datetime(2024, 1, 1), datetime(2024, 1, 2))
    assert record.original_path == "/images/my%20photo.jpg"
    assert record.thumbnail_path == thumbnail_uri("my photo.jpg") == "/thumbnails/my%20photo.jpg"
    assert filename_from_uri(original_uri("a/b?.jpg")) == "a/b?.jpg"
    assert filename_from_uri("https://host/images/x.jpg") == "x.jpg"


def test_save_upload_rejects_hidden_names(store: ArtifactStore) -> None:
    with pytest.raises(InvalidName):
        store.save_upload("alice", ".x.jpg", io.BytesIO(b"payload"))
    assert not store.uploads_dir("alice").exists()
