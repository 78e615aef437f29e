from __future__ import annotations

import json

import pytest

from core.errors import AlreadyExists, AlreadyMember, InvalidName, NotFound
from infrastructure.album_repository import JsonAlbumRepository
from infrastructure.artifact_store import ArtifactStore


def test_create_and_list_members(albums: JsonAlbumRepository) -> None:
    albums.create("alice", "Holiday")
    assert albums.list_members("alice", "Holiday") == []
    with pytest.raises(AlreadyExists):
        albums.create("alice", "Holiday")


def test_add_member_preserves_insertion_order(albums: JsonAlbumRepository) -> None:
    albums.create("alice", "Holiday")
    albums.add_member("alice", "Holiday", "/images/b.jpg")
    albums.add_member("alice", "Holiday", "/images/a.jpg")
    assert albums.list_members("alice", "Holiday") == ["/images/b.jpg", "/images/a.jpg"]

    path = albums.album_path("alice", "Holiday")
    assert json.loads(path.read_text(encoding="utf-8")) == ["/images/b.jpg", "/images/a.jpg"]


def test_add_duplicate_member_fails(albums: JsonAlbumRepository) -> None:
    albums.create("alice", "Holiday")
    albums.add_member("alice", "Holiday", "/images/a.jpg")
    with pytest.raises(AlreadyMember):
        albums.add_member("alice", "Holiday", "/images/a.jpg")
    assert albums.list_members("alice", "Holiday") == ["/images/a.jpg"]


def test_remove_non_member_is_noop(albums: JsonAlbumRepository) -> None:
    albums.create("alice", "Holiday")
    albums.add_member("alice", "Holiday", "/images/a.jpg")
    assert albums.remove_member("alice", "Holiday", "/images/zzz.jpg") is False
    assert albums.remove_member("alice", "Holiday", "/images/a.jpg") is True
    assert albums.list_members("alice", "Holiday") == []


def test_operations_on_missing_album_raise_not_found(albums: JsonAlbumRepository) -> None:
    with pytest.raises(NotFound):
        albums.delete("alice", "Nope")
    with pytest.raises(NotFound):
        albums.add_member("alice", "Nope", "/images/a.jpg")
    with pytest.raises(NotFound):
        albums.remove_member("alice", "Nope", "/images/a.jpg")
    with pytest.raises(NotFound):
        albums.list_members("alice", "Nope")


def test_delete_album_forgets_members_only(
    albums: JsonAlbumRepository, store: ArtifactStore
) -> None:
    original = store.uploads_dir("alice") / "a.jpg"
    original.parent.mkdir(parents=True)
    original.write_bytes(b"data")
    albums.create("alice", "Holiday")
    albums.add_member("alice", "Holiday", "/images/a.jpg")

    albums.delete("alice", "Holiday")
    assert not albums.exists("alice", "Holiday")
    assert original.exists()


def test_prune_uses_exact_filename(albums: JsonAlbumRepository) -> None:
    albums.create("alice", "One")
    albums.create("alice", "Two")
    albums.add_member("alice", "One", "/images/a.jpg")
    albums.add_member("alice", "One", "/images/ba.jpg")
    albums.add_member("alice", "Two", "/images/a.jpg")

    assert albums.prune_image("alice", "a.jpg") == 2
    assert albums.list_members("alice", "One") == ["/images/ba.jpg"]
    # Emptied album is kept
    assert albums.exists("alice", "Two")
    assert albums.list_members("alice", "Two") == []


def test_prune_matches_quoted_references(albums: JsonAlbumRepository) -> None:
    albums.create("alice", "One")
    albums.add_member("alice", "One", "/images/my%20photo.jpg")
    assert albums.prune_image("alice", "my photo.jpg") == 1


def test_unsafe_names_stay_inside_albums_dir(
    albums: JsonAlbumRepository, store: ArtifactStore
) -> None:
    for name in ("../escape", "a/b", "..", "trip.2024", "旅行"):
        albums.create("alice", name)
        path = albums.album_path("alice", name)
        assert path.parent == store.albums_dir("alice")
        assert path.exists()
    assert sorted(albums.list_names("alice")) == sorted(
        ["../escape", "a/b", "..", "trip.2024", "旅行"]
    )


@pytest.mark.parametrize("name", ["", "   ", "bad\nname", "x" * 201])
def test_invalid_album_names_rejected(albums: JsonAlbumRepository, name: str) -> None:
    with pytest.raises(InvalidName):
        albums.create("alice", name)


def test_list_albums_reports_counts(albums: JsonAlbumRepository) -> None:
    albums.create("alice", "B")
    albums.create("alice", "A")
    albums.add_member("alice", "B", "/images/1.jpg")
    albums.add_member("alice", "B", "/images/2.jpg")
    summaries = albums.list_albums("alice")
    assert [(s.name, s.count) for s in summaries] == [("A", 0), ("B", 2)]
    assert albums.list_albums("bob") == []


def test_list_albums_skips_album_deleted_during_listing(
    albums: JsonAlbumRepository, monkeypatch: pytest.MonkeyPatch
) -> None:
    albums.create("alice", "Kept")
    albums.add_member("alice", "Kept", "/images/1.jpg")
    stale_names = ["Gone", "Kept"]
    monkeypatch.setattr(albums, "list_names", lambda _principal: stale_names)
    assert [(s.name, s.count) for s in albums.list_albums("alice")] == [("Kept", 1)]
