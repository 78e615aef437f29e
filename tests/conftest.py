from __future__ import annotations

from pathlib import Path

from PIL import Image
import pytest

from app.photo_store import PhotoStore
from infrastructure.album_repository import JsonAlbumRepository
from infrastructure.artifact_store import ArtifactStore
from infrastructure.date_index import JsonDateIndex
from infrastructure.image_service import PillowImageCodec, ThumbnailGenerator
from infrastructure.settings import StoreConfig


def create_image(
    path: Path,
    size: tuple[int, int] = (64, 48),
    *,
    exif_tags: dict[int, object] | None = None,
    color: str = "red",
) -> Path:
    """Write a small JPEG (or whatever the suffix says) with optional EXIF tags."""
    path.parent.mkdir(parents=True, exist_ok=True)
    img = Image.new("RGB", size, color=color)
    params: dict[str, object] = {}
    if exif_tags:
        exif = Image.Exif()
        for tag, value in exif_tags.items():
            exif[tag] = value
        params["exif"] = exif.tobytes()
    img.save(path, **params)
    return path


@pytest.fixture
def config(tmp_path: Path) -> StoreConfig:
    return StoreConfig(storage_root=tmp_path / "data", log_dir=tmp_path / "logs")


@pytest.fixture
def store(config: StoreConfig) -> ArtifactStore:
    return ArtifactStore(config)


@pytest.fixture
def index(store: ArtifactStore) -> JsonDateIndex:
    return JsonDateIndex(store)


@pytest.fixture
def albums(store: ArtifactStore) -> JsonAlbumRepository:
    return JsonAlbumRepository(store)


@pytest.fixture
def thumbnails(config: StoreConfig) -> ThumbnailGenerator:
    return ThumbnailGenerator(PillowImageCodec(), config)


@pytest.fixture
def photo_store(config: StoreConfig):
    ps = PhotoStore.from_config(config)
    yield ps
    ps.shutdown()
