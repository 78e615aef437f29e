from __future__ import annotations

import json
from pathlib import Path

import pytest

from infrastructure.settings import DEFAULT_EXTENSIONS, JsonSettings, StoreConfig, load_store_config


def write_settings(tmp_path: Path, data: dict) -> JsonSettings:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return JsonSettings(path)


def test_missing_settings_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        JsonSettings(tmp_path / "nope.json")


def test_dotted_get(tmp_path: Path) -> None:
    settings = write_settings(tmp_path, {"thumbnail": {"max_side": 128}})
    assert settings.get("thumbnail.max_side") == 128
    assert settings.get("thumbnail.quality", 80) == 80
    assert settings.get("thumbnail.max_side.deeper") is None


def test_defaults_for_empty_file(tmp_path: Path) -> None:
    config = load_store_config(write_settings(tmp_path, {}))
    assert config.storage_root == tmp_path / "data"
    assert config.log_dir == tmp_path / "logs"
    assert config.extensions == DEFAULT_EXTENSIONS
    assert config.upload_max_bytes == 50 * 1024 * 1024
    assert config.thumbnail_max_side == 300
    assert config.thumbnail_quality == 80
    assert config.thumbnail_format == "JPEG"
    assert config.auth_secret is None
    assert not config.use_trash


def test_values_are_read_and_normalized(tmp_path: Path) -> None:
    config = load_store_config(
        write_settings(
            tmp_path,
            {
                "storage": {"root": str(tmp_path / "abs")},
                "images": {"extensions": ["JPG", ".png", ""]},
                "thumbnail": {"max_side": 512, "quality": 250, "format": "png"},
                "upload": {"use_trash": True},
                "auth": {"secret": "k"},
                "logging": {"level": "debug"},
            },
        )
    )
    assert config.storage_root == tmp_path / "abs"
    assert config.extensions == (".jpg", ".png")
    assert config.thumbnail_max_side == 512
    assert config.thumbnail_quality == 100
    assert config.thumbnail_format == "PNG"
    assert config.use_trash
    assert config.auth_secret == "k"
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize("bad", [0, -5, "big", None])
def test_invalid_numbers_fall_back(tmp_path: Path, bad: object) -> None:
    config = load_store_config(write_settings(tmp_path, {"thumbnail": {"max_side": bad}}))
    assert config.thumbnail_max_side == 300


def test_is_supported_ignores_case() -> None:
    config = StoreConfig()
    assert config.is_supported("IMG_0001.HEIC")
    assert config.is_supported("a.nef")
    assert not config.is_supported("a.txt")
    assert not config.is_supported("jpg")
