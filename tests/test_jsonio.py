from __future__ import annotations

import json
from pathlib import Path

import pytest

from core.errors import CorruptIndexError
from infrastructure.jsonio import atomic_write_bytes, read_json_list, write_json_list


def test_missing_file_reads_empty(tmp_path: Path) -> None:
    assert read_json_list(tmp_path / "absent.json") == []


def test_write_creates_parents_and_leaves_no_temp(tmp_path: Path) -> None:
    target = tmp_path / "a" / "b" / "list.json"
    write_json_list(target, [{"name": "Ümlaut"}])
    assert read_json_list(target) == [{"name": "Ümlaut"}]
    assert "Ümlaut" in target.read_text(encoding="utf-8")
    assert [p.name for p in target.parent.iterdir()] == ["list.json"]


@pytest.mark.parametrize("content", ["{not json", json.dumps({"a": 1})])
def test_corrupt_content_raises(tmp_path: Path, content: str) -> None:
    target = tmp_path / "bad.json"
    target.write_text(content, encoding="utf-8")
    with pytest.raises(CorruptIndexError):
        read_json_list(target)


def test_atomic_write_bytes_replaces(tmp_path: Path) -> None:
    target = tmp_path / "thumb.jpg"
    target.write_bytes(b"old")
    atomic_write_bytes(target, b"new")
    assert target.read_bytes() == b"new"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["thumb.jpg"]
