"""`Archiver` implementation writing deflated ZIP files."""

from __future__ import annotations

from pathlib import Path
import zipfile


class ZipArchiveWriter:
    """Context-managed ZIP writer; the file is flushed and closed on exit."""

    def __init__(self, target: Path, compression: int = zipfile.ZIP_DEFLATED) -> None:
        self._target = Path(target)
        self._zf = zipfile.ZipFile(self._target, "w", compression=compression)

    def __enter__(self) -> ZipArchiveWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def add(self, name: str, source: Path) -> None:
        # ZipFile.write streams the source in chunks
        self._zf.write(source, arcname=name)

    def close(self) -> None:
        self._zf.close()


class ZipArchiver:
    """Creates ZIP archives; images are already compressed, so deflate is light."""

    def __init__(self, compression: int = zipfile.ZIP_DEFLATED) -> None:
        self._compression = compression

    def create(self, target: Path) -> ZipArchiveWriter:
        return ZipArchiveWriter(target, self._compression)
