"""Image decoding, thumbnailing and shot-date extraction.

`PillowImageCodec` is the Pillow-backed `ImageCodec` (HEIC/HEIF through
pillow-heif). `ThumbnailGenerator` turns originals into bounded previews
stored next to them and derives the shot date used for index sharding.
"""

from __future__ import annotations

from datetime import datetime
import io
from pathlib import Path

from PIL import Image, ImageOps
from loguru import logger
from pillow_heif import register_heif_opener

from core.errors import CodecError
from core.services.interfaces import ImageCodec, ImageMetadata
from infrastructure.artifact_store import ArtifactStore
from infrastructure.jsonio import atomic_write_bytes
from infrastructure.settings import StoreConfig
from infrastructure.utils import (
    get_filesystem_creation_datetime,
    get_modified_datetime,
    parse_exif_datetime,
)

register_heif_opener()

TAG_ORIENTATION = 0x0112
TAG_DATETIME = 306
TAG_DATETIME_ORIGINAL = 36867
TAG_DATETIME_DIGITIZED = 36868
IFD_EXIF = 0x8769

# Priority order used by `ThumbnailGenerator.extract_shot_date`
SHOT_DATE_TAGS = ("DateTimeOriginal", "DateTimeDigitized", "DateTime")

_EXIF_CAPABLE = {"JPEG", "PNG", "WEBP", "TIFF"}

_DECODE_ERRORS = (OSError, ValueError, SyntaxError, Image.DecompressionBombError)


def _resample_filter() -> int:
    resampling = getattr(Image, "Resampling", Image)
    return getattr(resampling, "LANCZOS", getattr(resampling, "BICUBIC", 3))


class PillowImageCodec:
    """`ImageCodec` implementation on top of Pillow."""

    def decode_metadata(self, path: Path) -> ImageMetadata:
        """Read dimensions, orientation and EXIF date tags without decoding pixels."""
        try:
            with Image.open(path) as im:
                width, height = im.size
                exif = im.getexif()
                orientation = int(exif.get(TAG_ORIENTATION, 1) or 1)
                exif_ifd = exif.get_ifd(IFD_EXIF)
                stamps: dict[str, str] = {}
                # Some writers put the date tags in IFD0 instead of the Exif IFD
                for name, tag, sources in (
                    ("DateTimeOriginal", TAG_DATETIME_ORIGINAL, (exif_ifd, exif)),
                    ("DateTimeDigitized", TAG_DATETIME_DIGITIZED, (exif_ifd, exif)),
                    ("DateTime", TAG_DATETIME, (exif, exif_ifd)),
                ):
                    for source in sources:
                        val = source.get(tag)
                        if val:
                            stamps[name] = (
                                val.decode("ascii", errors="ignore")
                                if isinstance(val, bytes)
                                else str(val)
                            )
                            break
        except _DECODE_ERRORS as ex:
            raise CodecError(f"Cannot read image metadata {path}: {ex}") from ex
        return ImageMetadata(
            width=width, height=height, orientation=orientation, exif_timestamps=stamps
        )

    def render_thumbnail(self, path: Path, max_side: int, quality: int, fmt: str) -> bytes:
        """Auto-orient, shrink to fit `max_side` (never upscaling) and re-encode.

        EXIF is carried over with the orientation tag reset, since the pixels
        are already rotated.
        """
        fmt = fmt.upper()
        try:
            with Image.open(path) as im:
                im.load()
                oriented = ImageOps.exif_transpose(im)
                if oriented is None:
                    oriented = im.copy()
                oriented.thumbnail((max_side, max_side), _resample_filter())
                exif = oriented.getexif()
                if TAG_ORIENTATION in exif:
                    exif[TAG_ORIENTATION] = 1
                if fmt == "JPEG" and oriented.mode not in ("RGB", "L"):
                    oriented = oriented.convert("RGB")
                buf = io.BytesIO()
                params: dict[str, object] = {"format": fmt, "quality": quality}
                if fmt in _EXIF_CAPABLE and len(exif):
                    params["exif"] = exif.tobytes()
                oriented.save(buf, **params)
        except _DECODE_ERRORS as ex:
            raise CodecError(f"Cannot render thumbnail for {path}: {ex}") from ex
        return buf.getvalue()


class ThumbnailGenerator:
    """Derives thumbnails and shot dates from original files."""

    def __init__(self, codec: ImageCodec, config: StoreConfig) -> None:
        self._codec = codec
        self._max_side = config.thumbnail_max_side
        self._quality = config.thumbnail_quality
        self._format = config.thumbnail_format

    def thumbnail_path(self, original: Path) -> Path:
        return ArtifactStore.thumbnail_for(original)

    def generate(self, original: Path) -> Path:
        """(Re)generate the thumbnail of `original` and return its path.

        Raises:
            CodecError: the original is missing, unreadable or corrupt.
        """
        original = Path(original)
        data = self._codec.render_thumbnail(original, self._max_side, self._quality, self._format)
        target = self.thumbnail_path(original)
        atomic_write_bytes(target, data)
        logger.debug("Thumbnail written: {} ({} bytes)", target, len(data))
        return target

    def ensure(self, original: Path) -> bool:
        """Generate the thumbnail only if it is missing; True if one was created."""
        if self.thumbnail_path(Path(original)).exists():
            return False
        self.generate(original)
        return True

    def extract_shot_date(self, original: Path) -> datetime:
        """Shot date of `original`.

        Order: EXIF DateTimeOriginal, DateTimeDigitized, DateTime; then the
        filesystem birth time when valid; then the last-modified time.
        """
        original = Path(original)
        try:
            meta = self._codec.decode_metadata(original)
        except CodecError as ex:
            logger.debug("No EXIF dates for {}: {}", original, ex)
        else:
            for tag in SHOT_DATE_TAGS:
                parsed = parse_exif_datetime(meta.exif_timestamps.get(tag))
                if parsed is not None:
                    return parsed

        created = get_filesystem_creation_datetime(original)
        if created is not None:
            return created
        return get_modified_datetime(original)
