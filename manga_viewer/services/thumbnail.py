# FILE: manga_viewer/services/thumbnail.py
"""
Cover thumbnails rendered from the first page of an archive
"""
import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image, UnidentifiedImageError

from manga_viewer.errors import CorruptArchiveError, MangaViewerError
from manga_viewer.services.archive_index import ArchiveIndex
from manga_viewer.services.blob_store import BlobStore

logger = logging.getLogger(__name__)

THUMBNAIL_FILENAME = "thumbnail.jpg"


@dataclass(frozen=True)
class ThumbnailResult:
    """Either a stored thumbnail key or the reason none was produced"""
    key: Optional[str] = None
    skipped_reason: Optional[str] = None

    @property
    def produced(self) -> bool:
        return self.key is not None

    @classmethod
    def skipped(cls, reason: str) -> "ThumbnailResult":
        return cls(key=None, skipped_reason=reason)


class Thumbnailer:
    """Best-effort thumbnail generation; never raises"""

    def __init__(self, blob_store: BlobStore, max_width: int = 400, max_height: int = 600):
        self.blob_store = blob_store
        self.max_size = (max_width, max_height)

    def render(self, image_bytes: bytes) -> bytes:
        """Downscale to the bounding box and re-encode as JPEG"""
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.thumbnail(self.max_size)
            if img.mode != "RGB":
                img = img.convert("RGB")
            out = io.BytesIO()
            img.save(out, format="JPEG", quality=85)
        return out.getvalue()

    def create(self, index: ArchiveIndex, key_prefix: str) -> ThumbnailResult:
        """Decompress only the first page and store its thumbnail"""
        if len(index) == 0:
            return ThumbnailResult.skipped("archive has no pages")

        try:
            first_page = index.read_page(0)
        except CorruptArchiveError as e:
            logger.warning(f"Thumbnail skipped, first page unreadable: {e}")
            return ThumbnailResult.skipped(f"first page unreadable: {e}")

        try:
            data = self.render(first_page)
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            logger.warning(f"Thumbnail skipped, cannot decode {index.pages[0].name!r}: {e}")
            return ThumbnailResult.skipped(f"cannot decode first page: {e}")
        except Exception as e:
            # malformed image data can surface as struct.error, IndexError, SyntaxError, ...
            logger.warning(f"Thumbnail skipped, decoder failed on {index.pages[0].name!r}: {e!r}")
            return ThumbnailResult.skipped(f"cannot decode first page: {e!r}")

        key = f"{key_prefix}{THUMBNAIL_FILENAME}"
        try:
            self.blob_store.put_object(key, data, "image/jpeg")
        except MangaViewerError as e:
            logger.warning(f"Thumbnail skipped, upload failed: {e.message}")
            return ThumbnailResult.skipped(f"upload failed: {e.message}")

        return ThumbnailResult(key=key)
