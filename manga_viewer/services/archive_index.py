# FILE: manga_viewer/services/archive_index.py
"""
Archive indexer: deterministic page ordering for ZIP archives

The same ordering is used when a collection is registered (to persist the
page filename list) and when a page is served (to regenerate it from the
archive bytes), so both paths go through index_archive().

Page index i is position i of the naturally sorted image entries:
- directories are dropped
- OS noise is dropped (__MACOSX/, AppleDouble "._" files, .DS_Store)
- only jpg/jpeg/png/gif/bmp/webp extensions are kept (case-insensitive)
"""
import io
import logging
import re
import zipfile
import zlib
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from manga_viewer.errors import CorruptArchiveError

logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_TYPES = ("jpg", "jpeg", "png", "gif", "bmp", "webp")

CONTENT_TYPES = {
    "png": "image/png",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "webp": "image/webp",
}
DEFAULT_CONTENT_TYPE = "image/jpeg"

_RUN_RE = re.compile(r"[0-9]+|[^0-9]+")


def _normalize(name: str) -> str:
    """Archives built on Windows may use backslash separators"""
    return name.replace("\\", "/")


def base_filename(name: str) -> str:
    """Member name with any path component stripped"""
    return _normalize(name).rsplit("/", 1)[-1]


def file_extension(name: str) -> str:
    """Lower-cased final dot segment of the base name, '' if none"""
    # a bare ".jpg" is a hidden file, not a page
    base = base_filename(name)
    stem, dot, ext = base.rpartition(".")
    if not dot or not stem:
        return ""
    return ext.lower()


def is_noise_entry(name: str) -> bool:
    """Platform metadata that archivers add next to the real pages"""
    n = _normalize(name)
    if "__MACOSX/" in n:
        return True
    if "/._" in n or n.startswith("._"):
        return True
    if "/.DS_Store" in n or n == ".DS_Store":
        return True
    return False


def is_page_entry(name: str) -> bool:
    if is_noise_entry(name):
        return False
    return file_extension(name) in SUPPORTED_IMAGE_TYPES


def content_type_for(name: str) -> str:
    return CONTENT_TYPES.get(file_extension(name), DEFAULT_CONTENT_TYPE)


def _run_key(run: str) -> Tuple:
    # Digit runs compare by value. A non-digit run compared against a digit
    # run compares as a string, i.e. by its first character relative to 0-9.
    # Non-digit runs compare by code point ("B" < "a"), not by locale.
    if run[0].isdigit() and run.isascii():
        # value order without int(): significant digit count, then the digits
        digits = run.lstrip("0")
        return (2, len(digits), digits)
    if run[0] < "0":
        return (1, run)
    return (3, run)


def natural_sort_key(name: str) -> Tuple:
    """Sort key for natural ordering ("page2" < "page10").

    Names are split into alternating digit / non-digit runs and compared
    run by run; a name that runs out of runs first sorts first. Names that
    only differ in leading zeros ("p007" / "p7") fall back to the raw name,
    which keeps the order total.
    """
    runs = tuple(_run_key(run) for run in _RUN_RE.findall(name))
    return (runs, name)


def natural_compare(a: str, b: str) -> int:
    """cmp-style natural comparison, consistent with natural_sort_key()"""
    ka, kb = natural_sort_key(a), natural_sort_key(b)
    return (ka > kb) - (ka < kb)


def sort_page_names(names: Iterable[str]) -> List[str]:
    """Filter member names down to pages and return them in page order"""
    return sorted((n for n in names if is_page_entry(n)), key=natural_sort_key)


@dataclass(frozen=True)
class PageEntry:
    """One image member of an archive"""
    name: str
    filename: str
    is_dir: bool
    compress_size: int
    file_size: int
    info: zipfile.ZipInfo

    @property
    def content_type(self) -> str:
        return content_type_for(self.name)


class ArchiveIndex:
    """Ordered page entries of one archive, with access to their bytes"""

    def __init__(self, archive: zipfile.ZipFile, pages: List[PageEntry]):
        self._archive = archive
        self.pages = pages

    def __len__(self) -> int:
        return len(self.pages)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    @property
    def page_filenames(self) -> List[str]:
        return [p.filename for p in self.pages]

    @property
    def member_names(self) -> List[str]:
        return [p.name for p in self.pages]

    def read_page(self, index: int) -> bytes:
        """Decompress exactly one page entry"""
        entry = self.pages[index]
        try:
            return self._archive.read(entry.info)
        except (zipfile.BadZipFile, zlib.error, NotImplementedError,
                RuntimeError, EOFError, OSError, ValueError) as e:
            raise CorruptArchiveError(f"Cannot decompress {entry.name!r}: {e}") from e

    def close(self) -> None:
        self._archive.close()


def index_archive(data: bytes) -> ArchiveIndex:
    """Enumerate, filter and naturally sort the image entries of a ZIP"""
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError, OSError, EOFError) as e:
        raise CorruptArchiveError(f"Not a readable ZIP archive: {e}") from e

    pages = []
    skipped = 0
    for info in archive.infolist():
        if info.is_dir():
            continue
        if not is_page_entry(info.filename):
            skipped += 1
            continue
        pages.append(PageEntry(
            name=info.filename,
            filename=base_filename(info.filename),
            is_dir=False,
            compress_size=info.compress_size,
            file_size=info.file_size,
            info=info,
        ))

    pages.sort(key=lambda p: natural_sort_key(p.name))
    logger.debug(f"Indexed archive: {len(pages)} pages, {skipped} non-page entries skipped")
    return ArchiveIndex(archive, pages)
