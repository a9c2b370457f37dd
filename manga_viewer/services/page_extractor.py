# FILE: manga_viewer/services/page_extractor.py
"""
Page extraction from archives held in the blob store

extract_page(collection_id, page_index):
1. resolve the archive key from the catalog record
2. sign a short-lived retrieval URL and download the whole archive
3. re-index the archive (same ordering as registration)
4. decompress exactly the selected entry

The download awaits on the event loop; only catalog lookups, indexing and
decompression are handed to the threadpool. The signed URL may point back at
this same process, so no worker thread is held while the fetch is in flight.

Fetch failures raise TransientFailure. Parse/decompression failures are
logged and surfaced as NotFoundError for the affected page.
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import httpx
from starlette.concurrency import run_in_threadpool

from manga_viewer.errors import CorruptArchiveError, NotFoundError, TransientFailure
from manga_viewer.models.collections import Collection
from manga_viewer.services.archive_cache import ArchiveCache
from manga_viewer.services.archive_index import PageEntry, index_archive
from manga_viewer.services.blob_store import BlobStore
from manga_viewer.services.catalog_store import CatalogStore
from manga_viewer.services import telemetry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractedPage:
    data: bytes
    content_type: str
    filename: str
    page_index: int


class PageExtractor:
    """Serves single pages out of stored archives"""

    def __init__(
        self,
        catalog: CatalogStore,
        blob_store: BlobStore,
        http_client: httpx.AsyncClient,
        signed_url_ttl: int = 300,
        cache: Optional[ArchiveCache] = None
    ):
        self.catalog = catalog
        self.blob_store = blob_store
        self.http_client = http_client
        self.signed_url_ttl = signed_url_ttl
        self.cache = cache

    async def fetch_archive(self, archive_key: str) -> bytes:
        """Download the full archive through a signed URL"""
        url = self.blob_store.generate_signed_url(archive_key, self.signed_url_ttl)
        try:
            response = await self.http_client.get(url)
        except httpx.HTTPError as e:
            raise TransientFailure(f"Archive fetch failed for {archive_key}: {e}") from e

        if not response.is_success:
            raise TransientFailure(
                f"Archive fetch failed for {archive_key}: HTTP {response.status_code}"
            )

        logger.info(f"Fetched archive {archive_key} ({len(response.content)} bytes)")
        return response.content

    async def _load_archive(self, collection_id: str, archive_key: str) -> bytes:
        if self.cache is not None:
            data = self.cache.get(collection_id)
            if data is not None:
                telemetry.record_event(telemetry.ARCHIVE_CACHE_HIT, collection_id=collection_id)
                return data

        data = await self.fetch_archive(archive_key)
        if self.cache is not None:
            self.cache.put(collection_id, data)
        return data

    def _read_from_archive(
        self, collection: Collection, data: bytes, page_index: int
    ) -> Tuple[PageEntry, bytes, bool]:
        """Index the archive bytes and decompress one entry (blocking)"""
        with index_archive(data) as index:
            stale = index.page_filenames != collection.page_filenames
            if stale:
                logger.warning(
                    f"Stored page list of {collection.id} differs from archive "
                    f"({collection.total_pages} stored, {len(index)} indexed)"
                )

            if page_index >= len(index):
                raise NotFoundError(f"Page {page_index} not found in collection {collection.id}")

            return index.pages[page_index], index.read_page(page_index), stale

    async def extract_page(self, collection_id: str, page_index: int) -> ExtractedPage:
        started = time.perf_counter()

        if page_index < 0:
            raise NotFoundError(f"Page {page_index} not found")

        collection = await run_in_threadpool(self.catalog.get, collection_id)
        if collection is None:
            raise NotFoundError(f"Collection {collection_id} not found")
        if not collection.archive_key:
            raise NotFoundError(f"Collection {collection_id} has no stored archive")

        try:
            data = await self._load_archive(collection_id, collection.archive_key)
        except TransientFailure as e:
            logger.warning(e.message)
            telemetry.record_event(telemetry.PAGE_EXTRACT_FAILED, collection_id=collection_id,
                                   page_index=page_index, reason="fetch")
            raise

        try:
            entry, page_bytes, stale = await run_in_threadpool(
                self._read_from_archive, collection, data, page_index
            )
        except CorruptArchiveError as e:
            logger.error(f"Corrupt archive for collection {collection_id}: {e}", exc_info=True)
            if self.cache is not None:
                self.cache.invalidate(collection_id)
            telemetry.record_event(telemetry.PAGE_EXTRACT_FAILED, collection_id=collection_id,
                                   page_index=page_index, reason="corrupt")
            raise NotFoundError(f"Page {page_index} of collection {collection_id} is unreadable") from e

        duration_ms = int((time.perf_counter() - started) * 1000)
        telemetry.record_event(
            telemetry.PAGE_EXTRACTED,
            collection_id=collection_id,
            page_index=page_index,
            bytes=len(page_bytes),
            durationms=duration_ms,
            stale_metadata=stale,
        )
        return ExtractedPage(
            data=page_bytes,
            content_type=entry.content_type,
            filename=entry.filename,
            page_index=page_index,
        )
