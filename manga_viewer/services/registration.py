# FILE: manga_viewer/services/registration.py
"""
Collection registration (ingest path)

Order matters: hash and duplicate check, then indexing and the zero-page
check, all before anything is written to the blob store. The catalog insert
is the last step and the only point at which the collection becomes visible.
"""
import hashlib
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError

from manga_viewer.errors import (
    ConflictError,
    CorruptArchiveError,
    DuplicateHashError,
    DuplicateIdError,
    MangaViewerError,
    NotFoundError,
    StorageMisconfigured,
    ValidationFailure,
)
from manga_viewer.models.collections import ArchiveUpload, Collection, CollectionSidecar
from manga_viewer.services.archive_index import base_filename, index_archive
from manga_viewer.services.blob_store import BlobStore
from manga_viewer.services.catalog_store import CatalogStore
from manga_viewer.services import telemetry
from manga_viewer.services.thumbnail import Thumbnailer

logger = logging.getLogger(__name__)

KEY_ROOT = "manga-collections"
METADATA_FILENAME = "metadata.json"


def calculate_file_hash(data: bytes) -> str:
    """SHA-256 of the full archive bytes"""
    return hashlib.sha256(data).hexdigest()


def key_prefix_for(collection_id: str) -> str:
    return f"{KEY_ROOT}/{collection_id}/"


def title_from_filename(filename: str) -> str:
    name = base_filename(filename)
    if name.lower().endswith(".zip"):
        name = name[:-4]
    return name or "Untitled"


class CollectionRegistrar:
    """Registers uploaded archives as catalog collections"""

    def __init__(
        self,
        catalog: CatalogStore,
        blob_store: BlobStore,
        thumbnailer: Thumbnailer,
        storage_configured: bool = True
    ):
        self.catalog = catalog
        self.blob_store = blob_store
        self.thumbnailer = thumbnailer
        self.storage_configured = storage_configured

    def register(self, upload: ArchiveUpload) -> Collection:
        if not self.storage_configured:
            raise StorageMisconfigured("Blob storage is not configured")
        if not upload.data:
            raise ValidationFailure("Uploaded file is empty")

        file_hash = calculate_file_hash(upload.data)
        logger.info(f"Registering {upload.filename} ({len(upload.data)} bytes, sha256={file_hash})")

        if self.catalog.find_by_hash(file_hash) is not None:
            telemetry.record_event(telemetry.COLLECTION_REJECTED, reason="duplicate-hash", file_hash=file_hash)
            raise ConflictError("This archive has already been uploaded")

        try:
            index = index_archive(upload.data)
        except CorruptArchiveError as e:
            telemetry.record_event(telemetry.COLLECTION_REJECTED, reason="not-an-archive", file_hash=file_hash)
            raise ValidationFailure(f"File is not a valid ZIP archive: {e}", kind="not-an-archive") from e

        with index:
            if len(index) == 0:
                telemetry.record_event(telemetry.COLLECTION_REJECTED, reason="no-images-found", file_hash=file_hash)
                raise ValidationFailure(
                    "No valid image files were found in the archive",
                    kind="no-images-found"
                )

            collection_id = str(uuid.uuid4())
            prefix = key_prefix_for(collection_id)
            stored_filename = base_filename(upload.filename)
            archive_key = f"{prefix}{stored_filename}"

            self.blob_store.put_object(archive_key, upload.data, "application/zip")
            written: List[str] = [archive_key]
            logger.info(f"Uploaded archive: {archive_key}")

            thumbnail = self.thumbnailer.create(index, prefix)
            if thumbnail.produced:
                written.append(thumbnail.key)
            else:
                logger.info(f"No thumbnail for {collection_id}: {thumbnail.skipped_reason}")

            page_filenames = index.page_filenames

        now = datetime.now(timezone.utc)
        record = Collection(
            id=collection_id,
            title=upload.title or title_from_filename(upload.filename),
            original_filename=upload.filename,
            file_hash=file_hash,
            file_size=len(upload.data),
            total_pages=len(page_filenames),
            page_filenames=page_filenames,
            description=upload.description,
            tags=upload.tags,
            key_prefix=prefix,
            archive_key=archive_key,
            thumbnail_key=thumbnail.key,
            upload_date=now,
            updated_at=now,
        )

        try:
            written.append(self._write_sidecar(record))
            self.catalog.create(record)
        except DuplicateHashError as e:
            # Lost a race against a concurrent upload of the same bytes
            self._discard_blobs(written)
            telemetry.record_event(telemetry.COLLECTION_REJECTED, reason="duplicate-hash", file_hash=file_hash)
            raise ConflictError("This archive has already been uploaded") from e
        except Exception:
            self._discard_blobs(written)
            raise

        telemetry.record_event(
            telemetry.COLLECTION_REGISTERED,
            collection_id=collection_id,
            total_pages=record.total_pages,
            file_size=record.file_size,
            thumbnail=thumbnail.produced,
        )
        return record

    def _write_sidecar(self, record: Collection) -> str:
        sidecar = CollectionSidecar(
            collection_id=record.id,
            title=record.title,
            original_filename=record.original_filename,
            file_hash=record.file_hash,
            file_size=record.file_size,
            total_pages=record.total_pages,
            page_filenames=record.page_filenames,
            description=record.description,
            tags=record.tags,
            upload_date=record.upload_date,
            key_prefix=record.key_prefix,
            archive_key=record.archive_key,
            thumbnail_key=record.thumbnail_key,
        )
        key = f"{record.key_prefix}{METADATA_FILENAME}"
        self.blob_store.put_object(key, sidecar.model_dump_json(indent=2).encode("utf-8"), "application/json")
        return key

    def _discard_blobs(self, keys: List[str]) -> None:
        for key in keys:
            try:
                self.blob_store.delete_object(key)
            except MangaViewerError as e:
                logger.warning(f"Failed to clean up blob {key}: {e.message}")

    def restore_from_sidecar(self, metadata_key: str) -> Collection:
        """Recreate a catalog record from a metadata.json sidecar"""
        raw = self.blob_store.get_object(metadata_key)
        try:
            sidecar = CollectionSidecar.model_validate(json.loads(raw))
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            raise ValidationFailure(f"Invalid collection metadata in {metadata_key}: {e}") from e

        if not self.blob_store.exists(sidecar.archive_key):
            raise NotFoundError(f"Archive {sidecar.archive_key} is missing from storage")
        if self.catalog.find_by_hash(sidecar.file_hash) is not None:
            raise ConflictError("A collection with this archive is already registered")
        if self.catalog.get(sidecar.collection_id) is not None:
            raise ConflictError(
                f"Collection {sidecar.collection_id} already exists", kind="duplicate-collection"
            )

        now = datetime.now(timezone.utc)
        record = Collection(
            id=sidecar.collection_id,
            title=sidecar.title,
            original_filename=sidecar.original_filename,
            file_hash=sidecar.file_hash,
            file_size=sidecar.file_size,
            total_pages=sidecar.total_pages,
            page_filenames=sidecar.page_filenames,
            description=sidecar.description,
            tags=sidecar.tags,
            key_prefix=sidecar.key_prefix,
            archive_key=sidecar.archive_key,
            thumbnail_key=sidecar.thumbnail_key,
            upload_date=sidecar.upload_date,
            updated_at=now,
        )
        try:
            self.catalog.create(record)
        except DuplicateHashError as e:
            raise ConflictError("A collection with this archive is already registered") from e
        except DuplicateIdError as e:
            raise ConflictError(
                f"Collection {sidecar.collection_id} already exists", kind="duplicate-collection"
            ) from e

        telemetry.record_event(telemetry.COLLECTION_RESTORED, collection_id=record.id, metadata_key=metadata_key)
        return record


def delete_collection(
    catalog: CatalogStore,
    blob_store: BlobStore,
    collection_id: str,
    purge_blobs: bool = False
) -> Collection:
    """Remove the catalog row; blobs are kept unless purge_blobs is set"""
    record = catalog.delete(collection_id)
    if record is None:
        raise NotFoundError(f"Collection {collection_id} not found")

    if purge_blobs:
        keys: List[Optional[str]] = [
            record.archive_key,
            record.thumbnail_key,
            f"{record.key_prefix}{METADATA_FILENAME}",
        ]
        for key in keys:
            if key:
                blob_store.delete_object(key)

    telemetry.record_event(telemetry.COLLECTION_DELETED, collection_id=collection_id, purged=purge_blobs)
    return record
