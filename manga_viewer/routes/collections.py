# FILE: manga_viewer/routes/collections.py
"""
Collection catalog endpoints
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from manga_viewer.errors import NotFoundError
from manga_viewer.models.collections import Collection, RestoreRequest
from manga_viewer.routes.deps import get_archive_cache, get_blob_store, get_catalog, get_registrar
from manga_viewer.services.archive_cache import ArchiveCache
from manga_viewer.services.blob_store import LocalBlobStore
from manga_viewer.services.catalog_store import CatalogStore
from manga_viewer.services.registration import CollectionRegistrar, delete_collection

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=List[Collection])
def list_collections(
    q: Optional[str] = None,
    catalog: CatalogStore = Depends(get_catalog)
):
    """List collections, newest first; optional title search"""
    if q:
        return catalog.search_by_title(q)
    return catalog.list_all()


@router.get("/in-progress", response_model=List[Collection])
def in_progress_collections(catalog: CatalogStore = Depends(get_catalog)):
    """Collections that have been started but not finished"""
    return catalog.list_in_progress()


@router.get("/recent", response_model=List[Collection])
def recently_read_collections(
    limit: int = Query(10, ge=1, le=100),
    catalog: CatalogStore = Depends(get_catalog)
):
    return catalog.list_recently_read(limit)


@router.post("/restore", response_model=Collection)
def restore_collection(
    request: RestoreRequest,
    registrar: CollectionRegistrar = Depends(get_registrar)
):
    """Recreate a catalog record from a metadata sidecar in blob storage"""
    logger.info(f"Restore collection from {request.metadata_key}")
    return registrar.restore_from_sidecar(request.metadata_key)


@router.get("/{collection_id}", response_model=Collection)
def get_collection(collection_id: str, catalog: CatalogStore = Depends(get_catalog)):
    record = catalog.get(collection_id)
    if record is None:
        raise NotFoundError(f"Collection {collection_id} not found")
    return record


@router.delete("/{collection_id}")
def remove_collection(
    collection_id: str,
    purge: bool = False,
    catalog: CatalogStore = Depends(get_catalog),
    blob_store: LocalBlobStore = Depends(get_blob_store),
    cache: Optional[ArchiveCache] = Depends(get_archive_cache)
):
    """Delete a collection; stored blobs are removed only with purge=true"""
    delete_collection(catalog, blob_store, collection_id, purge_blobs=purge)
    if cache is not None:
        cache.invalidate(collection_id)

    return {
        "success": True,
        "collection_id": collection_id,
        "purged": purge
    }


@router.get("/{collection_id}/thumbnail")
def get_thumbnail(
    collection_id: str,
    catalog: CatalogStore = Depends(get_catalog),
    blob_store: LocalBlobStore = Depends(get_blob_store)
):
    record = catalog.get(collection_id)
    if record is None or not record.thumbnail_key:
        raise NotFoundError(f"No thumbnail for collection {collection_id}")

    return Response(
        content=blob_store.get_object(record.thumbnail_key),
        media_type="image/jpeg",
        headers={"Cache-Control": "public, max-age=86400"},
    )
