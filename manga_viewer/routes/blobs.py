# FILE: manga_viewer/routes/blobs.py
"""
Signed blob retrieval endpoint (target of generate_signed_url)
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from manga_viewer.routes.deps import get_blob_store
from manga_viewer.services.blob_store import LocalBlobStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{key:path}")
def get_blob(
    key: str,
    expires: int = Query(...),
    signature: str = Query(...),
    blob_store: LocalBlobStore = Depends(get_blob_store)
):
    if not blob_store.verify_signature(key, expires, signature):
        raise HTTPException(status_code=403, detail="Invalid or expired signature")

    return Response(
        content=blob_store.get_object(key),
        media_type=blob_store.get_content_type(key),
        headers={"Cache-Control": "private, no-store"},
    )
